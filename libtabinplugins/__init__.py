"""Tabin Monitoring Plugins Library"""
