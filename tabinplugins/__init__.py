"""Tabin Monitoring Plugins"""
