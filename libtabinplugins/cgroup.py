#!/usr/bin/env python
"""Tabin Monitoring Plugins - cgroup accounting

Readers for the cgroup (v1) memory and cpu controllers of the cgroup
the check is running in.

Copyright (c) 2018 InnoGames GmbH
"""
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT.  IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.

import os

CGROUP_ROOT = '/sys/fs/cgroup'


def read_file(path):
    with open(path) as fd:
        return fd.read()


def read_stat(path):
    """Read a file of "key value" lines into a dict of ints"""
    stats = {}
    for line in read_file(path).splitlines():
        parts = line.split()
        if len(parts) == 2:
            stats[parts[0]] = int(parts[1])

    return stats


def memory_limit_in_bytes(root=CGROUP_ROOT):
    """The memory limit of this cgroup, a huge number if it is unset"""
    path = os.path.join(root, 'memory', 'memory.limit_in_bytes')
    return int(read_file(path).strip())


def memory_stat(root=CGROUP_ROOT):
    """The memory.stat of this cgroup, all values in bytes"""
    return read_stat(os.path.join(root, 'memory', 'memory.stat'))


def cpu_shares(root=CGROUP_ROOT):
    return int(read_file(os.path.join(root, 'cpu', 'cpu.shares')).strip())


def cpuacct_seconds(root=CGROUP_ROOT):
    """User plus system cpu time of all processes in this cgroup

    cpuacct.stat reports USER_HZ ticks.
    """
    stat = read_stat(os.path.join(root, 'cpuacct', 'cpuacct.stat'))
    ticks = stat['user'] + stat['system']

    return ticks / os.sysconf('SC_CLK_TCK')
