#!/usr/bin/env python
"""Tabin Monitoring Plugins - System accounting helpers

CPU times, load averages, memory and the process table as the checks
need them, read through psutil.

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

import logging
import re
from enum import Enum

import psutil

logger = logging.getLogger(__name__)

CPU_FIELDS = [
    'user', 'nice', 'system', 'idle', 'iowait', 'irq', 'softirq', 'steal',
    'guest', 'guest_nice',
]


class WorkSource(Enum):
    """A kind of CPU usage, see Calculations for the definitions"""
    ACTIVE = 'active'
    ACTIVE_PLUS_IOWAIT = 'activeplusiowait'
    ACTIVE_MINUS_NICE = 'activeminusnice'
    USER = 'user'
    NICE = 'nice'
    SYSTEM = 'system'
    IRQ = 'irq'
    SOFTIRQ = 'softirq'
    STEAL = 'steal'
    GUEST = 'guest'
    GUEST_NICE = 'guestnice'
    IDLE = 'idle'
    IOWAIT = 'iowait'

    def __str__(self):
        return _WORK_SOURCE_NAMES.get(self, self.value)

    @classmethod
    def from_string(cls, value):
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                "Invalid value for worksource: '{}'".format(value)
            )


_WORK_SOURCE_NAMES = {
    WorkSource.ACTIVE_PLUS_IOWAIT: 'active+iowait',
    WorkSource.ACTIVE_MINUS_NICE: 'active-nice',
}


class Calculations:
    """Time the CPUs spent on each kind of work, in seconds

    The fields are the ones of /proc/stat as psutil reports them.
    Fields a platform does not know about are zero.
    """

    def __init__(self, **fields):
        for field in CPU_FIELDS:
            setattr(self, field, float(fields.get(field, 0.0)))

    def __eq__(self, other):
        if not isinstance(other, Calculations):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self):
        return 'Calculations({})'.format(', '.join(
            '{}={}'.format(f, getattr(self, f)) for f in CPU_FIELDS
        ))

    def __sub__(self, other):
        return Calculations(**{
            f: getattr(self, f) - getattr(other, f) for f in CPU_FIELDS
        })

    def __str__(self):
        total = self.total()

        def percent(value):
            return 100 * value / total if total else 0.0

        return (
            'user={:.1f} system={:.1f} nice={:.1f} irq={:.1f} '
            'softirq={:.1f} | idle={:.1f} iowait={:.1f} | steal={:.1f} '
            'guest={:.1f} guest_nice={:.1f}'.format(
                percent(self.user),
                percent(self.system),
                percent(self.nice),
                percent(self.irq),
                percent(self.softirq),
                percent(self.idle),
                percent(self.iowait),
                percent(self.steal),
                percent(self.guest),
                percent(self.guest_nice),
            )
        )

    @classmethod
    def from_cpu_times(cls, times):
        return cls(**{
            f: getattr(times, f) for f in CPU_FIELDS if hasattr(times, f)
        })

    @classmethod
    def load(cls):
        """Total CPU time of the whole machine"""
        return cls.from_cpu_times(psutil.cpu_times())

    @classmethod
    def load_per_cpu(cls):
        return [cls.from_cpu_times(t) for t in psutil.cpu_times(percpu=True)]

    def active(self):
        """Time spent non-idle

        This includes user space, kernel space and the time stolen by
        other VMs.  Guest time is part of user time already.
        """
        return (
            self.user + self.nice + self.system + self.irq + self.softirq +
            self.steal
        )

    def idle_total(self):
        return self.idle + self.iowait

    def total(self):
        return self.active() + self.idle_total()

    def work(self, kind):
        """The time spent on the given WorkSource"""
        if kind is WorkSource.ACTIVE:
            return self.active()
        if kind is WorkSource.ACTIVE_PLUS_IOWAIT:
            return self.active() + self.iowait
        if kind is WorkSource.ACTIVE_MINUS_NICE:
            return self.active() - self.nice
        if kind is WorkSource.GUEST_NICE:
            return self.guest_nice
        return getattr(self, kind.value)

    def percent_util_since(self, kind, start):
        """How much of the elapsed cpu time went to kind, 0 to 100"""
        elapsed = self.total() - start.total()
        if elapsed <= 0:
            raise RuntimeError('CPU time went backwards or did not advance')

        return (self.work(kind) - start.work(kind)) / elapsed * 100


class LoadAvg:
    """Load averaged over 1, 5 and 15 minutes"""

    def __init__(self, one, five, fifteen):
        self.one = one
        self.five = five
        self.fifteen = fifteen

    def __eq__(self, other):
        if not isinstance(other, LoadAvg):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __repr__(self):
        return 'LoadAvg({}, {}, {})'.format(*self.as_tuple())

    def __str__(self):
        return '{:.1f} {:.1f} {:.1f}'.format(*self.as_tuple())

    def __truediv__(self, count):
        return LoadAvg(*(v / count for v in self.as_tuple()))

    def as_tuple(self):
        return self.one, self.five, self.fifteen

    def exceeds(self, limit):
        """Whether any of the averages is above its limit"""
        return any(v > l for v, l in zip(self.as_tuple(), limit.as_tuple()))

    @classmethod
    def from_string(cls, value):
        """Parse "1,2,3", "1 2 3" or the contents of /proc/loadavg"""
        fields = re.split(r'[ ,]', value.strip())[:3]
        try:
            return cls(*(float(f) for f in fields))
        except (TypeError, ValueError):
            raise ValueError(
                "Load averages should look like 'n.m,n.m,n.m', not '{}'"
                .format(value)
            )

    @classmethod
    def load(cls):
        return cls(*psutil.getloadavg())


def percent_memory_used():
    """Percent of the memory that is not available to new processes"""
    memory = psutil.virtual_memory()

    return 100.0 - memory.available / memory.total * 100.0


def useful_cmdline(info):
    """The command line of a process, its name if that is empty"""
    return ' '.join(info.get('cmdline') or []) or info.get('name') or ''


def running_processes(attrs):
    """Process info dicts for everything we are allowed to look at"""
    return [
        p.info for p in psutil.process_iter(['pid', 'name', 'cmdline'] + attrs)
    ]


def process_cpu_times():
    """Seconds of cpu time each process used, by pid"""
    usage = {}
    for info in running_processes(['cpu_times']):
        times = info.get('cpu_times')
        if times is not None:
            usage[info['pid']] = (times.user + times.system, info)

    return usage


def cpu_hogs(start, end, elapsed, count):
    """The count processes that used the most cpu between two samples

    Returns (pid, percent, command line) tuples.
    """
    hogs = []
    for pid, (used, info) in end.items():
        if pid not in start or elapsed <= 0:
            continue
        percent = (used - start[pid][0]) / elapsed * 100
        hogs.append((pid, percent, useful_cmdline(info)))
    hogs.sort(key=lambda h: h[1], reverse=True)

    return hogs[:count]


def ram_hogs(count):
    """The count processes with the largest resident set

    Returns (pid, rss in bytes, command line) tuples.
    """
    hogs = []
    for info in running_processes(['memory_info']):
        if info.get('memory_info') is None:
            continue
        hogs.append((info['pid'], info['memory_info'].rss,
                     useful_cmdline(info)))
    hogs.sort(key=lambda h: h[1], reverse=True)
    logger.debug('Found {} processes'.format(len(hogs)))

    return hogs[:count]
