#!/usr/bin/env python
#
# Tabin Monitoring Plugins Library
#
# Copyright (c) 2016, InnoGames GmbH
#
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
#

import logging
import sys
from enum import Enum
from functools import total_ordering

LOG_FORMAT = '%(levelname)-8s [%(filename)s:%(lineno)d] %(message)s'
LOG_LEVELS = [logging.CRITICAL, logging.WARN, logging.INFO, logging.DEBUG]


@total_ordering
class Status(Enum):
    """Nagios compatible check status

    Statuses are ordered by severity with UNKNOWN being the weakest, so
    taking the max() over a couple of results never hides a real
    warning or critical behind an unknown.  This order has nothing to
    do with the exit codes, which follow the Nagios convention and are
    looked up in a separate table.
    """

    UNKNOWN = 'UNKNOWN'
    OK = 'OK'
    WARNING = 'WARNING'
    CRITICAL = 'CRITICAL'

    def __str__(self):
        return self.value

    def __lt__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return _RANKS[self] < _RANKS[other]

    @property
    def rank(self):
        return _RANKS[self]

    @property
    def exit_code(self):
        return _EXIT_CODES[self]

    def exit(self):
        sys.exit(self.exit_code)

    @classmethod
    def from_string(cls, value):
        """Parse a status given on the command line"""
        try:
            return _ALIASES[value.strip().lower()]
        except KeyError:
            raise ValueError(
                'Unexpected status "{}", expected one of: {}'
                .format(value, ', '.join(STATUS_CHOICES))
            )


_RANKS = {
    Status.UNKNOWN: 0,
    Status.OK: 1,
    Status.WARNING: 2,
    Status.CRITICAL: 3,
}

_EXIT_CODES = {
    Status.OK: 0,
    Status.WARNING: 1,
    Status.CRITICAL: 2,
    Status.UNKNOWN: 3,
}

_ALIASES = {
    'ok': Status.OK,
    'warn': Status.WARNING,
    'warning': Status.WARNING,
    'crit': Status.CRITICAL,
    'critical': Status.CRITICAL,
    'unknown': Status.UNKNOWN,
}

STATUS_CHOICES = ['ok', 'warning', 'critical', 'unknown']


def exit(status=None, message=''):
    """Exit procedure for the check commands"""

    if status is None:
        status = Status.UNKNOWN

        # People tend to interpret UNKNOWN status in different ways.
        # We are including a default message to avoid confusion.  When
        # there are specific problems, errors, the message should be
        # set.
        if not message:
            message = 'Nothing could be checked'

    if message:
        print('{}: {}'.format(status, message))
    status.exit()


def setup_logging(verbose=0):
    """Configure the root logger from the count of -v flags"""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(LOG_LEVELS[min(verbose, 3)])


def bytes_to_human_size(size):
    """Format a byte count with binary prefixes, like 9.8K or 34.3M"""
    size = float(size)
    units = ['B', 'K', 'M', 'G', 'T']
    reductions = 0
    while reductions < len(units) - 1 and size > 1000.0:
        size /= 1024.0
        reductions += 1

    return '{:>5.1f}{}'.format(size, units[reductions])
