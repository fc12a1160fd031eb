#!/usr/bin/env python3
"""Tabin Monitoring Plugins - RAM usage check

Checks the percentage of memory that is not available to new processes.

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

from argparse import ArgumentParser

import psutil

from libtabinplugins.common import Status, bytes_to_human_size, setup_logging
from libtabinplugins.system import percent_memory_used, ram_hogs


def parse_args(argv=None):
    """Get argument parser -> ArgumentParser"""

    parser = ArgumentParser(description='Check the ram usage of this host')
    parser.add_argument('-w', '--warn', default=85, type=float,
                        help='percent to warn at')
    parser.add_argument('-c', '--crit', default=95, type=float,
                        help='percent to go critical at')
    parser.add_argument('--show-hogs', default=0, type=int, metavar='COUNT',
                        help='show the COUNT most ram-intensive processes')
    parser.add_argument('-v', '--verbose', action='count', default=0)

    return parser.parse_args(argv)


def compare_status(crit, warn, percent):
    if percent > crit:
        print('CRITICAL [check-ram]: {:.1f}% > {}%'.format(percent, crit))
        return Status.CRITICAL
    if percent > warn:
        print('WARNING [check-ram]: {:.1f}% > {}%'.format(percent, warn))
        return Status.WARNING

    print('OK [check-ram]: {:.1f}% < {}%'.format(percent, warn))
    return Status.OK


def print_hogs(count):
    hogs = ram_hogs(count)
    total = psutil.virtual_memory().total
    print('INFO [check-ram]: top {} ram hogs:'.format(count))
    for pid, rss, cmdline in hogs:
        print('[{:>6}]{:>5.1f}% {:>6}: {}'.format(
            pid, rss / total * 100, bytes_to_human_size(rss), cmdline
        ))


def main(argv=None):
    """The main program"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        status = compare_status(args.crit, args.warn, percent_memory_used())
        if args.show_hogs > 0:
            print_hogs(args.show_hogs)
    except (OSError, psutil.Error) as error:
        print('UNKNOWN [check-ram]: UNEXPECTED ERROR {}'.format(error))
        status = Status.UNKNOWN

    status.exit()


if __name__ == '__main__':
    main()
