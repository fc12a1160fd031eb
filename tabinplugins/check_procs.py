#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Process count check

Check that an expected number of processes are running.

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
import re
from argparse import ArgumentParser

import psutil

from libtabinplugins.common import Status, exit, setup_logging
from libtabinplugins.system import running_processes, useful_cmdline

MAX_LISTED = 20


def parse_args(argv=None):
    parser = ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('pattern',
                        help='regex that command and its arguments must match')
    parser.add_argument('--crit-under', type=int, metavar='N',
                        help='error if there are fewer than N matching procs')
    parser.add_argument('--crit-over', type=int, metavar='N',
                        help='error if there are more than N matching procs')
    parser.add_argument('-v', '--verbose', action='count', default=0)

    args = parser.parse_args(argv)
    if args.crit_under is None and args.crit_over is None:
        parser.error('one of --crit-under or --crit-over is required')

    return args


def matching_processes(regex, processes, ignore=()):
    """(pid, command line) of the processes matching, sorted by pid"""
    matches = []
    for info in processes:
        cmdline = useful_cmdline(info)
        if info['pid'] not in ignore and regex.search(cmdline):
            matches.append((info['pid'], cmdline))
    matches.sort()

    return matches


def compare(args, count):
    code = Status.OK
    if args.crit_over is not None and count > args.crit_over:
        code = Status.CRITICAL
        print('CRITICAL: there are {} process that match {!r} '
              '(greater than {})'.format(count, args.pattern, args.crit_over))
    if args.crit_under is not None and count < args.crit_under:
        code = Status.CRITICAL
        print('CRITICAL: there are {} process that match {!r} '
              '(less than {})'.format(count, args.pattern, args.crit_under))

    if code == Status.OK:
        if args.crit_over is not None and args.crit_under is not None:
            print('OK: There are {} matching procs (between {} and {})'
                  .format(count, args.crit_under, args.crit_over))
        elif args.crit_over is not None:
            print('OK: There are {} matching procs (less than {})'
                  .format(count, args.crit_over))
        else:
            print('OK: There are {} matching procs (greater than {})'
                  .format(count, args.crit_under))

    return code


def print_matches(matches):
    if not matches:
        return
    print('INFO: Matching processes:')
    for pid, cmdline in matches[:MAX_LISTED]:
        print('[{:>5}] {}'.format(pid, cmdline))
    if len(matches) > MAX_LISTED:
        print('And {} more...'.format(len(matches) - MAX_LISTED))


def main(argv=None):
    """Main entrypoint for script"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        regex = re.compile(args.pattern)
    except re.error as error:
        exit(Status.CRITICAL, 'Invalid pattern {!r}: {}'.format(
            args.pattern, error
        ))

    try:
        processes = running_processes([])
    except (OSError, psutil.Error) as error:
        exit(Status.UNKNOWN, 'Unable to list processes: {}'.format(error))

    matches = matching_processes(
        regex, processes, ignore={os.getpid(), os.getppid()}
    )
    code = compare(args, len(matches))
    print_matches(matches)
    code.exit()


if __name__ == '__main__':
    main()
