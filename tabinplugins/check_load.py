#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Load average check

Load average is the number of processes waiting to do work in a queue,
either due to IO or CPU constraints.  The numbers used to check are the
load averaged over 1, 5 and 15 minutes, respectively.

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

from argparse import ArgumentParser, ArgumentTypeError

import psutil

from libtabinplugins.common import Status, setup_logging
from libtabinplugins.system import LoadAvg


def load_averages(value):
    try:
        return LoadAvg.from_string(value)
    except ValueError as error:
        raise ArgumentTypeError(str(error))


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        '-w', '--warn', type=load_averages, default=LoadAvg(5, 3.5, 2.5),
        help='averages to warn at, like 5,3.5,2.5',
    )
    parser.add_argument(
        '-c', '--crit', type=load_averages, default=LoadAvg(10, 5, 3),
        help='averages to go critical at, like 10,5,3',
    )
    parser.add_argument(
        '--per-cpu', action='store_true',
        help='divide the load average by the number of processors',
    )
    parser.add_argument(
        '-v', '--verbose', action='count', default=0,
        help='print even when things are okay, more for debug logging',
    )

    return parser


def do_check(args, actual, num_cpus):
    actual = actual / num_cpus
    cpu_str = ''
    if args.per_cpu and num_cpus > 1:
        cpu_str = ' (divided by {} cpus)'.format(num_cpus)

    if actual.exceeds(args.crit):
        print('[check-load] CRITICAL: load average{} is {} (> {})'.format(
            cpu_str, actual, args.crit
        ))
        return Status.CRITICAL
    if actual.exceeds(args.warn):
        print('[check-load] WARNING: load average{} is {} (> {})'.format(
            cpu_str, actual, args.warn
        ))
        return Status.WARNING

    if args.verbose:
        print('[check-load] OK: load average{} is {} (< {})'.format(
            cpu_str, actual, args.warn
        ))
    return Status.OK


def main(argv=None):
    """Main entrypoint for script"""
    args = get_parser().parse_args(argv)
    setup_logging(max(args.verbose - 1, 0))

    num_cpus = psutil.cpu_count() if args.per_cpu else 1
    try:
        actual = LoadAvg.load()
    except OSError as error:
        print('[check-load] UNKNOWN: could not read load average: {}'
              .format(error))
        Status.UNKNOWN.exit()

    do_check(args, actual, num_cpus or 1).exit()


if __name__ == '__main__':
    main()
