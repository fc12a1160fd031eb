#!/usr/bin/env python3
"""Tabin Monitoring Plugins - CPU usage check

Samples the CPU times twice and checks how much of the elapsed time the
CPUs spent on the selected kinds of work.

There are three CPU type groups: `active` `activeplusiowait` and
`activeminusnice`.  `activeplusiowait` considers time spent waiting for
IO to be busy time, this gets alerts more aligned with the overall
system load, but is different from CPU usage reported by `top` since
the CPU isn't actually busy during this time.

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
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser
from time import sleep

import psutil

from libtabinplugins.common import Status, setup_logging
from libtabinplugins.system import (
    Calculations, WorkSource, cpu_hogs, process_cpu_times,
)

logger = logging.getLogger(__name__)


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(formatter_class=ArgumentDefaultsHelpFormatter)
    parser.add_argument(
        '-s', '--sample', type=float, default=1,
        help='seconds to spend collecting',
    )
    parser.add_argument(
        '-w', '--warn', type=float, default=80, help='percent to warn at',
    )
    parser.add_argument(
        '-c', '--crit', type=float, default=95,
        help='percent to go critical at',
    )
    parser.add_argument(
        '--per-cpu', action='store_true',
        help='gauge values per-cpu instead of across the entire machine',
    )
    parser.add_argument(
        '--cpu-count', type=int, default=1,
        help='if --per-cpu is specified, this is how many CPUs need to be '
             'at a threshold to trigger',
    )
    parser.add_argument(
        '--type', dest='types', action='append', type=WorkSource.from_string,
        help='kind of cpu usage to check, could be used multiple: {}. '
             'Defaults to active.'.format(' '.join(w.value for w in WorkSource)),
    )
    parser.add_argument(
        '--show-hogs', type=int, default=0,
        help='show most cpu-hungry processes',
    )
    parser.add_argument(
        '-v', '--verbose', action='count', default=0,
        help='set the script verbosity, could be used multiple',
    )

    return parser


def parse_args(argv=None):
    args = get_parser().parse_args(argv)
    if not args.types:
        args.types = [WorkSource.ACTIVE]
    return args


def print_errors_and_status(kind, total, critical, warning):
    if total > critical:
        print('CRITICAL [check-cpu]: {} {:.2f} > {}%'.format(
            kind, total, critical
        ))
        return Status.CRITICAL
    if total > warning:
        print('WARNING [check-cpu]: {} {:.2f} > {}%'.format(
            kind, total, warning
        ))
        return Status.WARNING

    print('OK [check-cpu]: {} {:.2f} < {}%'.format(kind, total, warning))
    return Status.OK


def do_comparison(args, start, end):
    """Check if the usage between two samples exceeds the limits"""
    status = Status.OK
    for kind in args.types:
        total = end.percent_util_since(kind, start)
        status = max(
            status, print_errors_and_status(kind, total, args.crit, args.warn)
        )
    print('INFO [check-cpu]: Usage breakdown: {}'.format(end - start))

    return status


def determine_status_per_cpu(args, start, end):
    return [do_comparison(args, s, e) for s, e in zip(start, end)]


def determine_exit(args, statuses):
    """Go critical or warning only if enough CPUs are"""
    if statuses.count(Status.CRITICAL) >= args.cpu_count:
        return Status.CRITICAL
    if statuses.count(Status.WARNING) >= args.cpu_count:
        return Status.WARNING
    return Status.OK


def load(per_cpu):
    if per_cpu:
        return Calculations.load_per_cpu()
    return [Calculations.load()]


def print_hogs(args, start, end, start_procs, end_procs):
    elapsed = end[0].total() - start[0].total()
    if args.per_cpu:
        elapsed = sum(e.total() for e in end) - sum(s.total() for s in start)

    print('INFO [check-cpu]: hogs')
    for pid, percent, cmdline in cpu_hogs(start_procs, end_procs, elapsed,
                                          args.show_hogs):
        print('[{:>5}]{:>5.1f}%: {}'.format(pid, percent, cmdline))


def main(argv=None):
    """Main entrypoint for script"""
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger.debug('Arguments are {}'.format(vars(args)))

    try:
        start = load(args.per_cpu)
        start_procs = process_cpu_times() if args.show_hogs > 0 else None
        sleep(args.sample)
        end = load(args.per_cpu)
        statuses = determine_status_per_cpu(args, start, end)
        if args.show_hogs > 0:
            print_hogs(args, start, end, start_procs, process_cpu_times())
    except (OSError, psutil.Error, RuntimeError) as error:
        print('UNKNOWN [check-cpu]: Error reading cpu times: {}'.format(error))
        Status.UNKNOWN.exit()

    determine_exit(args, statuses).exit()


if __name__ == '__main__':
    main()
