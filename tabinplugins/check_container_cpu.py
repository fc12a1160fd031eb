#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Container CPU check

Check the cpu usage of the currently-running container.  This must be
run from inside the container to be checked.

Without --shares-per-cpu, percentages are relative to a single CPU, so
to allow 4 CPUs worth of processor time and go critical at 90% of it,
pass --crit 360.

With --shares-per-cpu, the thresholds are scaled by the number of CPUs
worth of shares this container has been given (cpu.shares divided by
--shares-per-cpu), so they should always be given out of 100%.  With
--shares-per-cpu 1024 --crit 90 and 2048 shares granted, the check
goes critical at 180% of one CPU.

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
from argparse import ArgumentParser, RawDescriptionHelpFormatter
from time import sleep

import psutil

from libtabinplugins import cgroup
from libtabinplugins.common import Status, setup_logging
from libtabinplugins.system import Calculations, cpu_hogs, process_cpu_times

logger = logging.getLogger(__name__)


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(
        description=__doc__.rsplit('\n\n', 1)[0],
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument('-w', '--warn', type=float, default=80,
                        help='percent to warn at, default 80')
    parser.add_argument('-c', '--crit', type=float, default=80,
                        help='percent to go critical at, default 80')
    parser.add_argument('-s', '--sample', type=float, default=5,
                        help='seconds to take the sample over, default 5')
    parser.add_argument('--show-hogs', type=int, default=0, metavar='COUNT',
                        help='show the most cpu-intensive processes')
    parser.add_argument('--shares-per-cpu', type=int, metavar='SHARES',
                        help='the cpu shares given to a cgroup when it has '
                             'exactly one CPU allocated to it')
    parser.add_argument('--cgroup-root', default=cgroup.CGROUP_ROOT,
                        help='where the cgroup hierarchy is mounted')
    parser.add_argument('-v', '--verbose', action='count', default=0)

    return parser


def median_elapsed(start, end):
    """The median of the seconds that passed on every CPU"""
    elapsed = sorted(e.total() - s.total() for s, e in zip(start, end))
    return elapsed[len(elapsed) // 2]


def compare(args, percent, cpus=None):
    """Check the usage, scaling the thresholds to the CPUs granted"""
    crit, warn = args.crit, args.warn
    cpu_msg = percent_msg = ''
    if cpus is not None:
        crit *= cpus
        warn *= cpus
        cpu_msg = ' of {:.1f} CPUs'.format(cpus)
        percent_msg = ' of 1'

    if percent > crit:
        print('CRITICAL: Container is using {:.1f}%{} CPU (> {}%{})'.format(
            percent, percent_msg, args.crit, cpu_msg
        ))
        return Status.CRITICAL
    if percent > warn:
        print('WARNING: Container is using {:.1f}%{} CPU (> {}%{})'.format(
            percent, percent_msg, args.warn, cpu_msg
        ))
        return Status.WARNING

    print('OK: Container is using {:.1f}%{} CPU (< {}%{})'.format(
        percent, percent_msg, args.warn, cpu_msg
    ))
    return Status.OK


def main(argv=None):
    """Main entrypoint for script"""
    args = get_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        cpus = None
        if args.shares_per_cpu:
            cpus = cgroup.cpu_shares(args.cgroup_root) / args.shares_per_cpu
        start = Calculations.load_per_cpu()
        start_container = cgroup.cpuacct_seconds(args.cgroup_root)
        start_procs = process_cpu_times() if args.show_hogs > 0 else None

        sleep(args.sample)

        end = Calculations.load_per_cpu()
        end_container = cgroup.cpuacct_seconds(args.cgroup_root)
        elapsed = median_elapsed(start, end)
        if elapsed <= 0:
            raise RuntimeError('no time passed between the cpu samples')
    except (OSError, KeyError, ValueError, RuntimeError, psutil.Error) as error:
        print('UNKNOWN: unable to read cpu usage: {}'.format(error))
        Status.UNKNOWN.exit()
    logger.debug('Container used {:.2f}s over a median of {:.2f}s'.format(
        end_container - start_container, elapsed
    ))

    percent = (end_container - start_container) / elapsed * 100
    code = compare(args, percent, cpus)

    if args.show_hogs > 0:
        print('INFO [check-container-cpu]: hogs')
        for pid, used, cmdline in cpu_hogs(start_procs, process_cpu_times(),
                                           elapsed, args.show_hogs):
            print('[{:>5}]{:>5.1f}%: {}'.format(pid, used, cmdline))

    code.exit()


if __name__ == '__main__':
    main()
