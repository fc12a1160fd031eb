#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Container RAM check

Check the RAM usage of the currently-running container.  This must be
run from inside the container to be checked.

This checks as a ratio of the limit specified in the cgroup memory
limit, and if there is no limit set (or the limit is greater than the
total memory available on the system) this checks against the total
system memory.

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
from argparse import (
    ArgumentDefaultsHelpFormatter, ArgumentParser, ArgumentTypeError,
)

import psutil

from libtabinplugins import cgroup
from libtabinplugins.common import (
    STATUS_CHOICES, Status, bytes_to_human_size, setup_logging,
)
from libtabinplugins.system import ram_hogs

logger = logging.getLogger(__name__)

CGROUP_LIMIT = 'cgroup limit'
SYSTEM_LIMIT = 'system ram'


def status(value):
    try:
        return Status.from_string(value)
    except ValueError as error:
        raise ArgumentTypeError(str(error))


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(
        description=__doc__.split('\n\n')[1],
        formatter_class=ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('-w', '--warn', type=float, default=85,
                        help='warn at this percent used')
    parser.add_argument('-c', '--crit', type=float, default=95,
                        help='critical at this percent used')
    parser.add_argument(
        '--invalid-limit', type=status, default=Status.OK,
        metavar='{{{}}}'.format(','.join(STATUS_CHOICES)),
        help='status to consider this check if the cgroup limit is greater '
             'than the system ram',
    )
    parser.add_argument('--show-hogs', type=int, default=0, metavar='COUNT',
                        help='show the most ram-hungry procs')
    parser.add_argument('--cgroup-root', default=cgroup.CGROUP_ROOT,
                        help='where the cgroup hierarchy is mounted')
    parser.add_argument('-v', '--verbose', action='count', default=0)

    return parser


def effective_limit(args, limit, system_bytes):
    """Pick the limit to compare to -> (Status, limit, kind of limit)"""
    if limit <= system_bytes:
        return Status.OK, limit, CGROUP_LIMIT

    code = Status.OK
    if args.invalid_limit != Status.OK:
        print('{}: CGroup memory limit is greater than system memory '
              '({} > {})'.format(
                  args.invalid_limit,
                  bytes_to_human_size(limit).strip(),
                  bytes_to_human_size(system_bytes).strip(),
              ))
        code = args.invalid_limit

    return code, system_bytes, SYSTEM_LIMIT


def compare(args, rss, limit, limit_kind):
    percent = rss / limit * 100
    size = bytes_to_human_size(limit).strip()
    if percent > args.crit:
        print('CRITICAL: cgroup is using {:.1f}% of {} {} (greater than {}%)'
              .format(percent, size, limit_kind, args.crit))
        return Status.CRITICAL
    if percent > args.warn:
        print('WARNING: cgroup is using {:.1f}% of {} {} (greater than {}%)'
              .format(percent, size, limit_kind, args.warn))
        return Status.WARNING

    print('OK: cgroup is using {:.1f}% of {} {} (less than {}%)'
          .format(percent, size, limit_kind, args.warn))
    return Status.OK


def print_hogs(count, limit):
    print('INFO [check-container-ram]: ram hogs')
    for pid, rss, cmdline in ram_hogs(count):
        print('[{:>6}]{:>5.1f}% {:>6}: {}'.format(
            pid, rss / limit * 100, bytes_to_human_size(rss), cmdline
        ))


def main(argv=None):
    """Main entrypoint for script"""
    args = get_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        limit = cgroup.memory_limit_in_bytes(args.cgroup_root)
        rss = cgroup.memory_stat(args.cgroup_root)['rss']
        system_bytes = psutil.virtual_memory().total
    except (OSError, KeyError, ValueError, psutil.Error) as error:
        print('UNKNOWN: unable to read memory usage: {}'.format(error))
        Status.UNKNOWN.exit()
    logger.debug('Limit {}, rss {}, system memory {}'.format(
        limit, rss, system_bytes
    ))

    code, limit, limit_kind = effective_limit(args, limit, system_bytes)
    code = max(code, compare(args, rss, limit, limit_kind))
    if args.show_hogs > 0:
        print_hogs(args.show_hogs, limit)

    code.exit()


if __name__ == '__main__':
    main()
