#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Disk usage check

Check all mounted file systems for disk and inode usage.

Only one mount point of every /dev device is checked, the shortest one,
the same way df does it.  Dummy file systems without blocks and the ones
under /proc are skipped.

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
import os
import re
from argparse import (
    ArgumentDefaultsHelpFormatter, ArgumentParser, ArgumentTypeError,
)

import psutil

from libtabinplugins.common import (
    STATUS_CHOICES, Status, bytes_to_human_size, setup_logging,
)

logger = logging.getLogger(__name__)


class DiskFilterError(Exception):
    pass


class MountStat:
    """A mounted file system together with its statvfs result"""

    def __init__(self, device, mountpoint, fstype, stat):
        self.device = device
        self.mountpoint = mountpoint
        self.fstype = fstype
        self.stat = stat

    def __repr__(self):
        return 'MountStat({!r}, {!r}, {!r})'.format(
            self.device, self.mountpoint, self.fstype
        )

    def size(self):
        return self.stat.f_blocks * self.stat.f_frsize

    def percent_used(self):
        return percent_used(self.stat.f_bavail, self.stat.f_blocks)

    def percent_inodes_used(self):
        return percent_used(self.stat.f_favail, self.stat.f_files)


def percent_used(available, total):
    # Some file systems, like btrfs, do not report inodes
    if total == 0:
        return 0.0
    return 100.0 - available / total * 100.0


def status(value):
    try:
        return Status.from_string(value)
    except ValueError as error:
        raise ArgumentTypeError(str(error))


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(
        description=__doc__.splitlines()[0],
        formatter_class=ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('-w', '--warn', type=float, default=80,
                        help='percent to warn at')
    parser.add_argument('-c', '--crit', type=float, default=90,
                        help='percent to go critical at')
    parser.add_argument('-W', '--warn-inodes', type=float, default=80,
                        help='percent of inode usage to warn at')
    parser.add_argument('-C', '--crit-inodes', type=float, default=90,
                        help='percent of inode usage to go critical at')
    parser.add_argument('--pattern', metavar='REGEX',
                        help='only check filesystems that match this regex')
    parser.add_argument('--exclude-pattern', metavar='REGEX',
                        help='do not check filesystems matching this regex')
    parser.add_argument('--type', dest='fs_type',
                        help='only check filesystems of this type, e.g. '
                             "ext4 or tmpfs, see 'man 8 mount'")
    parser.add_argument('--exclude-type',
                        help='do not check filesystems of this type')
    parser.add_argument('--info', action='store_true',
                        help='print information of all known filesystems, '
                             'similar to df')
    parser.add_argument('--inaccessible-status', type=status,
                        metavar='{{{}}}'.format(','.join(STATUS_CHOICES)),
                        help='if any filesystems are inaccessible print a '
                             'warning and exit with this status')
    parser.add_argument('-v', '--verbose', action='count', default=0)

    return parser


def maybe_regex(pattern):
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as error:
        raise DiskFilterError(
            'Unable to filter disks like {!r}: {}'.format(pattern, error)
        )


def filter_mounts(partitions, args):
    """Stat the partitions and apply the filters from the arguments

    -> (list of MountStat, count of inaccessible file systems)
    """
    include = maybe_regex(args.pattern)
    exclude = maybe_regex(args.exclude_pattern)

    devices = set()
    mounts = []
    inaccessible = 0
    for part in sorted(partitions, key=lambda p: len(p.mountpoint)):
        if include and not include.search(part.mountpoint):
            continue
        if exclude and exclude.search(part.mountpoint):
            continue

        try:
            stat = os.statvfs(part.mountpoint)
        except OSError as error:
            inaccessible += 1
            logger.debug('Error reading statvfs for path {}: {}'.format(
                part.mountpoint, error
            ))
            continue
        if stat.f_blocks == 0 or part.mountpoint.startswith('/proc'):
            continue

        if part.device.startswith('/dev'):
            if part.device in devices:
                continue
            devices.add(part.device)

        if args.fs_type and part.fstype != args.fs_type:
            continue
        if args.exclude_type and part.fstype == args.exclude_type:
            continue

        mounts.append(
            MountStat(part.device, part.mountpoint, part.fstype, stat)
        )

    return mounts, inaccessible


def do_check(mounts, args):
    code = Status.OK
    for mount in mounts:
        percent = mount.percent_used()
        size = bytes_to_human_size(mount.size()).strip()
        if percent > args.crit:
            code = Status.CRITICAL
            print('CRITICAL: {} has {:.1f}% of its {}B used (> {:.1f}%)'
                  .format(mount.mountpoint, percent, size, args.crit))
        elif percent > args.warn:
            code = max(code, Status.WARNING)
            print('WARNING: {} has {:.1f}% of its {}B used (> {:.1f}%)'
                  .format(mount.mountpoint, percent, size, args.warn))

        percent = mount.percent_inodes_used()
        inodes = mount.stat.f_files
        if percent > args.crit_inodes:
            code = Status.CRITICAL
            print('CRITICAL: {} has {:.1f}% of its {} inodes used (> {:.1f}%)'
                  .format(mount.mountpoint, percent, inodes, args.crit_inodes))
        elif percent > args.warn_inodes:
            code = max(code, Status.WARNING)
            print('WARNING: {} has {:.1f}% of its {} inodes used (> {:.1f}%)'
                  .format(mount.mountpoint, percent, inodes, args.warn_inodes))

    if code == Status.OK:
        print('OK: {} filesystems checked, none are above {}% disk or {}% '
              'inode usage'.format(len(mounts), args.warn, args.warn_inodes))

    if args.info:
        print_info(mounts)

    return code


def print_info(mounts):
    print('{:<15} {:>7} {:>5}% {:>7} {:>5}% {:<20}'.format(
        'Filesystem', 'Size', 'Use', 'INodes', 'IUse', 'Mounted on'
    ))
    for mount in mounts:
        print('{:<15} {:>7} {:>5.1f}% {:>7} {:>5.1f}% {:<20}'.format(
            mount.device,
            bytes_to_human_size(mount.size()),
            mount.percent_used(),
            bytes_to_human_size(mount.stat.f_files),
            mount.percent_inodes_used(),
            mount.mountpoint,
        ))


def main(argv=None):
    """Main entrypoint for script"""
    args = get_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        partitions = psutil.disk_partitions(all=True)
    except (OSError, psutil.Error) as error:
        print('CRITICAL: error loading mounts: {}'.format(error))
        Status.CRITICAL.exit()

    try:
        mounts, inaccessible = filter_mounts(partitions, args)
    except DiskFilterError as error:
        print(error)
        Status.CRITICAL.exit()

    code = do_check(mounts, args)
    if inaccessible and args.inaccessible_status is not None:
        print('{}: {} filesystems were not accessible, run with -vvv for '
              'details'.format(args.inaccessible_status, inaccessible))
        code = max(code, args.inaccessible_status)

    code.exit()


if __name__ == '__main__':
    main()
