#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Writeable filesystem check

Check that a file system is writeable by writing a byte to a file on it
and removing the file again.

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
from argparse import ArgumentParser

from libtabinplugins.common import Status


def parse_args(argv=None):
    parser = ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('filename', help='the file to write to')
    return parser.parse_args(argv)


def check_file_writeable(filename):
    """Try to write to the file -> (Status, message)"""
    try:
        with open(filename, 'wb') as fd:
            fd.write(b't')
            fd.flush()
        os.remove(filename)
    except FileNotFoundError:
        directory = os.path.dirname(filename) or '/'
        return (
            Status.CRITICAL,
            'CRITICAL: directory {} does not exist.'.format(directory),
        )
    except OSError as error:
        return (
            Status.CRITICAL,
            'CRITICAL: unexpected error writing to {}: {}'.format(
                filename, error
            ),
        )

    return Status.OK, 'OK: wrote some bytes to {}'.format(filename)


def main(argv=None):
    args = parse_args(argv)
    code, message = check_file_writeable(args.filename)
    print(message)
    code.exit()


if __name__ == '__main__':
    main()
