#!/usr/bin/env python3
"""Tabin Monitoring Plugins - Graphite check

Query graphite and exit based on assertions about the returned series.

Examples:

    ./check_graphite.py https://graphite.example.com 'collectd.*.cpu' \
        'critical if any point is > 95'

    ./check_graphite.py --window 30 https://graphite.example.com \
        'servers.*.load' 'warning if at least 20% of points are > 4' \
        'critical if most recent point in all series are == 0'

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
    ArgumentParser, ArgumentTypeError, RawDescriptionHelpFormatter,
)

from validators import url as valid_url

from libtabinplugins.assertions import (
    ASSERTION_EXAMPLES, Assertion, AssertionParseError, check_assertions,
)
from libtabinplugins.common import (
    STATUS_CHOICES, Status, setup_logging,
)
from libtabinplugins.graphite import GraphiteError, fetch_data

logger = logging.getLogger(__name__)

EPILOG = """About Assertions:

    Assertions look like 'critical if any point in any series is > 5'.

    They describe what you care about in your graphite data. The structure of
    an assertion is as follows:

        <errorkind> if <point spec> [in <series spec>] is|are [not] <operator> <threshold>

    Where:

        - `errorkind` is either `critical` or `warning`
        - `point spec` can be one of:
            - `any point`
            - `all points`
            - `at least <N>% of points`
            - `most recent point`
        - `series spec` (optional) can be one of:
            - `any series`
            - `all series`
            - `at least <N>% of series`
        - `not` is optional, and inverts the following operator
        - `operator` is one of: `==` `!=` `<` `>` `<=` `>=`
        - `threshold` is a floating-point value (e.g. 100, 78.0)

    Here are some example assertions:

        - `{}`
""".format('`\n        - `'.join(ASSERTION_EXAMPLES))


def graphite_url(value):
    if not valid_url(value, simple_host=True):
        raise ArgumentTypeError(
            '{} is not a valid url, it must include the scheme (http/s)'
            .format(value)
        )
    return value.rstrip('/')


def status(value):
    try:
        return Status.from_string(value)
    except ValueError as error:
        raise ArgumentTypeError(str(error))


def get_parser():
    """Get argument parser -> ArgumentParser"""
    parser = ArgumentParser(
        description='Query graphite and exit based on predicates',
        epilog=EPILOG,
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        'url', type=graphite_url,
        help='The domain to query graphite. Must include scheme (http/s)',
    )
    parser.add_argument(
        'path',
        help='The graphite path to query. For example: "collectd.*.cpu"',
    )
    parser.add_argument(
        'assertions', nargs='+', metavar='assertion',
        help='The assertion to make against the PATH. See below.',
    )
    parser.add_argument(
        '-w', '--window', type=int, default=10, metavar='MINUTES',
        help='How many minutes of data to test. Default 10.',
    )
    parser.add_argument(
        '--window-start', type=int, default=0, metavar='MINUTES_IN_PAST',
        help='How far back to start the window. Default is now.',
    )
    parser.add_argument(
        '-t', '--timeout', type=float, default=10, metavar='SECONDS',
        help='Timeout of the request to graphite. Default 10.',
    )
    parser.add_argument(
        '--print-url', action='store_true',
        help='Unconditionally print the graphite url queried',
    )
    parser.add_argument(
        '--verify-assertions', action='store_true',
        help='Just check assertion syntax, do not query urls',
    )
    parser.add_argument(
        '--no-data', type=status, default=Status.WARNING,
        metavar='{{{}}}'.format(','.join(STATUS_CHOICES)),
        help='What to do with no data. This is the value to use for the '
             "assertion 'if all values are null'. Default: warning.",
    )
    parser.add_argument(
        '--graphite-error', type=status, default=Status.UNKNOWN,
        metavar='{{{}}}'.format(','.join(STATUS_CHOICES)),
        help='What to say if graphite returns a 500 or invalid JSON. '
             'Default: unknown.',
    )
    parser.add_argument(
        '-v', '--verbose', action='count', default=0,
        help='set the script verbosity, could be used multiple',
    )

    return parser


def parse_assertions(raw_assertions):
    """Parse all assertions, the first invalid one is reported

    -> (Status, list of Assertion)
    """
    assertions = []
    for raw in raw_assertions:
        try:
            assertions.append(Assertion.from_string(raw))
        except AssertionParseError as error:
            print('Error `{}` in assertion `{}`'.format(error, raw))
            return Status.CRITICAL, []

    return Status.OK, assertions


class Runner:
    """Fetch the series and check the assertions against them"""

    def __init__(self, url, path, assertions, window, window_start, timeout,
                 print_url, no_data, graphite_error, **kwargs):
        self.url = url
        self.path = path
        self.assertions = assertions
        # The window is counted from its start
        self.window = window_start + window
        self.start_at = window_start
        self.timeout = timeout
        self.print_url = print_url
        self.no_data = no_data
        self.graphite_error = graphite_error

    def run(self):
        try:
            response = fetch_data(
                self.url, self.path, self.window, self.start_at,
                timeout=self.timeout, print_url=self.print_url,
            )
        except GraphiteError as error:
            print('{}: Error for {}: {}'.format(
                self.graphite_error, self.url, error
            ))
            return self.graphite_error

        if not self.has_data(response):
            return self.no_data

        return check_assertions(self.assertions, response.series)

    def has_data(self, response):
        """Check if we have any graphite data

        Prints what is missing if there is nothing to do.
        """
        bail = False
        if not response.series:
            print(
                "{}: Graphite returned no matching series for pattern '{}'"
                .format(self.no_data, self.path)
            )
            bail = True

        original_len = len(response.series)
        response.filter_to_series_with_data()
        if not response.series:
            print(
                '{}: Graphite found {} series but returned only null '
                'datapoints for them'.format(self.no_data, original_len)
            )
            bail = True

        if bail:
            print('INFO: Full query: {}'.format(response.url))

        return not bail


def main(argv=None):
    """Main entry point"""
    args = get_parser().parse_args(argv)
    setup_logging(args.verbose)
    logger.debug('Arguments are {}'.format(vars(args)))

    code, assertions = parse_assertions(args.assertions)
    if code is not Status.OK or args.verify_assertions:
        code.exit()

    args.assertions = assertions
    runner = Runner(**vars(args))
    runner.run().exit()


if __name__ == '__main__':
    main()
