#!/usr/bin/env python
"""Tabin Monitoring Plugins - Graphite assertions

Assertions describe when a batch of graphite series should alert, for
example:

    critical if any point is > 0
    critical if any point in at least 40% of series is > 0
    warning if at least 20% of points are not >= 5.5
    critical if most recent point is > 5

The structure of an assertion is:

    <errorkind> if <point spec> [in <series spec>] is|are [not] <op> <N>

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
import operator
from decimal import Decimal
from enum import Enum
from functools import partial
from math import isfinite

from libtabinplugins.common import Status
from libtabinplugins.graphite import FilteredSeries

logger = logging.getLogger(__name__)

ASSERTION_EXAMPLES = [
    'critical if any point is > 0',
    'critical if any point in at least 40% of series is > 0',
    'critical if any point is not > 0',
    'warning if any point is == 9',
    'critical if all points are > 100.0',
    'critical if at least 20% of points are > 100',
    'critical if most recent point is > 5',
    'critical if most recent point in all series are == 0',
]


class AssertionParseError(ValueError):
    """Base for everything that can go wrong parsing an assertion"""


class NoPointSpecifier(AssertionParseError):
    pass


class NoSeriesSpecifier(AssertionParseError):
    pass


class InvalidOperator(AssertionParseError):
    pass


class InvalidThreshold(AssertionParseError):
    pass


class NoRatioSpecifier(AssertionParseError):
    pass


class NoStatusSpecifier(AssertionParseError):
    pass


class AssertionSyntaxError(AssertionParseError):
    pass


class Operator(Enum):
    LT = '<'
    LE = '<='
    GT = '>'
    GE = '>='
    EQ = '=='
    NE = '!='

    def __str__(self):
        return self.value

    def compare(self, value, threshold):
        return _COMPARATORS[self](value, threshold)

    @classmethod
    def from_token(cls, token):
        try:
            return cls(token)
        except ValueError:
            raise InvalidOperator(
                "Expected a comparison operator (e.g. >=), not '{}'"
                .format(token)
            )


_COMPARATORS = {
    Operator.LT: operator.lt,
    Operator.LE: operator.le,
    Operator.GT: operator.gt,
    Operator.GE: operator.ge,
    Operator.EQ: operator.eq,
    Operator.NE: operator.ne,
}


def matches(op, negated, threshold, value):
    """Whether the value of a point violates the assertion

    This is the comparison from the assertion text, inverted if the
    assertion said "is not".
    """
    result = op.compare(value, threshold)
    return not result if negated else result


class Ratio:
    """At least this fraction of the points (or series)

    0 means any, 1 means all of them.
    """

    def __init__(self, ratio):
        if not 0.0 <= ratio <= 1.0:
            raise ValueError('Ratio must be between 0 and 1, not {}'
                             .format(ratio))
        self.ratio = ratio

    def __eq__(self, other):
        return isinstance(other, Ratio) and self.ratio == other.ratio

    def __repr__(self):
        return 'Ratio({!r})'.format(self.ratio)


class Recent:
    """The most recent count points that exist"""

    def __init__(self, count):
        if count < 1:
            raise ValueError('Need at least one recent point, not {}'
                             .format(count))
        self.count = count

    def __eq__(self, other):
        return isinstance(other, Recent) and self.count == other.count

    def __repr__(self):
        return 'Recent({!r})'.format(self.count)


def format_threshold(value):
    if value.is_integer():
        return '{:.0f}'.format(value)
    return '{:f}'.format(Decimal(repr(value)))


def _render_points(points):
    return ', '.join(str(p) for p in points)


class Assertion:
    """A parsed assertion, see the module docstring for the syntax"""

    def __init__(self, operator, negated, threshold, point_assertion,
                 series_ratio=0.0, failure_status=Status.CRITICAL):
        self.operator = operator
        self.negated = negated
        self.threshold = threshold
        self.point_assertion = point_assertion
        self.series_ratio = series_ratio
        self.failure_status = failure_status

    def __eq__(self, other):
        if not isinstance(other, Assertion):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self):
        return (
            'Assertion(operator={operator}, negated={negated}, '
            'threshold={threshold!r}, point_assertion={point_assertion!r}, '
            'series_ratio={series_ratio!r}, failure_status={failure_status})'
            .format(**vars(self))
        )

    @classmethod
    def from_string(cls, raw):
        return parse_assertion(raw)

    def predicate(self):
        return partial(matches, self.operator, self.negated, self.threshold)

    def check(self, series_with_data):
        """Check if any series violates the assertion

        series_with_data must only contain series that have at least one
        existing point.  The diagnostics are printed while checking.
        """
        if not series_with_data:
            raise RuntimeError('Cannot check an assertion without data')

        predicate = self.predicate()
        if isinstance(self.point_assertion, Recent):
            count = self.point_assertion.count
            with_invalid = [
                FilteredSeries(
                    s, s.recent_invalid_points(count, predicate)
                )
                for s in series_with_data
            ]
            with_invalid = [f for f in with_invalid if f.points]
        else:
            ratio = self.point_assertion.ratio
            with_invalid = [
                FilteredSeries(s, s.invalid_points(predicate))
                for s in series_with_data
            ]
            with_invalid = [
                f for f in with_invalid
                if f.points and len(f.points) / len(
                    f.original.existing_points()
                ) >= ratio
            ]
        logger.debug('{} of {} series violate {!r}'.format(
            len(with_invalid), len(series_with_data), self
        ))

        if not with_invalid:
            self._print_ok(series_with_data)
            return Status.OK

        if isinstance(self.point_assertion, Recent):
            self._print_recent_violations(series_with_data, with_invalid)
        else:
            self._print_ratio_violations(series_with_data, with_invalid)

        return self.failure_status

    def _print_ratio_violations(self, series_with_data, with_invalid):
        status = self.failure_status
        ratio = self.point_assertion.ratio
        if len(series_with_data) == len(with_invalid):
            if len(with_invalid) == 1:
                print('{}: '.format(status), end='')
            elif ratio == 0.0:
                print('{}: All {} matched paths have invalid datapoints:'
                      .format(status, len(with_invalid)))
            else:
                print('{}: All {} matched paths have at least {:.0f}% '
                      'invalid datapoints:'
                      .format(status, len(with_invalid), ratio * 100))
        elif ratio == 0.0:
            print('{}: Of {} paths with data, {} have invalid datapoints:'
                  .format(status, len(series_with_data), len(with_invalid)))
        else:
            print('{}: Of {} paths with data, {} have at least {:.1f}% '
                  'invalid datapoints:'
                  .format(status, len(series_with_data), len(with_invalid),
                          ratio * 100))

        prefix = '' if len(with_invalid) == 1 else '       ->'
        for filtered in with_invalid:
            print('{} {} has {} points ({:.1f}%) that are{} {} {}: {}'.format(
                prefix,
                filtered.original.target,
                len(filtered),
                filtered.percent_matched(),
                self._negation(),
                self.operator,
                format_threshold(self.threshold),
                _render_points(filtered.points),
            ))

    def _print_recent_violations(self, series_with_data, with_invalid):
        count = self.point_assertion.count
        print('{}: Of {} paths with data, {} have the last {} points invalid:'
              .format(self.failure_status, len(series_with_data),
                      len(with_invalid), count))

        descriptor = 'point is' if count == 1 else 'points are'
        for filtered in with_invalid:
            print('       -> {} last {} {}{} {} {}: {}'.format(
                filtered.original.target,
                count,
                descriptor,
                self._negation(),
                self.operator,
                format_threshold(self.threshold),
                _render_points(filtered.points),
            ))

    def _print_ok(self, series_with_data):
        if isinstance(self.point_assertion, Recent):
            print('OK: Found {} paths with data, none had their last {} '
                  'datapoints{} {} {}.'.format(
                      len(series_with_data),
                      self.point_assertion.count,
                      self._negation(),
                      self.operator,
                      format_threshold(self.threshold)))
        else:
            ratio = self.point_assertion.ratio
            if ratio == 0.0:
                amount = 'any'
            else:
                amount = 'at least {:.1f}% of'.format(ratio * 100)
            print('OK: Found {} paths with data, none had {} datapoints{} '
                  '{} {:.2f}.'.format(
                      len(series_with_data),
                      amount,
                      self._negation(),
                      self.operator,
                      self.threshold))

        for series in series_with_data:
            print('    -> {}: {}'.format(
                series.target, _render_points(series.points)
            ))

    def _negation(self):
        return ' not' if self.negated else ''


def check_assertions(assertions, series_with_data):
    """Check all assertions, return the most severe status"""
    status = Status.OK
    for assertion in assertions:
        status = max(status, assertion.check(series_with_data))

    return status


# Parsing

class State(Enum):
    """Current state of parsing the assertion"""
    # Deciding if breaking this assertion means critical or warning
    STATUS = 'status'
    # About to describe an assertion over points
    POINTS = 'points'
    # Looking for "in" (a series spec) or "is"/"are" (an operator)
    OPEN = 'open'
    # About to describe an assertion over series
    SERIES = 'series'
    OPERATOR = 'operator'
    THRESHOLD = 'threshold'


class Tokens:
    """Cursor over the words of an assertion"""

    def __init__(self, raw):
        self.words = raw.split()
        self.position = 0

    def __iter__(self):
        return self

    def __next__(self):
        word = self.peek()
        if word is None:
            raise StopIteration
        self.position += 1
        return word

    def peek(self):
        if self.position < len(self.words):
            return self.words[self.position]
        return None

    def next_or_none(self):
        return next(self, None)


def parse_assertion(raw):
    """Parse an assertion string into an Assertion"""
    tokens = Tokens(raw)
    if tokens.peek() is None:
        raise NoStatusSpecifier(
            "Expect assertion to start with 'critical' or 'warning', "
            "not '{}'".format(raw.strip())
        )

    state = State.STATUS
    status = None
    point_assertion = None
    series_ratio = 0.0
    negated = False
    op = None
    threshold = None

    for word in tokens:
        if state is State.STATUS:
            if word == 'critical':
                status = Status.CRITICAL
            elif word == 'warning':
                status = Status.WARNING
            else:
                raise NoStatusSpecifier(
                    "Expect assertion to start with 'critical' or "
                    "'warning', not '{}'".format(word)
                )
            following = tokens.next_or_none()
            if following is None:
                raise AssertionSyntaxError(
                    "Unexpected end of input after '{}'".format(word)
                )
            if following != 'if':
                raise AssertionSyntaxError(
                    "Expected 'if' to follow '{}', found '{}'"
                    .format(word, following)
                )
            state = State.POINTS
        elif state is State.POINTS:
            point_assertion = parse_ratio(tokens, word)
            state = State.OPEN
        elif state is State.OPEN:
            if word == 'in':
                state = State.SERIES
            elif word in ('is', 'are'):
                if tokens.peek() == 'not':
                    negated = True
                    next(tokens)
                state = State.OPERATOR
            else:
                raise AssertionSyntaxError(
                    "Expected 'in' or 'is'/'are' (series spec or "
                    "operator), found '{}'".format(word)
                )
        elif state is State.SERIES:
            ratio = parse_ratio(tokens, word)
            if not isinstance(ratio, Ratio):
                raise AssertionSyntaxError(
                    "You can't specify a most recent series, "
                    "it doesn't make sense."
                )
            series_ratio = ratio.ratio
            state = State.OPEN
        elif state is State.OPERATOR:
            if word == 'be':
                continue
            op = Operator.from_token(word)
            state = State.THRESHOLD
        elif threshold is None:
            threshold = parse_threshold(word)
        else:
            raise AssertionSyntaxError(
                "Unexpected '{}' after the threshold {}"
                .format(word, format_threshold(threshold))
            )

    if threshold is None:
        raise InvalidThreshold(
            "No threshold found (e.g. '{0} N', not '{0}')"
            .format(op or Operator.GE)
        )

    assertion = Assertion(op, negated, threshold, point_assertion,
                          series_ratio, status)
    logger.debug('Parsed {!r} into {!r}'.format(raw, assertion))

    return assertion


def parse_threshold(word):
    try:
        threshold = float(word)
    except ValueError:
        threshold = None
    if threshold is None or not isfinite(threshold):
        raise InvalidThreshold("Couldn't parse float from '{}'".format(word))

    return threshold


def parse_ratio(tokens, word):
    """Convert "all" -> 1, "at least 70% of points" -> 0.7 and so on

    Consumes the words of the ratio from tokens, word is the first of
    them.
    """
    if word == 'any':
        ratio = Ratio(0.0)
    elif word == 'all':
        ratio = Ratio(1.0)
    elif word == 'at':
        ratio = _parse_percentage(tokens)
    elif word == 'most':
        return _parse_most_recent(tokens)
    else:
        raise AssertionSyntaxError(
            "Expected 'any', 'all', 'most' or 'at least', found '{}'"
            .format(word)
        )

    # chew through the stop words
    for word in tokens:
        if word == 'of':
            continue
        if word in ('points', 'point', 'series'):
            break
        raise AssertionSyntaxError(
            "Expected 'of points|series', found '{}'".format(word)
        )

    return ratio


def _parse_percentage(tokens):
    for word in tokens:
        if word == 'least':
            continue
        if word.endswith('%'):
            try:
                return Ratio(float(word[:-1]) / 100)
            except ValueError:
                raise NoRatioSpecifier(
                    "Expected a percentage between 0% and 100%, found '{}'"
                    .format(word)
                )
        if word in ('points', 'point'):
            raise NoPointSpecifier(
                "Expected ratio specifier before '{}'".format(word)
            )
        if word == 'series':
            raise NoSeriesSpecifier(
                "Expected ratio specifier before '{}'".format(word)
            )
        raise NoRatioSpecifier(
            "Expected a percentage like '20%' after 'at least', found '{}'"
            .format(word)
        )

    raise NoRatioSpecifier("Expected a percentage after 'at least'")


def _parse_most_recent(tokens):
    word = tokens.next_or_none()
    if word is None:
        raise AssertionSyntaxError(
            "Expected 'most recent' found trailing 'most'"
        )
    if word != 'recent':
        raise AssertionSyntaxError(
            "Expected 'most recent' found 'most {}'".format(word)
        )

    word = tokens.next_or_none()
    if word is None:
        raise AssertionSyntaxError(
            "Expected 'most recent point' found trailing 'most recent'"
        )
    if word != 'point':
        raise AssertionSyntaxError(
            "Expected 'most recent point' found 'most recent {}'"
            .format(word)
        )

    return Recent(1)
