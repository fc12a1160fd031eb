#!/usr/bin/env python
"""Tabin Monitoring Plugins - Graphite series

Types for the series Graphite returns from its render API, the queries
the assertion evaluator runs against them, and the function fetching
them over HTTP.

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
from datetime import datetime, timezone
from json import JSONDecodeError, loads
from typing import Callable, List, NamedTuple, Optional

from requests import Request, RequestException, Session

logger = logging.getLogger(__name__)

Predicate = Callable[[float], bool]


class GraphiteError(Exception):
    """Graphite could not be reached or returned garbage"""


class DataPoint(NamedTuple):
    """One of the datapoints that graphite has returned

    Graphite always returns all values in its time range, even if it
    hasn't got any data for them, so the value might be None.
    """
    value: Optional[float]
    time: datetime

    @classmethod
    def from_json(cls, pair):
        value, timestamp = pair
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(
                    'Datapoint value must be a number, not {!r}'.format(value)
                )
            value = float(value)
        return cls(value, datetime.fromtimestamp(int(timestamp), timezone.utc))

    @property
    def exists(self):
        return self.value is not None

    def __str__(self):
        if self.value is None:
            value = 'null'
        elif self.value.is_integer():
            value = '{:.0f}'.format(self.value)
        else:
            value = '{:.2f}'.format(self.value)

        return '{} (at {})'.format(value, self.time.strftime('%H:%Mz'))


class Series:
    """All the data for one fully-resolved target

    Any given graphite api call can result in data for multiple targets.
    """

    def __init__(self, target, points):
        self.target = target
        self.points = tuple(points)

    def __eq__(self, other):
        if not isinstance(other, Series):
            return NotImplemented
        return (self.target, self.points) == (other.target, other.points)

    def __repr__(self):
        return 'Series({!r}, {!r})'.format(self.target, list(self.points))

    @classmethod
    def from_json(cls, obj):
        return cls(
            obj['target'],
            [DataPoint.from_json(pair) for pair in obj['datapoints']],
        )

    def existing_points(self) -> List[DataPoint]:
        return [p for p in self.points if p.exists]

    def has_data(self):
        return any(p.exists for p in self.points)

    def invalid_points(self, predicate: Predicate) -> List[DataPoint]:
        """The points that exist and satisfy the predicate"""
        return [p for p in self.points if p.exists and predicate(p.value)]

    def recent_invalid_points(self, count, predicate: Predicate):
        """Matching points among the last count existing points

        The result is ordered most recent first.
        """
        inspected = 0
        invalid = []
        for point in reversed(self.points):
            if inspected >= count:
                break
            if not point.exists:
                continue
            inspected += 1
            if predicate(point.value):
                invalid.append(point)

        return invalid


class FilteredSeries:
    """The points of a series that matched some filter"""

    def __init__(self, original, points):
        self.original = original
        self.points = points

    def __len__(self):
        return len(self.points)

    def percent_matched(self):
        """Percent of the existing points of the original that matched"""
        existing = len(self.original.existing_points())
        if not existing:
            raise RuntimeError(
                'Series {} has no datapoints to compare against'
                .format(self.original.target)
            )

        return len(self.points) / existing * 100.0


class GraphiteResponse:
    """The series returned for a query together with the queried url"""

    def __init__(self, url, series):
        self.url = url
        self.series = series

    def filter_to_series_with_data(self):
        self.series = filter_to_series_with_data(self.series)


def filter_to_series_with_data(batch):
    return [s for s in batch if s.has_data()]


def load_series(content):
    """Decode the json graphite returns into a list of Series"""
    try:
        decoded = loads(content)
    except JSONDecodeError as error:
        raise GraphiteError('Graphite returned invalid json: {}'.format(error))

    try:
        return [Series.from_json(obj) for obj in decoded]
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as error:
        raise GraphiteError(
            'Graphite returned unexpected json: {!r}'.format(error)
        )


def render_request(url, target, window, start_at):
    """Build the request for the render api

    The window is the number of minutes in the past to start the query,
    start_at the number of minutes in the past to end it.
    """
    return Request('GET', url.rstrip('/') + '/render', params={
        'target': target,
        'format': 'json',
        'from': '-{}min'.format(window),
        'until': '-{}min'.format(start_at),
    })


def fetch_data(url, target, window, start_at, timeout=10, print_url=False):
    """Load data from graphite"""
    with Session() as session:
        prepared = session.prepare_request(
            render_request(url, target, window, start_at)
        )
        if print_url:
            print('INFO: querying {}'.format(prepared.url))
        logger.debug('Querying {}'.format(prepared.url))

        try:
            response = session.send(prepared, timeout=timeout)
            response.raise_for_status()
        except RequestException as error:
            raise GraphiteError(str(error))

    try:
        series = load_series(response.text)
    except GraphiteError as error:
        raise GraphiteError(
            '{}\n{}\n=========================\n'
            'The full url queried was: {}'
            .format(error, response.text, response.url)
        )
    logger.debug('Graphite returned {} series'.format(len(series)))

    return GraphiteResponse(response.url, series)
