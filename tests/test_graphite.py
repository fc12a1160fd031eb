import json
from datetime import datetime, timezone
from unittest import mock

import pytest
from requests import ConnectionError, Response

from libtabinplugins.graphite import (
    DataPoint, FilteredSeries, GraphiteError, GraphiteResponse, Series,
    fetch_data, filter_to_series_with_data, load_series, render_request,
)


def at(timestamp):
    return datetime.fromtimestamp(timestamp, timezone.utc)


def series(target, pairs):
    return Series(target, [DataPoint.from_json(p) for p in pairs])


def test_deserialize_graphite_json():
    content = json.dumps([
        {'target': 'test.path.one', 'datapoints': [[1, 1000], [None, 1060]]},
        {'target': 'test.path.two', 'datapoints': [[2.5, 1000]]},
    ])

    assert load_series(content) == [
        Series('test.path.one', [
            DataPoint(1.0, at(1000)), DataPoint(None, at(1060)),
        ]),
        Series('test.path.two', [DataPoint(2.5, at(1000))]),
    ]


def test_invalid_json_is_a_graphite_error():
    with pytest.raises(GraphiteError, match='invalid json'):
        load_series('<html>500</html>')


def test_unexpected_json_is_a_graphite_error():
    with pytest.raises(GraphiteError, match='unexpected json'):
        load_series(json.dumps([{'name': 'test.path'}]))


def test_datapoint_str():
    assert str(DataPoint(5.0, at(60))) == '5 (at 00:01z)'
    assert str(DataPoint(5.125, at(3600))) == '5.12 (at 01:00z)'
    assert str(DataPoint(None, at(0))) == 'null (at 00:00z)'


def test_invalid_points_never_contain_nulls():
    s = series('a', [[None, 1], [1, 2], [None, 3], [3, 4]])

    assert s.invalid_points(lambda v: True) == [
        DataPoint(1.0, at(2)), DataPoint(3.0, at(4)),
    ]
    assert s.invalid_points(lambda v: v > 2) == [DataPoint(3.0, at(4))]


def test_recent_invalid_points_skip_nulls_from_the_end():
    s = series('a', [[1, 1], [5, 2], [None, 3], [7, 4], [None, 5]])

    assert s.recent_invalid_points(1, lambda v: v > 2) == [
        DataPoint(7.0, at(4)),
    ]
    assert s.recent_invalid_points(2, lambda v: v > 2) == [
        DataPoint(7.0, at(4)), DataPoint(5.0, at(2)),
    ]
    assert s.recent_invalid_points(2, lambda v: v < 2) == []
    assert s.recent_invalid_points(3, lambda v: v < 2) == [
        DataPoint(1.0, at(1)),
    ]


def test_filter_to_series_with_data():
    empty = series('empty', [[None, 1], [None, 2]])
    full = series('full', [[1, 1], [None, 2], [3, 3]])

    assert filter_to_series_with_data([empty, full]) == [full]

    response = GraphiteResponse('https://graphite.example.com', [empty, full])
    response.filter_to_series_with_data()
    assert response.series == [full]


def test_percent_matched_counts_existing_points():
    s = series('a', [[0, 1], [0, 2], [0, 3], [None, 4], [None, 5]])
    filtered = FilteredSeries(s, s.invalid_points(lambda v: v == 0))

    assert len(filtered) == 3
    assert filtered.percent_matched() == 100.0


def test_percent_matched_requires_data():
    s = series('a', [[None, 1]])
    with pytest.raises(RuntimeError):
        FilteredSeries(s, []).percent_matched()


def test_render_request():
    request = render_request(
        'https://graphite.example.com/', 'servers.*.load', 15, 5
    )

    assert request.method == 'GET'
    assert request.url == 'https://graphite.example.com/render'
    assert request.params == {
        'target': 'servers.*.load',
        'format': 'json',
        'from': '-15min',
        'until': '-5min',
    }


def make_response(status_code, body, url):
    response = Response()
    response.status_code = status_code
    response._content = body.encode()
    response.url = url
    return response


def test_fetch_data():
    body = json.dumps([{'target': 'a.b', 'datapoints': [[1, 60]]}])
    url = 'https://graphite.example.com/render?target=a.b'
    with mock.patch('libtabinplugins.graphite.Session.send') as send:
        send.return_value = make_response(200, body, url)
        response = fetch_data('https://graphite.example.com', 'a.b', 10, 0)

    assert response.url == url
    assert response.series == [series('a.b', [[1, 60]])]
    prepared = send.call_args[0][0]
    assert prepared.url.startswith('https://graphite.example.com/render?')
    assert 'from=-10min' in prepared.url
    assert send.call_args[1] == {'timeout': 10}


def test_fetch_data_prints_url(capsys):
    with mock.patch('libtabinplugins.graphite.Session.send') as send:
        send.return_value = make_response(200, '[]', 'https://x.example.com')
        fetch_data('https://graphite.example.com', 'a.b', 10, 0,
                   print_url=True)

    assert capsys.readouterr().out.startswith(
        'INFO: querying https://graphite.example.com/render?'
    )


def test_fetch_data_http_error():
    with mock.patch('libtabinplugins.graphite.Session.send') as send:
        send.return_value = make_response(
            500, 'oops', 'https://graphite.example.com/render'
        )
        with pytest.raises(GraphiteError, match='500'):
            fetch_data('https://graphite.example.com', 'a.b', 10, 0)


def test_fetch_data_connection_error():
    with mock.patch('libtabinplugins.graphite.Session.send') as send:
        send.side_effect = ConnectionError('refused')
        with pytest.raises(GraphiteError, match='refused'):
            fetch_data('https://graphite.example.com', 'a.b', 10, 0)


def test_fetch_data_bad_body_names_the_url():
    url = 'https://graphite.example.com/render?target=a.b'
    with mock.patch('libtabinplugins.graphite.Session.send') as send:
        send.return_value = make_response(200, 'not json', url)
        with pytest.raises(GraphiteError) as excinfo:
            fetch_data('https://graphite.example.com', 'a.b', 10, 0)

    assert 'The full url queried was: {}'.format(url) in str(excinfo.value)
    assert 'not json' in str(excinfo.value)


@pytest.mark.parametrize('value', [True, '5', [1]])
def test_non_numeric_value_is_a_graphite_error(value):
    content = json.dumps([
        {'target': 'test.path', 'datapoints': [[value, 1000]]},
    ])
    with pytest.raises(GraphiteError, match='unexpected json'):
        load_series(content)


@pytest.mark.parametrize('timestamp', [10 ** 20, -10 ** 20])
def test_out_of_range_timestamp_is_a_graphite_error(timestamp):
    content = json.dumps([
        {'target': 'test.path', 'datapoints': [[1, timestamp]]},
    ])
    with pytest.raises(GraphiteError, match='unexpected json'):
        load_series(content)


def test_fetch_data_closes_the_session():
    url = 'https://graphite.example.com/render?target=a.b'
    with mock.patch('libtabinplugins.graphite.Session.send') as send, \
            mock.patch('libtabinplugins.graphite.Session.close') as close:
        send.return_value = make_response(200, '[]', url)
        fetch_data('https://graphite.example.com', 'a.b', 10, 0)

    close.assert_called_once_with()


def test_fetch_data_closes_the_session_on_error():
    with mock.patch('libtabinplugins.graphite.Session.send') as send, \
            mock.patch('libtabinplugins.graphite.Session.close') as close:
        send.side_effect = ConnectionError('refused')
        with pytest.raises(GraphiteError):
            fetch_data('https://graphite.example.com', 'a.b', 10, 0)

    close.assert_called_once_with()
