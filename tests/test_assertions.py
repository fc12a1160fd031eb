import pytest

from libtabinplugins.assertions import (
    ASSERTION_EXAMPLES, Assertion, AssertionSyntaxError, InvalidOperator,
    InvalidThreshold, NoPointSpecifier, NoRatioSpecifier, NoSeriesSpecifier,
    NoStatusSpecifier, Operator, Ratio, Recent, check_assertions,
    format_threshold, matches, parse_assertion,
)
from libtabinplugins.common import Status
from libtabinplugins.graphite import (
    DataPoint, Series, filter_to_series_with_data,
)


def series(target, pairs):
    return Series(target, [DataPoint.from_json(p) for p in pairs])


def two_to_six():
    return series('test.path', [[2, 20], [3, 30], [4, 40], [5, 50], [6, 60]])


# Parsing

def test_parse_most_recent():
    assert parse_assertion('critical if most recent point is > 5') == \
        Assertion(Operator.GT, False, 5.0, Recent(1), 0.0, Status.CRITICAL)


def test_parse_percent_of_points_negated():
    assertion = parse_assertion(
        'critical if at least 20% of points are not >= 5.5'
    )

    assert assertion.operator is Operator.GE
    assert assertion.negated
    assert assertion.threshold == 5.5
    assert assertion.point_assertion == Ratio(0.2)
    assert assertion.series_ratio == 0.0


def test_parse_warning_any_point():
    assert parse_assertion('warning if any point is == 9') == \
        Assertion(Operator.EQ, False, 9.0, Ratio(0.0), 0.0, Status.WARNING)


def test_parse_all_points():
    assertion = parse_assertion('critical if all points are > 100.0')
    assert assertion.point_assertion == Ratio(1.0)
    assert assertion.threshold == 100.0


def test_parse_series_ratio():
    assertion = parse_assertion(
        'critical if any point in at least 40% of series is > 0'
    )
    assert assertion.point_assertion == Ratio(0.0)
    assert assertion.series_ratio == 0.4


def test_parse_recent_in_all_series():
    assertion = parse_assertion(
        'critical if most recent point in all series are == 0'
    )
    assert assertion.point_assertion == Recent(1)
    assert assertion.series_ratio == 1.0
    assert assertion.operator is Operator.EQ


def test_parse_doubled_of():
    assertion = parse_assertion(
        'critical if at least 80% of of points are not >= 5.5'
    )
    assert assertion.point_assertion == Ratio(0.8)


def test_parse_optional_be():
    assertion = parse_assertion('critical if any point is be > 3')
    assert assertion.operator is Operator.GT


@pytest.mark.parametrize('raw', ASSERTION_EXAMPLES)
def test_examples_parse(raw):
    assert isinstance(parse_assertion(raw), Assertion)


@pytest.mark.parametrize('raw, error', [
    ('', NoStatusSpecifier),
    ('   ', NoStatusSpecifier),
    ('bad if any point is > 0', NoStatusSpecifier),
    ('critical', AssertionSyntaxError),
    ('critical when any point is > 0', AssertionSyntaxError),
    ('critical if some point is > 0', AssertionSyntaxError),
    ('critical if any point was > 0', AssertionSyntaxError),
    ('critical if at least of points are > 0', NoRatioSpecifier),
    ('critical if at least points are > 0', NoPointSpecifier),
    ('critical if any point in at least series are > 0', NoSeriesSpecifier),
    ('critical if at least 120% of points are > 0', NoRatioSpecifier),
    ('critical if at least x% of points are > 0', NoRatioSpecifier),
    ('critical if at least 20', NoRatioSpecifier),
    ('critical if any point is => 0', InvalidOperator),
    ('critical if any point is > many', InvalidThreshold),
    ('critical if any point is > nan', InvalidThreshold),
    ('critical if any point is > inf', InvalidThreshold),
    ('critical if any point is >', InvalidThreshold),
    ('critical if any point is > 5 please', AssertionSyntaxError),
    ('critical if most point is > 5', AssertionSyntaxError),
    ('critical if most recent is > 5', AssertionSyntaxError),
    ('critical if most', AssertionSyntaxError),
    ('critical if any point in most recent point is > 5',
     AssertionSyntaxError),
])
def test_parse_errors(raw, error):
    with pytest.raises(error):
        parse_assertion(raw)


def test_parse_errors_are_value_errors():
    with pytest.raises(ValueError):
        parse_assertion('nothing to see here')


# Evaluation

@pytest.mark.parametrize('op, value, expected', [
    (Operator.LT, 1, True),
    (Operator.LT, 2, False),
    (Operator.LE, 2, True),
    (Operator.GT, 3, True),
    (Operator.GE, 2, True),
    (Operator.GE, 1, False),
    (Operator.EQ, 2, True),
    (Operator.NE, 2, False),
])
def test_matches(op, value, expected):
    assert matches(op, False, 2.0, value) is expected
    assert matches(op, True, 2.0, value) is not expected


def test_any_point_above_threshold_is_critical(capsys):
    assertion = parse_assertion('critical if any point is > 5')
    assert assertion.check([two_to_six()]) is Status.CRITICAL


def test_no_point_above_threshold_is_ok(capsys):
    assertion = parse_assertion('critical if any point is > 6')
    assert assertion.check([two_to_six()]) is Status.OK


def test_warning_assertion_fails_with_warning(capsys):
    assertion = parse_assertion('warning if any point is > 5')
    assert assertion.check([two_to_six()]) is Status.WARNING


def test_at_least_80_percent_not_above(capsys):
    assertion = parse_assertion(
        'critical if at least 80% of of points are not >= 5.5'
    )

    assert assertion.check([two_to_six()]) is Status.CRITICAL
    assert capsys.readouterr().out == (
        'CRITICAL:  test.path has 4 points (80.0%) that are not >= 5.5: '
        '2 (at 00:00z), 3 (at 00:00z), 4 (at 00:00z), 5 (at 00:00z)\n'
    )


def test_at_least_79_percent_below(capsys):
    assertion = parse_assertion(
        'critical if at least 79% of of points are < 6'
    )
    assert assertion.check([two_to_six()]) is Status.CRITICAL


def test_at_least_81_percent_below_is_ok(capsys):
    assertion = parse_assertion(
        'critical if at least 81% of points are < 6'
    )
    assert assertion.check([two_to_six()]) is Status.OK


def test_all_points_ignores_nulls(capsys):
    s = series('a', [[10, 1], [None, 2], [12, 3]])
    assertion = parse_assertion('critical if all points are > 5')
    assert assertion.check([s]) is Status.CRITICAL

    s = series('a', [[10, 1], [1, 2], [12, 3]])
    assert assertion.check([s]) is Status.OK


def test_ratio_counts_only_existing_points(capsys):
    s = series('a', [[0, 1], [0, 2], [0, 3], [None, 4], [None, 5]])
    assertion = parse_assertion(
        'critical if at least 70% of points are == 0'
    )
    assert assertion.check([s]) is Status.CRITICAL


def test_null_only_series_are_filtered(capsys):
    batch = filter_to_series_with_data([
        series('only.nulls', [[None, 1], [None, 2]]),
        series('some.data', [[1, 1], [None, 2], [3, 3]]),
    ])
    assert [s.target for s in batch] == ['some.data']

    assertion = parse_assertion('critical if any point is not > 0')
    assert assertion.check(batch) is Status.OK


def test_most_recent_point(capsys):
    s = series('a', [[9, 1], [1, 2], [None, 3]])

    assert parse_assertion('critical if most recent point is > 5') \
        .check([s]) is Status.OK
    assert parse_assertion('critical if most recent point is < 5') \
        .check([s]) is Status.CRITICAL


def test_check_requires_data():
    assertion = parse_assertion('critical if any point is > 5')
    with pytest.raises(RuntimeError):
        assertion.check([])


def test_check_assertions_returns_the_worst(capsys):
    assertions = [
        parse_assertion('critical if any point is > 100'),
        parse_assertion('warning if any point is > 5'),
        parse_assertion('critical if any point is < 3'),
    ]
    assert check_assertions(assertions, [two_to_six()]) is Status.CRITICAL
    assert check_assertions(assertions[:2], [two_to_six()]) is Status.WARNING
    assert check_assertions(assertions[:1], [two_to_six()]) is Status.OK


# Reporting

def test_ok_output(capsys):
    assertion = parse_assertion('critical if any point is > 10')
    assertion.check([series('a.b', [[1, 0], [None, 60]])])

    assert capsys.readouterr().out == (
        'OK: Found 1 paths with data, none had any datapoints > 10.00.\n'
        '    -> a.b: 1 (at 00:00z), null (at 00:01z)\n'
    )


def test_ok_output_with_ratio(capsys):
    assertion = parse_assertion('critical if at least 50% of points are > 10')
    assertion.check([series('a.b', [[1, 0]])])

    assert capsys.readouterr().out.startswith(
        'OK: Found 1 paths with data, none had at least 50.0% of datapoints '
        '> 10.00.\n'
    )


def test_ok_output_for_recent(capsys):
    assertion = parse_assertion('critical if most recent point is not > 0')
    assertion.check([series('a.b', [[1, 0]])])

    assert capsys.readouterr().out.startswith(
        'OK: Found 1 paths with data, none had their last 1 datapoints '
        'not > 0.\n'
    )


def test_all_series_invalid_output(capsys):
    batch = [series('a', [[7, 0]]), series('b', [[8.5, 60]])]
    parse_assertion('critical if any point is > 5').check(batch)

    assert capsys.readouterr().out == (
        'CRITICAL: All 2 matched paths have invalid datapoints:\n'
        '       -> a has 1 points (100.0%) that are > 5: 7 (at 00:00z)\n'
        '       -> b has 1 points (100.0%) that are > 5: 8.50 (at 00:01z)\n'
    )


def test_some_series_invalid_output(capsys):
    batch = [series('a', [[7, 0]]), series('b', [[1, 0]]),
             series('c', [[9, 0]])]
    parse_assertion('warning if at least 50% of points are > 5').check(batch)

    assert capsys.readouterr().out.splitlines()[0] == (
        'WARNING: Of 3 paths with data, 2 have at least 50.0% '
        'invalid datapoints:'
    )


def test_recent_violation_output(capsys):
    batch = [series('a', [[1, 0], [7, 60]]), series('b', [[1, 0]])]
    parse_assertion('critical if most recent point is > 5').check(batch)

    assert capsys.readouterr().out == (
        'CRITICAL: Of 2 paths with data, 1 have the last 1 points invalid:\n'
        '       -> a last 1 point is > 5: 7 (at 00:01z)\n'
    )


@pytest.mark.parametrize('value, expected', [
    (100.0, '100'),
    (5.5, '5.5'),
    (0.00001, '0.00001'),
    (0.25, '0.25'),
    (1e-07, '0.0000001'),
])
def test_format_threshold_is_plain_decimal(value, expected):
    assert format_threshold(value) == expected


def test_small_threshold_in_output(capsys):
    assertion = parse_assertion('critical if any point is > 0.00001')
    assert assertion.check([series('test.path', [[0.5, 20]])]) \
        is Status.CRITICAL

    out = capsys.readouterr().out
    assert '> 0.00001:' in out
    assert 'e-05' not in out
