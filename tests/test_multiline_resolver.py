"""Tests for records spread across adjacent lines"""

import pytest

from medical.lab_models import ParseTrace, RawLine, Role
from medical.multiline_resolver import MultiLineResolver, extract_value_parts


@pytest.fixture
def resolver():
    return MultiLineResolver()


def raw(*texts):
    return [RawLine(text, i) for i, text in enumerate(texts)]


def test_date_name_value_triple_consumes_three(resolver):
    lines = raw('05/01/2025', 'Glucose', '95 mg/dL', 'Sodium 140 mmol/L')
    resolution = resolver.resolve(lines, 0)

    assert resolution.consumed == 3
    candidate = resolution.candidate
    assert (candidate.name, candidate.value, candidate.unit) == ('Glucose', 95.0, 'mg/dL')
    assert candidate.date == '05/01/2025'
    assert candidate.source == 'date_name_value'


def test_dated_name_then_value_consumes_two(resolver):
    trace = ParseTrace()
    resolution = resolver.resolve(raw('05/01/2025 Creatinine', '1.10 mg/dL'), 0, trace)

    assert resolution.consumed == 2
    assert resolution.candidate.name == 'Creatinine'
    assert resolution.candidate.value == pytest.approx(1.1)
    assert resolution.candidate.date == '05/01/2025'
    assert trace.for_stage('resolver')


def test_name_then_value_with_flag(resolver):
    resolution = resolver.resolve(raw('AST', '116.00 H'), 0)

    assert resolution.consumed == 2
    candidate = resolution.candidate
    assert (candidate.name, candidate.value, candidate.unit) == ('AST', 116.0, '')
    assert candidate.flag == 'H'
    assert candidate.source == 'name_value'


def test_cursor_is_respected(resolver):
    lines = raw('Sodium 140 mmol/L', 'Hemoglobin', '13.4 g/dL')
    resolution = resolver.resolve(lines, 1)

    assert resolution.consumed == 2
    assert resolution.candidate.line_index == 1


@pytest.mark.parametrize('texts', [
    ('05/01/2025', 'Glucose', 'Sodium 140'),
    ('Glucose',),
    ('Glucose', 'Sodium'),
    ('Page', '2'),
    ('AST', '05/01/2025'),
    ('12/25/2024',),
])
def test_no_resolution(resolver, texts):
    assert resolver.resolve(raw(*texts), 0) is None


def test_date_like_pair_rejected(resolver):
    # "Visit" / "12" pairs structurally but 12 looks like a day
    assert resolver.resolve(raw('Visit', '12'), 0) is None


def test_extract_value_parts():
    assert extract_value_parts('95 mg/dL') == {Role.VALUE: '95', Role.UNIT: 'mg/dL'}
    assert extract_value_parts('116.00 H') == {Role.VALUE: '116.00', Role.FLAG: 'H'}
    assert extract_value_parts('<5 U/L') == {Role.COMPARATOR: '<', Role.VALUE: '5', Role.UNIT: 'U/L'}
    assert extract_value_parts('result 7.2 g/dL approx') == {Role.VALUE: '7.2', Role.UNIT: 'g/dL'}
    assert extract_value_parts('pending') is None


def test_name_value_pair_with_decimal_range(resolver):
    resolution = resolver.resolve(raw('WBC', '7.5 x10^3/uL 4.0-11.0'), 0)

    assert resolution.consumed == 2
    candidate = resolution.candidate
    assert (candidate.name, candidate.value, candidate.unit) == ('WBC', 7.5, 'x10^3/uL')
    assert candidate.reference_range == '4.0-11.0'


def test_range_only_value_line_rejected(resolver):
    assert resolver.resolve(raw('Glucose', '70-100'), 0) is None
