"""Tests for the single-line template cascade"""

import re

import pytest

from medical.cascade_parser import (
    LINE_TEMPLATES,
    VALUE_TEMPLATES,
    CandidatePattern,
    PatternCascadeParser,
    match_named,
    match_template,
    normalize_line,
    parse_value,
)
from medical.lab_models import ParseTrace, RawLine, Role


@pytest.fixture
def parser():
    return PatternCascadeParser()


def parse(parser, text, trace=None):
    return parser.parse(RawLine(text, 0), trace)


@pytest.mark.parametrize('text, source, name, value, unit', [
    ('05/01/2025 ALT   31.00 U/L', 'date_name_gap_value_unit', 'ALT', 31.0, 'U/L'),
    ('05/01/2025 ALT 31.00 U/L', 'date_name_value_unit', 'ALT', 31.0, 'U/L'),
    ('Glucose: 95 mg/dL (70-100)', 'name_colon_value_unit_range', 'Glucose', 95.0, 'mg/dL'),
    ('Glucose: 160 mg/dL [H]', 'name_colon_value_unit_flag', 'Glucose', 160.0, 'mg/dL'),
    ('CRP: <0.5 mg/L', 'name_colon_comparator_value_unit', 'CRP', 0.5, 'mg/L'),
    ('Potassium: 4.1 mmol/L', 'name_colon_value_unit', 'Potassium', 4.1, 'mmol/L'),
    ('Glucose: 95 mg/dL 70-100', 'name_colon_value_unit', 'Glucose', 95.0, 'mg/dL'),
    ('CRP <0.5 mg/L', 'name_comparator_value_unit', 'CRP', 0.5, 'mg/L'),
    ('TSH >100 uIU/mL', 'name_comparator_value_unit', 'TSH', 100.0, 'uIU/mL'),
    ('Sodium 140 mmol/L 135-145', 'name_value_unit_range', 'Sodium', 140.0, 'mmol/L'),
    ('HbA1c 6.1 % H', 'name_value_unit_flag', 'HbA1c', 6.1, '%'),
    ('Hemoglobin 13.4 g/dL', 'name_value_unit', 'Hemoglobin', 13.4, 'g/dL'),
    ('Hemoglobin 13.4', 'name_value', 'Hemoglobin', 13.4, ''),
])
def test_template_cascade(parser, text, source, name, value, unit):
    candidate = parse(parser, text)

    assert candidate is not None
    assert candidate.source == source
    assert candidate.name == name
    assert candidate.value == pytest.approx(value)
    assert candidate.unit == unit


def test_captured_roles_routed_by_name(parser):
    candidate = parse(parser, 'Sodium 140 mmol/L 135-145')
    assert candidate.reference_range == '135-145'

    candidate = parse(parser, 'CRP: <0.5 mg/L')
    assert candidate.comparator == '<'

    candidate = parse(parser, '05/01/2025 ALT 31.00 U/L')
    assert candidate.date == '05/01/2025'
    assert candidate.reference_range == ''


@pytest.mark.parametrize('text, reference_range, flag', [
    ('Glucose: 95 mg/dL 70-100', '70-100', ''),
    ('Glucose: 160 mg/dL 70-100 H', '70-100', 'H'),
    ('CRP: <0.5 mg/L 0-5', '0-5', ''),
    ('WBC 7.5 x10^3/uL 4.0-11.0', '4.0-11.0', ''),
])
def test_unbracketed_range_kept(parser, text, reference_range, flag):
    candidate = parse(parser, text)

    assert candidate.reference_range == reference_range
    assert candidate.flag == flag
    assert candidate.date == ''


def test_comparator_without_colon(parser):
    candidate = parse(parser, 'TSH >100 uIU/mL')
    assert (candidate.name, candidate.comparator) == ('TSH', '>')

    # A range after the unit is still a range, not a comparator value
    candidate = parse(parser, 'Sodium 140 mmol/L >135')
    assert (candidate.name, candidate.value, candidate.reference_range) == ('Sodium', 140.0, '>135')


def test_fallback_routes_comparator(parser):
    candidate = parse(parser, 'CRP <0.5 mg/L; ESR 12 mm/hr')

    assert candidate.source == 'fallback'
    assert (candidate.name, candidate.value, candidate.unit) == ('CRP', 0.5, 'mg/L')
    assert candidate.comparator == '<'


@pytest.mark.parametrize('text', ['Glucose 70-100', 'Glucose 70 - 100 mg/dL'])
def test_range_only_line_is_not_a_result(parser, text):
    assert parse(parser, text) is None


def test_thousands_separator(parser):
    candidate = parse(parser, 'Platelets: 250,000 /uL')
    assert candidate.value == 250000.0


def test_fallback_on_free_text(parser):
    trace = ParseTrace()
    candidate = parse(parser, 'ALT 45 U/L; AST 30 U/L', trace)

    assert candidate.source == 'fallback'
    assert (candidate.name, candidate.value, candidate.unit) == ('ALT', 45.0, 'U/L')
    assert trace.for_stage('fallback')


@pytest.mark.parametrize('text', [
    '12/25/2024',
    'Page 1 of 3',
    'COMPREHENSIVE METABOLIC PANEL',
    'Glucose',
    '',
])
def test_no_candidate(parser, text):
    assert parse(parser, text) is None


def test_date_component_rejected_by_every_path(parser):
    # "Visit 12" is structurally a name/value pair
    assert parse(parser, 'Visit 12') is None


@pytest.mark.parametrize('template', LINE_TEMPLATES + VALUE_TEMPLATES, ids=lambda t: t.name)
def test_under_captured_match_yields_nothing(template):
    groups = len(template.roles) - 1
    truncated = CandidatePattern(
        template.name,
        re.compile('^' + r'\s*'.join([r'(\S+)'] * groups) + r'.*$'),
        template.roles,
        template.required,
    )
    line = '05/01/2025 ALT 31.00 U/L H 10-40'

    assert truncated.regex.search(line) is not None
    assert match_template(truncated, line) is None


def test_missing_required_role_yields_nothing():
    pattern = CandidatePattern(
        'optional_groups',
        re.compile(r'^([A-Za-z]+)?\s*(\d+)?$'),
        (Role.NAME, Role.VALUE),
        frozenset({Role.NAME, Role.VALUE}),
    )
    assert match_template(pattern, 'ALT') is None
    assert match_template(pattern, 'ALT 31') == {Role.NAME: 'ALT', Role.VALUE: '31'}


def test_template_catalog_is_consistent():
    for template in LINE_TEMPLATES + VALUE_TEMPLATES:
        assert template.regex.groups == len(template.roles), template.name
        assert template.required.issubset(template.roles), template.name
        assert template.min_captures == len(template.required)


def test_partial_shapes_never_emit():
    only_partials = PatternCascadeParser(templates=[t for t in LINE_TEMPLATES if not t.emits])
    assert only_partials.parse(RawLine('Glucose', 0)) is None
    assert match_named('name_only', 'Glucose:') == {Role.NAME: 'Glucose'}
    assert match_named('name_only', '95 mg/dL') is None


def test_parse_value():
    assert parse_value('31.00') == 31.0
    assert parse_value('-.5') == -0.5
    assert parse_value('inf') is None
    assert parse_value('abc') is None


def test_normalize_line():
    assert normalize_line('WBC 7,500 /uL') == 'WBC 7500 /uL'
    assert normalize_line('a\x00b') == 'a b'
