"""End-to-end tests for LabReportParser on native text"""

import random
import string

import pytest

from medical import LabReportParser, ParseTrace, ParserConfig, RawLine, parse_lab_lines, parse_lab_text
from medical.lab_models import BoundingBox, OcrFragment


SAMPLE_REPORT = """
COMPREHENSIVE METABOLIC PANEL
Patient: Jane Roe
Collected: 05/01/2025

05/01/2025 ALT 31.00 U/L
05/01/2025 AST 28.00 U/L
Glucose: 95 mg/dL (70-100)
Sodium 140 mmol/L 135-145
Potassium: 4.1 mmol/L
Creatinine
1.10 mg/dL
HbA1c 6.1 % H

Page 1 of 1
"""


def results_of(lines):
    return parse_lab_lines(lines)


def test_scenario_single_dated_line():
    assert results_of(['05/01/2025 ALT 31.00 U/L']) == [{
        'name': 'ALT',
        'value': 31.0,
        'unit': 'U/L',
        'reference_range': 'N/A',
        'provenance': 'Line 1 | Date: 05/01/2025 | pattern date_name_value_unit',
    }]


def test_scenario_name_value_pair_with_flag():
    results = results_of(['AST', '116.00 H'])

    assert len(results) == 1
    result = results[0]
    assert (result['name'], result['value'], result['unit'], result['reference_range']) == \
        ('AST', 116.0, 'N/A', 'N/A')
    assert 'Flag: H' in result['provenance']


def test_scenario_date_name_value_lines():
    results = results_of(['05/01/2025', 'Glucose', '95 mg/dL'])

    assert len(results) == 1
    assert (results[0]['name'], results[0]['value'], results[0]['unit']) == ('Glucose', 95.0, 'mg/dL')


def test_scenario_triple_without_merging():
    parser = LabReportParser(ParserConfig(merge_fragmented_lines=False))
    report = parser.parse_lines([RawLine('05/01/2025', 0), RawLine('Glucose', 1), RawLine('95 mg/dL', 2)])

    assert [(r.name, r.value, r.unit) for r in report.results] == [('Glucose', 95.0, 'mg/dL')]
    assert 'multi-line (date/name/value)' in report.results[0].provenance
    assert report.unmatched_lines == []


def test_scenario_lone_date_is_skipped():
    report = LabReportParser().parse_lines([RawLine('12/25/2024', 0)])

    assert report.results == []
    assert [line.text for line in report.unmatched_lines] == ['12/25/2024']


def test_sample_report():
    report = parse_lab_text(SAMPLE_REPORT)

    assert [(r.name, r.value, r.unit) for r in report.results] == [
        ('ALT', 31.0, 'U/L'),
        ('AST', 28.0, 'U/L'),
        ('Glucose', 95.0, 'mg/dL'),
        ('Sodium', 140.0, 'mmol/L'),
        ('Potassium', 4.1, 'mmol/L'),
        ('Creatinine', 1.1, 'mg/dL'),
        ('HbA1c', 6.1, '%'),
    ]
    assert report.results[2].reference_range == '70-100'
    assert report.results[3].reference_range == '135-145'

    unmatched = [line.text for line in report.unmatched_lines]
    assert 'Page 1 of 1' in unmatched
    assert 'Collected: 05/01/2025' in unmatched


def test_order_follows_document():
    lines = ['Potassium: 4.1 mmol/L', 'Glucose: 95 mg/dL', 'Sodium 140 mmol/L 135-145', 'Hemoglobin 13.4 g/dL']
    names = [r['name'] for r in results_of(lines)]
    assert names == ['Potassium', 'Glucose', 'Sodium', 'Hemoglobin']


def test_no_deduplication():
    names = [r['name'] for r in results_of(['Glucose: 95 mg/dL', 'Glucose: 95 mg/dL'])]
    assert names == ['Glucose', 'Glucose']


def test_idempotent():
    parser = LabReportParser()
    first = parser.parse_text(SAMPLE_REPORT).to_dict()
    second = parser.parse_text(SAMPLE_REPORT).to_dict()
    assert first == second


def test_extracted_text_keeps_raw_lines():
    report = parse_lab_text('Glucose: 95 mg/dL\n\nSodium 140 mmol/L')
    assert report.extracted_text == 'Glucose: 95 mg/dL\nSodium 140 mmol/L'


@pytest.mark.parametrize('seed', range(20))
def test_text_without_digits_yields_nothing(seed):
    rng = random.Random(seed)
    alphabet = ''.join(c for c in string.printable if not c.isdigit() and c not in '\t\n\r\x0b\x0c')
    lines = [''.join(rng.choice(alphabet) for _ in range(rng.randint(0, 60))) for _ in range(30)]

    assert results_of(lines) == []


def test_trace_is_optional_and_explicit():
    trace = ParseTrace()
    report = LabReportParser().parse_text(SAMPLE_REPORT, trace)

    assert report.trace is trace
    assert trace.for_stage('cascade')
    assert trace.for_stage('resolver')
    assert trace.for_stage('skip')
    assert LabReportParser().parse_text(SAMPLE_REPORT).trace is None


def test_parse_fragments():
    fragments = [
        OcrFragment('13.4 g/dL', BoundingBox(0.5, 0.6, 0.2, 0.02)),
        OcrFragment('Hemoglobin', BoundingBox(0.1, 0.6, 0.2, 0.02)),
        OcrFragment('CBC REPORT', BoundingBox(0.1, 0.9, 0.3, 0.02)),
    ]
    report = LabReportParser().parse_fragments(fragments)

    assert [(r.name, r.value, r.unit) for r in report.results] == [('Hemoglobin', 13.4, 'g/dL')]
    assert report.extracted_text == 'CBC REPORT\nHemoglobin 13.4 g/dL'


def test_report_to_dict():
    data = parse_lab_text('Glucose: 95 mg/dL').to_dict()

    assert data['total_results'] == 1
    assert data['results'][0]['name'] == 'Glucose'
    assert data['cancelled'] is False


def test_decimal_range_is_not_a_date():
    results = results_of(['WBC', '7.5 x10^3/uL 4.0-11.0', 'WBC 7.5 x10^3/uL 4.0-11.0'])

    assert [(r['name'], r['value'], r['reference_range']) for r in results] == [
        ('WBC', 7.5, '4.0-11.0'),
        ('WBC', 7.5, '4.0-11.0'),
    ]
    assert all('Date:' not in r['provenance'] for r in results)


def test_comparator_values_keep_their_comparator():
    results = results_of(['CRP <0.5 mg/L', 'TSH >100 uIU/mL'])

    assert [(r['name'], r['value'], r['unit']) for r in results] == [
        ('CRP', 0.5, 'mg/L'),
        ('TSH', 100.0, 'uIU/mL'),
    ]
    assert results[0]['provenance'] == 'Line 1 | Comparator: < | pattern name_comparator_value_unit'
