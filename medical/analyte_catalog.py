"""
Known Analyte Catalog
=====================

Common lab analyte names and abbreviations. Membership is never required
for a result to be accepted; it only ranks competing candidate names when
the free-text fallback has several ways to split a noisy line.
"""

import re
from typing import FrozenSet


ANALYTE_KEYWORDS: FrozenSet[str] = frozenset({
    # Complete Blood Count
    'hemoglobin', 'haemoglobin', 'hb', 'hgb', 'hematocrit', 'haematocrit',
    'hct', 'pcv', 'packed cell volume',
    'rbc', 'red blood cell', 'red blood cells', 'erythrocyte',
    'wbc', 'white blood cell', 'white blood cells', 'leukocyte', 'leucocyte', 'tlc',
    'platelet', 'platelets', 'plt', 'mpv',
    'mcv', 'mch', 'mchc', 'rdw', 'rdw-cv',
    'neutrophils', 'neutrophil', 'lymphocytes', 'lymphocyte', 'monocytes',
    'monocyte', 'eosinophils', 'eosinophil', 'basophils', 'basophil',

    # Blood Sugar
    'glucose', 'fbs', 'ppbs', 'rbs', 'blood sugar', 'hba1c', 'a1c',
    'glycated hemoglobin', 'glycosylated hemoglobin',

    # Kidney Function
    'creatinine', 'urea', 'bun', 'blood urea nitrogen', 'uric acid', 'egfr', 'gfr',

    # Liver Function
    'ast', 'sgot', 'alt', 'sgpt', 'aspartate aminotransferase',
    'alanine aminotransferase', 'bilirubin', 'alkaline phosphatase', 'alp',
    'albumin', 'globulin', 'total protein', 'protein', 'ggt', 'ggtp', 'gamma gt',

    # Lipid Profile
    'cholesterol', 'triglycerides', 'hdl', 'ldl', 'vldl',

    # Thyroid
    'tsh', 't3', 't4', 'ft3', 'ft4', 'free t3', 'free t4',
    'triiodothyronine', 'thyroxine',

    # Vitamins, Minerals, Electrolytes
    'vitamin d', 'vitamin b12', 'b12', 'iron', 'ferritin', 'calcium',
    'magnesium', 'phosphorus', 'sodium', 'potassium', 'chloride',
    'bicarbonate', 'co2', 'anion gap', 'osmolality',

    # Cardiac, Coagulation, Inflammation
    'troponin', 'cpk', 'creatine kinase', 'ck-mb', 'bnp', 'nt-probnp',
    'prothrombin time', 'inr', 'aptt', 'd-dimer', 'esr', 'crp',
    'c-reactive protein',

    # Urine
    'specific gravity', 'urine ph', 'urine protein', 'urine glucose',
})

_WORD_RE = re.compile(r'[a-z0-9\-]+')


def _normalize(name: str) -> str:
    cleaned = name.strip().lower()
    cleaned = re.sub(r'\s+', ' ', cleaned)
    return re.sub(r'^[:\-_.\s]+|[:\-_.\s]+$', '', cleaned)


def is_known_analyte(name: str) -> bool:
    return analyte_score(name) > 0


def analyte_score(name: str) -> int:
    """
    Rank how analyte-like a candidate name is.

    Returns:
        2 for an exact catalog entry, 1 when the name contains a catalog
        keyword as a whole word or phrase, 0 otherwise
    """
    cleaned = _normalize(name)
    if not cleaned:
        return 0
    if cleaned in ANALYTE_KEYWORDS:
        return 2

    words = _WORD_RE.findall(cleaned)
    if any(word in ANALYTE_KEYWORDS for word in words):
        return 1
    # Multi-word keywords ("alkaline phosphatase")
    padded = ' ' + ' '.join(words) + ' '
    for keyword in ANALYTE_KEYWORDS:
        if ' ' in keyword and ' ' + keyword + ' ' in padded:
            return 1
    return 0
