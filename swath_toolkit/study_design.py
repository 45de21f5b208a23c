"""
Study Design Module for the SWATH Analysis Toolkit

Holds the piglet-to-treatment lookup for the HI study and derives the
per-sample covariates (subject, replicate, treatment, sex) from SWATH sample
names such as ``"2343_sample 2"``.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd


DEFAULT_SAMPLE_ID_PATTERN = r"^(?P<subject>[^_\s]+)_sample\s*(?P<replicate>\d+)$"

_TRUE_VALUES = {"1", "true", "yes", "y", "x"}


@dataclass
class StudyDesign:
    """Sample-id to group lookup for the piglet HI study.

    Attributes
    ----------
    sc_subjects : List[str]
        Piglets that received HI + hypothermia + stem cells
    pbs_subjects : List[str]
        Piglets that received HI + hypothermia + PBS vehicle
    female_subjects : List[str]
        Female piglets; every other piglet is recorded as male
    excluded_subjects : List[str]
        Piglets dropped from the analysis regardless of the inclusion flag
    sample_id_pattern : str
        Regex with named groups ``subject`` and ``replicate``

    Every piglet not named in either HI list is a control.
    """

    sc_subjects: List[str] = field(default_factory=list)
    pbs_subjects: List[str] = field(default_factory=list)
    female_subjects: List[str] = field(default_factory=list)
    excluded_subjects: List[str] = field(default_factory=list)

    control_label: str = "CONTROL"
    pbs_label: str = "HI+HTH+PBS"
    sc_label: str = "HI+HTH+SC"
    injured_label: str = "HI+HTH"

    sample_id_pattern: str = DEFAULT_SAMPLE_ID_PATTERN

    def __post_init__(self):
        self.sc_subjects = [str(s).strip() for s in self.sc_subjects]
        self.pbs_subjects = [str(s).strip() for s in self.pbs_subjects]
        self.female_subjects = [str(s).strip() for s in self.female_subjects]
        self.excluded_subjects = [str(s).strip() for s in self.excluded_subjects]
        self._regex = re.compile(self.sample_id_pattern, re.IGNORECASE)
        self._unparsed_ids = set()

    @property
    def treatment_labels(self) -> List[str]:
        return [self.control_label, self.pbs_label, self.sc_label]

    def validate(self) -> bool:
        """Check the HI lists are pairwise disjoint."""
        overlap = sorted(set(self.sc_subjects) & set(self.pbs_subjects))
        if overlap:
            raise ValueError(
                f"Subjects listed under both {self.sc_label} and {self.pbs_label}: {overlap}"
            )
        return True

    def parse_sample_id(self, sample_id: Any) -> Dict[str, Any]:
        """
        Split a SWATH sample name into subject and replicate.

        ``"2343_sample 2"`` -> ``{'subject': '2343', 'replicate': 2}``. Names
        that do not follow the replicate pattern (e.g. mean columns such as
        ``"2343_mean"``) keep the text before the first underscore as the
        subject and have no replicate. A fallback subject containing whitespace
        (e.g. ``"2343 sample 2"``) is reported once, since it would silently
        fall through to the control group.
        """
        text = str(sample_id).strip()
        match = self._regex.match(text)
        if match:
            return {
                'subject': match.group('subject'),
                'replicate': int(match.group('replicate')),
            }
        subject = text.split('_')[0].strip()
        if re.search(r'\s', subject) and text not in self._unparsed_ids:
            # A subject with whitespace is a mis-named run, not a piglet id
            self._unparsed_ids.add(text)
            print(f"⚠️  WARNING: Sample id '{text}' does not match the sample id pattern; "
                  f"subject read as '{subject}', which no group list will contain")
        return {'subject': subject, 'replicate': None}

    def assign_treatment(self, sample_id: Any) -> str:
        subject = self.parse_sample_id(sample_id)['subject']
        if subject in self.sc_subjects:
            return self.sc_label
        if subject in self.pbs_subjects:
            return self.pbs_label
        return self.control_label

    def assign_sex(self, sample_id: Any) -> str:
        subject = self.parse_sample_id(sample_id)['subject']
        if subject in self.female_subjects:
            return "F"
        return "M"

    def collapse_treatment(self, treatment: str) -> str:
        """Two-level factor: both HI arms collapse to the injured label."""
        if treatment in (self.pbs_label, self.sc_label):
            return self.injured_label
        if treatment == self.control_label:
            return self.control_label
        raise ValueError(f"Unknown treatment label: {treatment!r}")

    def is_excluded(self, sample_id: Any) -> bool:
        return self.parse_sample_id(sample_id)['subject'] in self.excluded_subjects

    def annotate_samples(self, sample_ids) -> pd.DataFrame:
        """Per-sample covariates derived from the sample names alone."""
        rows = []
        for sample_id in sample_ids:
            parsed = self.parse_sample_id(sample_id)
            treatment = self.assign_treatment(sample_id)
            rows.append({
                'Sample': sample_id,
                'Subject': parsed['subject'],
                'Replicate': parsed['replicate'],
                'Treatment': treatment,
                'Condition': self.collapse_treatment(treatment),
                'Sex': self.assign_sex(sample_id),
            })
        annotated = pd.DataFrame(rows, columns=['Sample', 'Subject', 'Replicate',
                                                'Treatment', 'Condition', 'Sex'])
        return annotated.set_index('Sample')

    def summary(self) -> Dict[str, int]:
        return {
            self.sc_label: len(self.sc_subjects),
            self.pbs_label: len(self.pbs_subjects),
            'female': len(self.female_subjects),
            'excluded': len(self.excluded_subjects),
        }


def load_study_design(design_file: str,
                      subject_column: str = "Subject",
                      treatment_column: str = "Treatment",
                      sex_column: Optional[str] = "Sex",
                      excluded_column: Optional[str] = "Excluded",
                      **design_kwargs) -> StudyDesign:
    """
    Load the piglet lookup table once at startup.

    Parameters:
    -----------
    design_file : str
        CSV with one row per piglet
    subject_column : str
        Column holding the piglet id
    treatment_column : str
        Column holding the treatment label (CONTROL rows are optional)
    sex_column : str, optional
        Column holding 'F'/'M'
    excluded_column : str, optional
        Column flagging piglets to drop
    **design_kwargs
        Forwarded to StudyDesign (labels, sample id pattern)

    Returns:
    --------
    StudyDesign
    """
    if not os.path.exists(design_file):
        raise FileNotFoundError(f"Study design file not found: {design_file}")

    try:
        table = pd.read_csv(design_file, dtype=str)
    except Exception as e:
        raise ValueError(f"Error loading study design file: {e}") from e

    for col in (subject_column, treatment_column):
        if col not in table.columns:
            raise ValueError(f"Study design file is missing column '{col}'")

    table[subject_column] = table[subject_column].str.strip()
    treatments = table[treatment_column].fillna("").str.strip()

    design = StudyDesign(**design_kwargs)
    known = set(design.treatment_labels)
    unknown = sorted(set(treatments) - known - {""})
    if unknown:
        raise ValueError(f"Unknown treatment labels in study design: {unknown}")

    design.sc_subjects = table.loc[treatments == design.sc_label, subject_column].tolist()
    design.pbs_subjects = table.loc[treatments == design.pbs_label, subject_column].tolist()

    if sex_column and sex_column in table.columns:
        sex = table[sex_column].fillna("").str.strip().str.upper()
        design.female_subjects = table.loc[sex.str.startswith("F"), subject_column].tolist()

    if excluded_column and excluded_column in table.columns:
        flags = table[excluded_column].fillna("").str.strip().str.lower()
        design.excluded_subjects = table.loc[flags.isin(_TRUE_VALUES), subject_column].tolist()

    design.validate()

    print(f"✓ Loaded study design: {design.summary()}")
    return design
