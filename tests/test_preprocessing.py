"""
Tests for swath_toolkit.preprocessing module
"""

import pandas as pd
import pytest

from swath_toolkit.data_import import filter_clinical_metadata
from swath_toolkit.preprocessing import (
    build_sample_metadata,
    check_clinical_treatment_agreement,
    to_long_form,
)


class TestBuildSampleMetadata:
    """Test per-sample metadata assembly"""

    def test_design_only(self, replicate_matrix, study_design):
        metadata = build_sample_metadata(replicate_matrix, study_design)

        assert list(metadata.index) == list(replicate_matrix.index)
        assert metadata["Treatment"].value_counts().to_dict() == {
            "CONTROL": 4, "HI+HTH+PBS": 4, "HI+HTH+SC": 4
        }

    def test_clinical_join(self, replicate_matrix, study_design, clinical_metadata):
        clinical = filter_clinical_metadata(clinical_metadata, study_design, "Subject")
        metadata = build_sample_metadata(replicate_matrix, study_design, clinical, "Subject")

        assert "Acquisition Date" in metadata.columns
        assert metadata.loc["2343_sample 1", "Acquisition Date"] == "2023-01-12"

    def test_derived_columns_win(self, replicate_matrix, study_design, clinical_metadata):
        """A clinical 'Treatment' column does not overwrite the derived one"""
        clinical = filter_clinical_metadata(clinical_metadata, study_design, "Subject")
        clinical["Treatment"] = "SHAM"
        metadata = build_sample_metadata(replicate_matrix, study_design, clinical, "Subject")

        assert "SHAM" not in metadata["Treatment"].tolist()

    def test_missing_subject_column_raises(self, replicate_matrix, study_design, clinical_metadata):
        with pytest.raises(ValueError, match="Subject column"):
            build_sample_metadata(replicate_matrix, study_design, clinical_metadata, "Piglet")


class TestToLongForm:
    """Test the long-form reshape"""

    def test_one_row_per_protein_sample(self, replicate_matrix, study_design):
        long_df = to_long_form(replicate_matrix, study_design)

        assert len(long_df) == replicate_matrix.shape[0] * replicate_matrix.shape[1]
        assert list(long_df.columns) == [
            "Protein", "Sample", "Subject", "Replicate", "Sex", "Treatment", "Condition", "Response"
        ]

    def test_values_preserved(self, replicate_matrix, study_design):
        long_df = to_long_form(replicate_matrix, study_design)
        protein = replicate_matrix.columns[5]
        row = long_df[(long_df["Protein"] == protein) & (long_df["Sample"] == "2401_sample 2")]

        assert row["Response"].iloc[0] == replicate_matrix.loc["2401_sample 2", protein]
        assert row["Treatment"].iloc[0] == "HI+HTH+PBS"


class TestClinicalTreatmentAgreement:
    """Test the derived vs clinical group comparison"""

    def test_mismatch_reported(self, replicate_matrix, study_design):
        metadata = build_sample_metadata(replicate_matrix, study_design)
        metadata["Group"] = metadata["Treatment"]
        metadata.loc["2343_sample 1", "Group"] = "CONTROL"

        mismatched = check_clinical_treatment_agreement(metadata, "Group")

        assert list(mismatched.index) == ["2343_sample 1"]

    def test_label_map(self, replicate_matrix, study_design):
        metadata = build_sample_metadata(replicate_matrix, study_design)
        metadata["Group"] = metadata["Treatment"].replace({"HI+HTH+SC": "SC"})

        mismatched = check_clinical_treatment_agreement(metadata, "Group", {"SC": "HI+HTH+SC"})

        assert mismatched.empty
