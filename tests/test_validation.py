"""
Tests for swath_toolkit.validation module
"""

import os
import tempfile

import pandas as pd
import pytest

from swath_toolkit.validation import (
    EmptyResultSet,
    IdentifierMappingFailure,
    SampleMatchingError,
    enforce_metadata_data_consistency,
    generate_sample_matching_diagnostic_report,
    require_rows,
    validate_metadata_data_consistency,
)


class TestExceptions:
    """Test the custom exception types"""

    def test_identifier_mapping_failure_carries_unmapped(self):
        error = IdentifierMappingFailure("2 unmapped", unmapped=("P1", "P2"))
        assert error.unmapped == ["P1", "P2"]
        assert str(error) == "2 unmapped"

    def test_require_rows(self):
        frame = pd.DataFrame({"a": [1]})
        assert require_rows(frame, "filtering") is frame
        with pytest.raises(EmptyResultSet, match="filtering"):
            require_rows(frame.iloc[0:0], "filtering")


class TestMetadataDataConsistency:
    """Test clinical vs SWATH subject matching"""

    def test_consistent(self, clinical_metadata, replicate_matrix, study_design):
        results = validate_metadata_data_consistency(
            clinical_metadata, replicate_matrix, study_design, "Subject"
        )

        assert results["is_valid"]
        assert results["diagnostics"]["subjects_found_in_data"] == 6
        assert results["diagnostics"]["missing_subjects"] == ["3001"]
        assert results["diagnostics"]["samples_per_subject"]["2343"] == 2
        assert len(results["warnings"]) == 1

    def test_unexpected_subject_is_error(self, clinical_metadata, replicate_matrix, study_design):
        clinical = clinical_metadata[clinical_metadata["Subject"] != 2343]
        results = validate_metadata_data_consistency(clinical, replicate_matrix, study_design, "Subject")

        assert not results["is_valid"]
        assert results["diagnostics"]["unexpected_subjects"] == ["2343"]

    def test_missing_subject_column(self, clinical_metadata, replicate_matrix, study_design):
        results = validate_metadata_data_consistency(clinical_metadata, replicate_matrix, study_design, "Piglet")
        assert not results["is_valid"]

    def test_enforce_strict_raises(self, clinical_metadata, replicate_matrix, study_design):
        clinical = clinical_metadata[clinical_metadata["Subject"] != 2343]
        with pytest.raises(SampleMatchingError):
            enforce_metadata_data_consistency(clinical, replicate_matrix, study_design, "Subject")

    def test_enforce_lenient_continues(self, clinical_metadata, replicate_matrix, study_design):
        clinical = clinical_metadata[clinical_metadata["Subject"] != 2343]
        results = enforce_metadata_data_consistency(
            clinical, replicate_matrix, study_design, "Subject", strict_validation=False
        )
        assert not results["is_valid"]

    def test_diagnostic_report(self, clinical_metadata, replicate_matrix, study_design):
        results = validate_metadata_data_consistency(
            clinical_metadata, replicate_matrix, study_design, "Subject", verbose=False
        )
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "report.txt")
            report = generate_sample_matching_diagnostic_report(results, path)
            assert os.path.exists(path)

        assert "3001" in report
