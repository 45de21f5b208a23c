"""
Tests for swath_toolkit.data_import module
"""

import os
import tempfile

import numpy as np
import pandas as pd
import pytest

from swath_toolkit.data_import import (
    build_sample_matrix,
    filter_clinical_metadata,
    load_fold_change_table,
    load_swath_data,
    read_table,
    restrict_to_proteomics_samples,
    split_abundance_blocks,
)
from swath_toolkit.validation import EmptyResultSet


class TestLoadSwathData:
    """Test loading the abundance table and clinical workbook"""

    def test_load_csv_files(self, swath_table, clinical_metadata):
        with tempfile.TemporaryDirectory() as temp_dir:
            protein_file = os.path.join(temp_dir, "proteins.csv")
            metadata_file = os.path.join(temp_dir, "clinical.csv")
            swath_table.to_csv(protein_file, index=False)
            clinical_metadata.to_csv(metadata_file, index=False)

            table, clinical = load_swath_data(protein_file, metadata_file)

        assert table.shape == swath_table.shape
        assert len(clinical) == len(clinical_metadata)

    def test_load_excel_sheet(self, clinical_metadata):
        """Named sheets are read through openpyxl"""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "clinical.xlsx")
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                clinical_metadata.to_excel(writer, sheet_name="Piglets", index=False)

            loaded = read_table(path, "Piglets")

        assert list(loaded.columns) == list(clinical_metadata.columns)

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_swath_data("missing_proteins.csv", "missing_clinical.csv")


class TestSplitAbundanceBlocks:
    """Test separating replicate and mean columns"""

    def test_blocks(self, swath_table, run_names):
        identifiers, replicates, means = split_abundance_blocks(swath_table)

        assert len(identifiers) == len(swath_table)
        assert list(replicates.columns) == run_names
        assert len(means.columns) == 6
        assert "2343" in means.columns
        assert replicates.index.name == "Protein"
        assert replicates.index[0] == "sp|ACC000|ACC000_PIG"

    def test_unclassified_columns_ignored(self, swath_table):
        table = swath_table.copy()
        table["Notes"] = "x"
        _, replicates, means = split_abundance_blocks(table)

        assert "Notes" not in replicates.columns
        assert "Notes" not in means.columns

    def test_duplicate_identifiers_raise(self, swath_table):
        table = pd.concat([swath_table, swath_table.iloc[[0]]], ignore_index=True)
        with pytest.raises(ValueError, match="Duplicate protein identifiers"):
            split_abundance_blocks(table)

    def test_empty_table_raises(self):
        with pytest.raises(EmptyResultSet):
            split_abundance_blocks(pd.DataFrame())


class TestBuildSampleMatrix:
    """Test the samples x proteins transpose"""

    def test_transpose_and_coercion(self):
        block = pd.DataFrame(
            {"A_sample 1": [1.0, "n/a"], "A_sample 2": [3.0, 4.0]},
            index=pd.Index(["P1", "P2"], name="Protein"),
        )
        matrix = build_sample_matrix(block)

        assert matrix.index.name == "Sample"
        assert list(matrix.columns) == ["P1", "P2"]
        assert np.isnan(matrix.loc["A_sample 1", "P2"])
        assert matrix.loc["A_sample 2", "P2"] == 4.0


class TestClinicalFiltering:
    """Test inclusion/exclusion of clinical rows"""

    def test_excluded_subjects_removed(self, clinical_metadata, study_design):
        clinical = clinical_metadata.copy()
        clinical.loc[len(clinical)] = [2999, "yes", "2023-01-14"]

        filtered = filter_clinical_metadata(clinical, study_design, "Subject", "Include")

        assert "2999" not in filtered["Subject"].tolist()
        assert filtered["Subject"].dtype == object

    def test_include_column(self, clinical_metadata, study_design):
        clinical = clinical_metadata.copy()
        clinical.loc[0, "Include"] = "no"

        filtered = filter_clinical_metadata(clinical, study_design, "Subject", "Include")

        assert "1001" not in filtered["Subject"].tolist()

    def test_nothing_left_raises(self, clinical_metadata, study_design):
        clinical = clinical_metadata.assign(Include="no")
        with pytest.raises(EmptyResultSet):
            filter_clinical_metadata(clinical, study_design, "Subject", "Include")

    def test_restrict_to_proteomics(self, clinical_metadata, study_design, replicate_matrix):
        filtered = filter_clinical_metadata(clinical_metadata, study_design, "Subject")
        restricted = restrict_to_proteomics_samples(filtered, replicate_matrix, study_design, "Subject")

        assert "3001" not in restricted["Subject"].tolist()
        assert len(restricted) == 6


class TestLoadFoldChangeTable:
    """Test per-contrast fold-change exports"""

    def test_columns_renamed(self):
        raw = pd.DataFrame({
            "Peak Name": ["sp|P1|P1_PIG", "sp|P2|P2_PIG"],
            "Fold Change": [1.5, "-0.4"],
            "p-value": [0.01, 0.2],
        })
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "sc_vs_control.csv")
            raw.to_csv(path, index=False)
            table = load_fold_change_table(path)

        assert list(table.columns) == ["Peak Name", "Fold_Change", "P_Value"]
        assert table["Fold_Change"].tolist() == [1.5, -0.4]

    def test_ratio_export_log2_transformed(self):
        """Linear ratios become log2 fold changes; non-positive ratios become NaN"""
        raw = pd.DataFrame({
            "Peak Name": ["sp|P1|P1_PIG", "sp|P2|P2_PIG", "sp|P3|P3_PIG"],
            "Fold Change": [4.0, 0.5, 0.0],
        })
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "sc_vs_control.csv")
            raw.to_csv(path, index=False)
            table = load_fold_change_table(path, log2_transform=True)

        assert table["Fold_Change"].iloc[:2].tolist() == [2.0, -1.0]
        assert pd.isna(table["Fold_Change"].iloc[2])

    def test_missing_column_raises(self):
        raw = pd.DataFrame({"Peak Name": ["sp|P1|P1_PIG"], "FC": [1.0]})
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "bad.csv")
            raw.to_csv(path, index=False)
            with pytest.raises(ValueError, match="Fold Change"):
                load_fold_change_table(path)
