"""
Data Import Module for the SWATH Analysis Toolkit

Functions for loading SWATH protein abundance exports, the clinical metadata
workbook and per-contrast fold-change exports.
"""

import os
import re
import numpy as np
import pandas as pd
from typing import Tuple, Optional, List, Union

from .validation import EmptyResultSet


def read_table(path: str, sheet_name: Optional[Union[str, int]] = None) -> pd.DataFrame:
    """Read a csv or Excel file into a DataFrame."""
    if path.lower().endswith((".xlsx", ".xls", ".xlsm")):
        return pd.read_excel(path, sheet_name=0 if sheet_name is None else sheet_name,
                             engine="openpyxl" if not path.lower().endswith(".xls") else None)
    if path.lower().endswith((".tsv", ".txt")):
        return pd.read_csv(path, sep="\t")
    return pd.read_csv(path)


def load_swath_data(protein_file: str, metadata_file: str,
                    protein_sheet: Optional[Union[str, int]] = None,
                    metadata_sheet: Optional[Union[str, int]] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the SWATH abundance table and the clinical metadata workbook.

    Parameters:
    -----------
    protein_file : str
        Path to the SWATH abundance export (xlsx or csv)
    metadata_file : str
        Path to the clinical metadata workbook (xlsx or csv)
    protein_sheet : str or int, optional
        Sheet holding the abundance matrix
    metadata_sheet : str or int, optional
        Sheet holding the clinical table

    Returns:
    --------
    abundance_table : pd.DataFrame
        Wide abundance table, first column = protein identifier
    clinical_metadata : pd.DataFrame
        Clinical metadata, one row per piglet
    """

    print("=== LOADING SWATH DATA ===\n")

    for file_path, file_type in [(protein_file, "protein"), (metadata_file, "metadata")]:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"{file_type.title()} file not found: {file_path}")

    try:
        abundance_table = read_table(protein_file, protein_sheet)
        print(f"✓ Loaded abundance table: {abundance_table.shape}")
    except Exception as e:
        raise ValueError(f"Error loading protein file: {e}") from e

    try:
        clinical_metadata = read_table(metadata_file, metadata_sheet)
        print(f"✓ Loaded clinical metadata: {clinical_metadata.shape}")
    except Exception as e:
        raise ValueError(f"Error loading metadata file: {e}") from e

    print("\nData loading completed successfully!")
    return abundance_table, clinical_metadata


def split_abundance_blocks(table: pd.DataFrame,
                           mean_suffix: str = "_mean",
                           replicate_pattern: str = r"_sample\s*\d+$",
                           identifier_column: Optional[str] = None
                           ) -> Tuple[pd.Series, pd.DataFrame, pd.DataFrame]:
    """
    Split a wide SWATH table into its identifier column, replicate block and
    per-sample mean block.

    Parameters:
    -----------
    table : pd.DataFrame
        Wide table; the first column (or identifier_column) holds protein ids
    mean_suffix : str
        Suffix marking per-sample mean columns
    replicate_pattern : str
        Regex marking per-replicate columns
    identifier_column : str, optional
        Identifier column name, defaults to the first column

    Returns:
    --------
    identifiers : pd.Series
    replicate_block : pd.DataFrame
        proteins x replicate runs, indexed by identifier
    mean_block : pd.DataFrame
        proteins x samples, indexed by identifier, mean suffix stripped
    """
    if table.empty:
        raise EmptyResultSet("Abundance table is empty")

    id_col = identifier_column or table.columns[0]
    if id_col not in table.columns:
        raise ValueError(f"Identifier column '{id_col}' not found in abundance table")

    identifiers = table[id_col].astype(str).str.strip()
    if identifiers.duplicated().any():
        dupes = identifiers[identifiers.duplicated()].unique().tolist()
        raise ValueError(f"Duplicate protein identifiers in abundance table: {dupes[:5]}")

    replicate_regex = re.compile(replicate_pattern, re.IGNORECASE)
    replicate_cols: List[str] = []
    mean_cols: List[str] = []
    ignored_cols: List[str] = []

    for col in table.columns:
        if col == id_col:
            continue
        name = str(col).strip()
        if name.lower().endswith(mean_suffix.lower()):
            mean_cols.append(col)
        elif replicate_regex.search(name):
            replicate_cols.append(col)
        else:
            ignored_cols.append(col)

    print(f"Identified {len(replicate_cols)} replicate columns and {len(mean_cols)} mean columns")
    if ignored_cols:
        print(f"  Ignoring {len(ignored_cols)} unclassified columns: {ignored_cols[:5]}"
              f"{'...' if len(ignored_cols) > 5 else ''}")

    replicate_block = table[replicate_cols].copy()
    replicate_block.index = identifiers.values
    replicate_block.index.name = "Protein"
    replicate_block.columns = [str(c).strip() for c in replicate_cols]

    mean_block = table[mean_cols].copy()
    mean_block.index = identifiers.values
    mean_block.index.name = "Protein"
    mean_block.columns = [str(c).strip()[: -len(mean_suffix)].strip() for c in mean_cols]

    return identifiers.reset_index(drop=True), replicate_block, mean_block


def build_sample_matrix(block: pd.DataFrame) -> pd.DataFrame:
    """
    Transpose a proteins x samples block into a samples x proteins matrix.

    Columns are the protein identifiers; non-numeric cells become NaN.
    """
    numeric = block.apply(pd.to_numeric, errors="coerce")
    matrix = numeric.T
    matrix.index.name = "Sample"
    matrix.columns.name = "Protein"
    return matrix


def filter_clinical_metadata(clinical: pd.DataFrame,
                             design,
                             subject_column: str,
                             include_column: Optional[str] = None,
                             include_values: Tuple = (1, "1", "yes", "Yes", "YES", True, "TRUE", "True", "x", "X")
                             ) -> pd.DataFrame:
    """
    Restrict the clinical table to included piglets, minus excluded subjects.

    Parameters:
    -----------
    clinical : pd.DataFrame
        Clinical metadata table
    design : StudyDesign
        Supplies the excluded subject list
    subject_column : str
        Column holding the piglet id
    include_column : str, optional
        Column flagging rows to keep; no inclusion filter when None
    include_values : tuple
        Values in include_column that mean "included"

    Returns:
    --------
    pd.DataFrame : Filtered copy, subject ids as stripped strings
    """
    if subject_column not in clinical.columns:
        raise ValueError(f"Subject column '{subject_column}' not found in clinical metadata")

    filtered = clinical.copy()
    filtered[subject_column] = filtered[subject_column].astype(str).str.strip()
    before = len(filtered)

    if include_column is not None:
        if include_column not in filtered.columns:
            raise ValueError(f"Inclusion column '{include_column}' not found in clinical metadata")
        filtered = filtered[filtered[include_column].isin(include_values)]
        print(f"  Included rows: {len(filtered)}/{before}")

    excluded_mask = filtered[subject_column].isin(design.excluded_subjects)
    if excluded_mask.any():
        print(f"  Removing excluded subjects: {filtered.loc[excluded_mask, subject_column].tolist()}")
    filtered = filtered[~excluded_mask].reset_index(drop=True)

    if filtered.empty:
        raise EmptyResultSet("No clinical rows remain after inclusion/exclusion filtering")

    print(f"✓ Clinical metadata filtered: {len(filtered)} piglets")
    return filtered


def restrict_to_proteomics_samples(clinical: pd.DataFrame,
                                   sample_matrix: pd.DataFrame,
                                   design,
                                   subject_column: str) -> pd.DataFrame:
    """Keep clinical rows whose piglet has at least one SWATH sample."""
    subjects = {design.parse_sample_id(s)['subject'] for s in sample_matrix.index}
    restricted = clinical[clinical[subject_column].astype(str).str.strip().isin(subjects)]
    restricted = restricted.reset_index(drop=True)
    print(f"  Clinical rows with proteomics data: {len(restricted)}/{len(clinical)}")
    if restricted.empty:
        raise EmptyResultSet("No clinical subjects have proteomics data")
    return restricted


def load_fold_change_table(path: str,
                           key_column: str = "Peak Name",
                           fold_change_column: str = "Fold Change",
                           pvalue_column: Optional[str] = "p-value",
                           sheet_name: Optional[Union[str, int]] = None,
                           log2_transform: bool = False) -> pd.DataFrame:
    """
    Load a per-contrast fold-change/p-value export.

    The fold-change column is taken to be log2 already unless log2_transform
    is set, in which case it is read as a linear ratio and log2-transformed
    (non-positive ratios become NaN).

    Returns a DataFrame with columns ``Peak Name``, ``Fold_Change`` (log2) and
    ``P_Value`` (NaN when the export has no p-value column).
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Fold-change file not found: {path}")

    try:
        raw = read_table(path, sheet_name)
    except Exception as e:
        raise ValueError(f"Error loading fold-change file: {e}") from e

    for col in (key_column, fold_change_column):
        if col not in raw.columns:
            raise ValueError(f"Column '{col}' not found in {path}. Available: {list(raw.columns)}")

    table = pd.DataFrame({
        "Peak Name": raw[key_column].astype(str).str.strip(),
        "Fold_Change": pd.to_numeric(raw[fold_change_column], errors="coerce"),
    })
    if log2_transform:
        ratios = table["Fold_Change"]
        non_positive = int((ratios <= 0).sum())
        if non_positive:
            print(f"  {non_positive} non-positive fold changes set to NaN before log2")
        table["Fold_Change"] = np.log2(ratios.where(ratios > 0))
    if pvalue_column and pvalue_column in raw.columns:
        table["P_Value"] = pd.to_numeric(raw[pvalue_column], errors="coerce")
    else:
        table["P_Value"] = float("nan")

    print(f"✓ Loaded fold-change table {os.path.basename(path)}: {len(table)} peaks")
    return table
