"""
Preprocessing Module for the SWATH Analysis Toolkit

Reshapes samples x proteins matrices into tidy long form and assembles the
per-sample metadata table used by the statistics and ordination steps.
"""

import pandas as pd
from typing import Dict, List, Optional


def build_sample_metadata(
    sample_matrix: pd.DataFrame,
    design,
    clinical: Optional[pd.DataFrame] = None,
    subject_column: Optional[str] = None,
    clinical_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Build one metadata record per sample.

    Parameters:
    -----------
    sample_matrix : pd.DataFrame
        Samples x proteins matrix (index = sample ids)
    design : StudyDesign
        Derives Subject, Replicate, Treatment, Condition and Sex
    clinical : pd.DataFrame, optional
        Filtered clinical table to join on subject (e.g. acquisition date)
    subject_column : str, optional
        Piglet id column in clinical
    clinical_columns : list of str, optional
        Clinical columns to carry over; all non-subject columns by default

    Returns:
    --------
    pd.DataFrame : indexed by sample id
    """
    metadata = design.annotate_samples(sample_matrix.index)

    if clinical is not None:
        if subject_column is None or subject_column not in clinical.columns:
            raise ValueError(f"Subject column '{subject_column}' not found in clinical metadata")

        keep = clinical_columns or [c for c in clinical.columns if c != subject_column]
        missing = [c for c in keep if c not in clinical.columns]
        if missing:
            raise ValueError(f"Clinical columns not found: {missing}")

        # Derived covariates win over clinical columns with the same name
        keep = [c for c in keep if c not in metadata.columns]
        clinical_subset = clinical[[subject_column] + keep].copy()
        clinical_subset[subject_column] = clinical_subset[subject_column].astype(str).str.strip()
        clinical_subset = clinical_subset.drop_duplicates(subset=subject_column)
        clinical_subset = clinical_subset.rename(columns={subject_column: "Subject"})

        metadata = (metadata.reset_index()
                    .merge(clinical_subset, on="Subject", how="left")
                    .set_index("Sample"))

        unmatched = metadata[keep].isna().all(axis=1) if keep else pd.Series(False, index=metadata.index)
        if unmatched.any():
            print(f"  Warning: {unmatched.sum()} samples have no clinical record")

    counts = metadata["Treatment"].value_counts().to_dict()
    print(f"✓ Sample metadata built for {len(metadata)} samples: {counts}")
    return metadata.copy()


def to_long_form(sample_matrix: pd.DataFrame, design,
                 value_name: str = "Response") -> pd.DataFrame:
    """
    Reshape a samples x proteins matrix into one row per (protein, sample).

    Parameters:
    -----------
    sample_matrix : pd.DataFrame
        Samples x proteins matrix
    design : StudyDesign
        Supplies replicate, sex and treatment for each sample id
    value_name : str
        Name of the measurement column

    Returns:
    --------
    pd.DataFrame with columns Protein, Sample, Subject, Replicate, Sex,
    Treatment, Condition and value_name
    """
    covariates = design.annotate_samples(sample_matrix.index).reset_index()

    wide = sample_matrix.copy()
    wide.index.name = "Sample"
    wide.columns.name = None
    long_df = wide.reset_index().melt(id_vars="Sample", var_name="Protein", value_name=value_name)
    long_df = long_df.merge(covariates, on="Sample", how="left")

    columns = ["Protein", "Sample", "Subject", "Replicate", "Sex", "Treatment", "Condition", value_name]
    long_df = long_df[columns].sort_values(["Protein", "Sample"]).reset_index(drop=True)

    print(f"Long-form table: {len(long_df):,} rows "
          f"({sample_matrix.shape[1]} proteins x {sample_matrix.shape[0]} samples)")
    return long_df


def check_clinical_treatment_agreement(metadata: pd.DataFrame,
                                       clinical_group_column: str,
                                       label_map: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    Compare the derived Treatment with the clinical spreadsheet's group.

    Returns the disagreeing rows (empty when everything agrees).
    """
    if clinical_group_column not in metadata.columns:
        raise ValueError(f"Column '{clinical_group_column}' not found in sample metadata")

    clinical_groups = metadata[clinical_group_column].astype(str).str.strip()
    if label_map:
        clinical_groups = clinical_groups.replace(label_map)

    mismatched = metadata[clinical_groups != metadata["Treatment"]]
    if len(mismatched) > 0:
        print(f"  Warning: {len(mismatched)} samples disagree with '{clinical_group_column}':")
        for sample, row in mismatched.head(10).iterrows():
            print(f"    {sample}: derived {row['Treatment']} vs clinical {row[clinical_group_column]}")
    else:
        print("✓ Derived treatment agrees with clinical metadata")

    return mismatched
