"""
Missing-Data Module for the SWATH Analysis Toolkit

Two policies live here and are deliberately kept apart:

1. ``filter_complete_proteins`` - complete-case on columns. Used before any
   multivariate step (PCA, sparse PCA). A protein with a single missing
   value anywhere is dropped.
2. ``resolve_replicate_means`` - per-sample means over duplicate runs. A
   value missing in exactly one replicate resolves to the other replicate's
   value; a value missing in every replicate stays missing.

They answer different questions and are never reconciled.
"""

import numpy as np
import pandas as pd
from typing import Dict

from .validation import EmptyResultSet, MissingDataPolicyViolation


def filter_complete_proteins(sample_matrix: pd.DataFrame, verbose: bool = True) -> pd.DataFrame:
    """
    Drop every protein column with at least one missing value.

    Parameters:
    -----------
    sample_matrix : pd.DataFrame
        Samples x proteins matrix
    verbose : bool
        Whether to print a summary

    Returns:
    --------
    pd.DataFrame : the columns with no missing value, in input order
    """
    complete_columns = sample_matrix.columns[sample_matrix.notna().all(axis=0)]
    filtered = sample_matrix[complete_columns].copy()

    if verbose:
        print("=== COMPLETE-CASE PROTEIN FILTER ===")
        print(f"Original proteins: {sample_matrix.shape[1]}")
        print(f"Proteins with no missing values: {filtered.shape[1]}")
        print(f"Removed: {sample_matrix.shape[1] - filtered.shape[1]} proteins")

    if filtered.shape[1] == 0:
        raise EmptyResultSet("Complete-case filtering removed every protein")

    return filtered


def _subjects_for(index, design) -> pd.Series:
    return pd.Series([design.parse_sample_id(s)['subject'] for s in index], index=index)


def resolve_replicate_means(replicate_matrix: pd.DataFrame, design, verbose: bool = True) -> pd.DataFrame:
    """
    Average duplicate runs into one row per piglet.

    Parameters:
    -----------
    replicate_matrix : pd.DataFrame
        Replicate runs x proteins matrix (index like ``"2343_sample 1"``)
    design : StudyDesign
        Parses run names into subjects

    Returns:
    --------
    pd.DataFrame : subjects x proteins, index name ``Subject``
    """
    subjects = _subjects_for(replicate_matrix.index, design)
    grouped = replicate_matrix.groupby(subjects.values)

    means = grouped.mean()
    present = grouped.count()
    runs = grouped.size()

    means.index.name = "Subject"

    if verbose:
        partial = (present.gt(0) & present.lt(runs, axis=0)).sum().sum()
        all_missing = (present == 0).sum().sum()
        print("=== REPLICATE MEAN RESOLUTION ===")
        print(f"Runs: {len(replicate_matrix)} -> piglets: {len(means)}")
        print(f"Values resolved from a partial set of replicates: {partial:,}")
        print(f"Values missing in every replicate: {all_missing:,}")

    return means


def check_mean_block_consistency(mean_matrix: pd.DataFrame,
                                 replicate_matrix: pd.DataFrame,
                                 design,
                                 tolerance: float = 1e-6) -> pd.DataFrame:
    """
    Verify an exported mean block follows the replicate-mean policy.

    Parameters:
    -----------
    mean_matrix : pd.DataFrame
        Exported per-sample means, samples x proteins
    replicate_matrix : pd.DataFrame
        Replicate runs x proteins
    design : StudyDesign
    tolerance : float
        Relative tolerance for numeric agreement

    Returns:
    --------
    pd.DataFrame : the recomputed means aligned to mean_matrix

    Raises:
    -------
    MissingDataPolicyViolation if a mean exists where every replicate is
    missing, a mean is missing where a replicate exists, or values disagree.
    """
    expected = resolve_replicate_means(replicate_matrix, design, verbose=False)

    exported = mean_matrix.copy()
    exported.index = _subjects_for(exported.index, design).values

    subjects = exported.index.intersection(expected.index)
    proteins = exported.columns.intersection(expected.columns)
    if len(subjects) == 0 or len(proteins) == 0:
        raise MissingDataPolicyViolation("Mean block and replicate block share no samples or proteins")

    observed = exported.loc[subjects, proteins].apply(pd.to_numeric, errors="coerce")
    recomputed = expected.loc[subjects, proteins]

    extra = observed.notna() & recomputed.isna()
    lost = observed.isna() & recomputed.notna()
    both = observed.notna() & recomputed.notna()
    diff = (observed - recomputed).abs()
    scale = np.maximum(recomputed.abs(), 1.0)
    mismatch = both & (diff > tolerance * scale)

    problems: Dict[str, int] = {
        "mean present but all replicates missing": int(extra.sum().sum()),
        "mean missing but a replicate present": int(lost.sum().sum()),
        "mean disagrees with replicates": int(mismatch.sum().sum()),
    }

    if any(problems.values()):
        details = "; ".join(f"{k}: {v}" for k, v in problems.items() if v)
        raise MissingDataPolicyViolation(f"Mean block violates the replicate-mean policy ({details})")

    print(f"✓ Mean block consistent with replicates ({len(subjects)} piglets, {len(proteins)} proteins)")
    return recomputed


def summarize_missingness(sample_matrix: pd.DataFrame) -> Dict[str, pd.Series]:
    """
    Report missing values per protein and per sample.

    Parameters:
    -----------
    sample_matrix : pd.DataFrame
        Samples x proteins matrix

    Returns:
    --------
    dict with 'per_protein' and 'per_sample' missing counts
    """

    print("=== ASSESSING DATA COMPLETENESS ===\n")

    total_values = sample_matrix.shape[0] * sample_matrix.shape[1]
    missing_values = int(sample_matrix.isna().sum().sum())
    per_protein = sample_matrix.isna().sum(axis=0)
    per_sample = sample_matrix.isna().sum(axis=1)

    print("Data completeness summary:")
    print(f"Total possible values: {total_values:,}")
    if total_values:
        print(f"Missing values: {missing_values:,} ({missing_values / total_values * 100:.1f}%)")

    print("\nProtein detection summary:")
    print(f"Proteins detected in all samples: {(per_protein == 0).sum()}")
    print(f"Proteins missing in exactly one sample: {(per_protein == 1).sum()}")
    print(f"Proteins missing in more than one sample: {(per_protein > 1).sum()}")

    return {"per_protein": per_protein, "per_sample": per_sample}
