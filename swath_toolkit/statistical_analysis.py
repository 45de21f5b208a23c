"""
Statistical Analysis Module for SWATH Proteomics Data

Per-protein one-way ANOVA with false-discovery-rate correction across all
proteins, Tukey HSD post-hoc contrasts, log2 fold changes per contrast and
per-contrast selection of significant proteins.

The omnibus FDR and the per-contrast Tukey selection are reported side by
side; the adjusted omnibus p-values do not gate the Tukey selection.
"""

from itertools import combinations

import numpy as np
import pandas as pd
from scipy.stats import f_oneway
from statsmodels.stats.multicomp import pairwise_tukeyhsd
from statsmodels.stats.multitest import multipletests

from .validation import EmptyResultSet


class StatisticalConfig:
    """Configuration class for the group comparison

    group_column selects the grouping factor:
    - 'Treatment': CONTROL, HI+HTH+PBS, HI+HTH+SC
    - 'Condition': CONTROL vs HI+HTH (both HI arms collapsed)
    """

    def __init__(self):
        # Grouping factor
        self.group_column = "Treatment"
        self.group_labels = []  # Optional ordering/subset of levels

        # Significance
        self.p_value_threshold = 0.05
        self.tukey_alpha = 0.05
        self.fold_change_threshold = 1.0  # |log2FC| for the volcano table

        # Multiple testing correction (omnibus ANOVA only)
        self.correction_method = "fdr_bh"

        # Minimum non-missing values per group for a protein to be tested
        self.min_samples_per_group = 2

        # Log transformation parameters
        self.log_transform_before_stats = "auto"  # "auto", True, False
        self.log_base = "log2"

    def validate(self):
        """Validate the configuration"""
        if not self.group_column:
            raise ValueError("group_column must be set ('Treatment' or 'Condition')")
        if not 0 < self.p_value_threshold <= 1:
            raise ValueError("p_value_threshold must be in (0, 1]")
        if not 0 < self.tukey_alpha < 1:
            raise ValueError("tukey_alpha must be in (0, 1)")
        if self.min_samples_per_group < 2:
            raise ValueError("min_samples_per_group must be at least 2")
        if self.group_labels and len(self.group_labels) < 2:
            raise ValueError("group_labels needs at least two levels")
        if self.log_base not in ("log2", "log10", "ln"):
            raise ValueError(f"Unknown log base: {self.log_base}")
        return True


def prepare_statistical_data(data, config):
    """
    Apply a log transformation if needed based on configuration.

    Parameters:
    -----------
    data : pd.DataFrame
        Numeric intensities (any orientation)
    config : StatisticalConfig

    Returns:
    --------
    pd.DataFrame
        Data on the log scale; non-positive values become missing
    """
    numeric = data.apply(pd.to_numeric, errors="coerce")

    if config.log_transform_before_stats == "auto":
        mean_value = numeric.mean().mean()
        apply_log_transform = bool(pd.notna(mean_value) and mean_value > 50)
        status = "needed" if apply_log_transform else "not needed"
        print(f"Log transformation: AUTO-DETECTED ({status} - mean value {mean_value:.1f})")
    elif str(config.log_transform_before_stats).lower() in ["true", "1", "yes", "on"]:
        apply_log_transform = True
        print("Log transformation: ENABLED (forced by configuration)")
    else:
        apply_log_transform = False
        print("Log transformation: DISABLED (by configuration)")

    if not apply_log_transform:
        return numeric

    non_positive = int((numeric <= 0).sum().sum())
    if non_positive:
        print(f"  -> {non_positive} non-positive values treated as missing before log")
    positive = numeric.where(numeric > 0)

    if config.log_base == "log2":
        transformed = np.log2(positive)
    elif config.log_base == "log10":
        transformed = np.log10(positive)
    elif config.log_base == "ln":
        transformed = np.log(positive)
    else:
        raise ValueError(f"Unknown log base: {config.log_base}")

    print(f"  -> Applied {config.log_base} transformation")
    return transformed


def prepare_metadata_dataframe(sample_metadata, sample_columns, config):
    """Restrict sample metadata to the analysed samples and levels"""

    if config.group_column not in sample_metadata.columns:
        raise ValueError(f"Missing required metadata columns: ['{config.group_column}']")

    metadata_df = sample_metadata.loc[sample_metadata.index.intersection(sample_columns)].copy()
    metadata_df = metadata_df.dropna(subset=[config.group_column])
    metadata_df["Sample"] = metadata_df.index

    if config.group_labels:
        metadata_df = metadata_df[metadata_df[config.group_column].isin(config.group_labels)]

    if len(metadata_df) == 0:
        raise EmptyResultSet("No samples remain after filtering for required metadata")

    print(f"  Samples: {len(metadata_df)}")
    print(f"  Groups: {metadata_df[config.group_column].value_counts().to_dict()}")
    return metadata_df.reset_index(drop=True)


def _group_levels(metadata_df, config):
    if config.group_labels:
        return [g for g in config.group_labels if g in set(metadata_df[config.group_column])]
    return sorted(metadata_df[config.group_column].unique())


def _protein_frame(protein_values, metadata_df, config):
    protein_df = pd.DataFrame({"Sample": protein_values.index, "Intensity": protein_values.values})
    protein_df = protein_df.merge(metadata_df[["Sample", config.group_column]], on="Sample", how="inner")
    return protein_df.dropna(subset=["Intensity"])


def _create_empty_result(protein_idx, reason):
    """Create empty result for failed analysis"""
    return {
        "Protein": protein_idx,
        "F": np.nan,
        "P.Value": np.nan,
        "n_obs": 0,
        "n_groups": 0,
        "test_method": f"Failed: {reason}",
    }


def run_anova(protein_data, metadata_df, config):
    """
    Run a one-way ANOVA per protein.

    Parameters:
    -----------
    protein_data : pd.DataFrame
        Proteins x samples (log scale)
    metadata_df : pd.DataFrame
        Must contain 'Sample' and config.group_column
    config : StatisticalConfig

    Returns:
    --------
    pd.DataFrame with Protein, F, P.Value, n_obs, n_groups, test_method
    """

    print("Running one-way ANOVA...")

    results = []
    n_proteins = len(protein_data)

    for i, (protein_idx, protein_values) in enumerate(protein_data.iterrows()):
        if (i + 1) % 500 == 0:
            print(f"  Processed {i + 1}/{n_proteins} proteins...")

        protein_df = _protein_frame(protein_values, metadata_df, config)

        groups = [
            values["Intensity"].values
            for _, values in protein_df.groupby(config.group_column)
            if len(values) >= config.min_samples_per_group
        ]

        if len(groups) < 2:
            results.append(_create_empty_result(protein_idx, "Insufficient group data"))
            continue

        if np.ptp(np.concatenate(groups)) == 0:
            results.append(_create_empty_result(protein_idx, "Constant intensities"))
            continue

        try:
            f_stat, p_value = f_oneway(*groups)
        except (ValueError, RuntimeError, ZeroDivisionError) as e:
            results.append(_create_empty_result(protein_idx, f"Analysis failed: {e}"))
            continue

        results.append({
            "Protein": protein_idx,
            "F": f_stat,
            "P.Value": p_value,
            "n_obs": int(sum(len(g) for g in groups)),
            "n_groups": len(groups),
            "test_method": "One-way ANOVA",
        })

    print(f"✓ ANOVA completed for {len(results)} proteins")
    return pd.DataFrame(results, columns=["Protein", "F", "P.Value", "n_obs", "n_groups", "test_method"])


def apply_multiple_testing_correction(results_df, config):
    """Apply multiple testing correction across every tested protein"""

    if "P.Value" not in results_df.columns:
        print("Warning: No P.Value column found for correction")
        return results_df

    results_df = results_df.copy()
    valid = results_df["P.Value"].notna()

    if valid.sum() == 0:
        print("Warning: No valid p-values found")
        results_df["adj.P.Val"] = np.nan
        results_df["Significant"] = False
        return results_df

    if config.correction_method == "none":
        results_df["adj.P.Val"] = results_df["P.Value"]
    else:
        # Proteins that could not be tested do not count towards the family
        _, adj_pvalues, _, _ = multipletests(
            results_df.loc[valid, "P.Value"], method=config.correction_method
        )
        results_df["adj.P.Val"] = np.nan
        results_df.loc[valid, "adj.P.Val"] = adj_pvalues

    results_df["Significant"] = results_df["adj.P.Val"] <= config.p_value_threshold

    print("Multiple testing correction applied:")
    print(f"  Method: {config.correction_method}")
    print(f"  Proteins tested: {valid.sum()}")
    print(f"  Significant proteins (adjusted p <= {config.p_value_threshold}): "
          f"{results_df['Significant'].sum()}")

    return results_df


def contrast_names(levels):
    """Contrast labels '<group2>-<group1>' in Tukey pair order."""
    return [f"{g2}-{g1}" for g1, g2 in combinations(levels, 2)]


def run_tukey_posthoc(protein_data, metadata_df, config):
    """
    Run Tukey's HSD per protein.

    Parameters:
    -----------
    protein_data : pd.DataFrame
        Proteins x samples (log scale)
    metadata_df : pd.DataFrame
        Must contain 'Sample' and config.group_column
    config : StatisticalConfig

    Returns:
    --------
    pd.DataFrame
        Proteins x contrasts table of Tukey-adjusted p-values. Contrast
        '<group2>-<group1>' compares group2 against group1.
    """

    print("Running Tukey HSD post-hoc tests...")

    levels = _group_levels(metadata_df, config)
    contrasts = contrast_names(levels)
    rows = {}

    for protein_idx, protein_values in protein_data.iterrows():
        protein_df = _protein_frame(protein_values, metadata_df, config)
        counts = protein_df[config.group_column].value_counts()
        usable = [g for g in levels if counts.get(g, 0) >= config.min_samples_per_group]
        protein_df = protein_df[protein_df[config.group_column].isin(usable)]

        row = dict.fromkeys(contrasts, np.nan)
        if len(usable) >= 2 and np.ptp(protein_df["Intensity"].values) > 0:
            try:
                posthoc = pairwise_tukeyhsd(
                    endog=protein_df["Intensity"].values,
                    groups=protein_df[config.group_column].values,
                    alpha=config.tukey_alpha,
                )
            except (ValueError, ZeroDivisionError) as e:
                print(f"  Tukey HSD failed for {protein_idx}: {e}")
            else:
                # statsmodels orders pairs like combinations() over sorted levels
                for (g1, g2), p_value in zip(combinations(posthoc.groupsunique, 2), posthoc.pvalues):
                    key = f"{g2}-{g1}"
                    if key not in row:
                        key = f"{g1}-{g2}"
                    row[key] = float(p_value)
        rows[protein_idx] = row

    tukey_df = pd.DataFrame.from_dict(rows, orient="index", columns=contrasts)
    tukey_df.index.name = "Protein"
    print(f"✓ Tukey HSD completed: {len(tukey_df)} proteins x {len(contrasts)} contrasts")
    return tukey_df


def calculate_fold_changes(protein_data, metadata_df, config):
    """
    Log2 fold change per contrast: mean of group2 minus mean of group1 on the
    log scale, using each protein's non-missing values.
    """
    levels = _group_levels(metadata_df, config)
    group_of = metadata_df.set_index("Sample")[config.group_column]
    samples = [s for s in protein_data.columns if s in group_of.index]

    group_means = protein_data[samples].T.groupby(group_of.loc[samples].values).mean().T

    fold_changes = pd.DataFrame(index=protein_data.index)
    for g1, g2 in combinations(levels, 2):
        fold_changes[f"{g2}-{g1}"] = group_means[g2] - group_means[g1]
    fold_changes.index.name = "Protein"
    return fold_changes


def build_comparison_table(tukey_pvalues, fold_changes):
    """Join per-contrast p-values and fold changes into one proteins x columns table."""
    table = pd.DataFrame(index=tukey_pvalues.index)
    for contrast in tukey_pvalues.columns:
        table[f"{contrast} P.Value"] = tukey_pvalues[contrast]
        if contrast in fold_changes.columns:
            table[f"{contrast} logFC"] = fold_changes[contrast].reindex(table.index)
    table.index.name = "Protein"
    return table


def select_significant_proteins(tukey_pvalues, threshold=0.05):
    """
    Proteins passing the unadjusted Tukey cutoff, per contrast.

    Returns:
    --------
    dict
        contrast -> list of proteins with p <= threshold, most significant first
    """
    significant = {}
    for contrast in tukey_pvalues.columns:
        pvalues = tukey_pvalues[contrast].dropna()
        significant[contrast] = pvalues[pvalues <= threshold].sort_values().index.tolist()
        print(f"  {contrast}: {len(significant[contrast])} proteins with p <= {threshold}")
    return significant


def classify_regulation(comparison, contrast, p_threshold=0.05, fc_threshold=1.0):
    """
    Volcano table for one contrast (data only, no plotting).

    Returns:
    --------
    pd.DataFrame with logFC, P.Value, neg_log10_p and Regulation
    """
    p_col = f"{contrast} P.Value"
    fc_col = f"{contrast} logFC"
    if p_col not in comparison.columns or fc_col not in comparison.columns:
        raise ValueError(f"Contrast '{contrast}' not found in comparison table")

    volcano = pd.DataFrame({
        "logFC": comparison[fc_col],
        "P.Value": comparison[p_col],
    })
    volcano["neg_log10_p"] = -np.log10(volcano["P.Value"])
    volcano["Regulation"] = "Not significant"
    significant = volcano["P.Value"] <= p_threshold
    volcano.loc[significant & (volcano["logFC"] >= fc_threshold), "Regulation"] = "Up"
    volcano.loc[significant & (volcano["logFC"] <= -fc_threshold), "Regulation"] = "Down"
    return volcano


def run_group_comparison(sample_matrix, sample_metadata, config):
    """
    Complete group comparison on a samples x proteins matrix.

    Parameters:
    -----------
    sample_matrix : pd.DataFrame
        Samples x proteins intensities
    sample_metadata : pd.DataFrame
        Indexed by sample id, containing config.group_column
    config : StatisticalConfig

    Returns:
    --------
    dict with 'anova', 'tukey_pvalues', 'fold_changes', 'comparison',
    'significant'
    """

    print("=" * 60)
    print("GROUP COMPARISON (ANOVA + TUKEY HSD)")
    print("=" * 60)

    try:
        config.validate()
    except ValueError as e:
        raise ValueError(f"Configuration error: {e}") from e

    statistical_data = prepare_statistical_data(sample_matrix, config)

    print("\nStep 1: Preparing sample metadata...")
    metadata_df = prepare_metadata_dataframe(sample_metadata, list(statistical_data.index), config)

    protein_data = statistical_data.loc[metadata_df["Sample"]].T
    print(f"  Proteins: {len(protein_data)}")
    print(f"  Grouping factor: {config.group_column}")

    print("\nStep 2: Omnibus test...")
    anova = run_anova(protein_data, metadata_df, config)
    anova = apply_multiple_testing_correction(anova, config)
    anova = anova.sort_values("P.Value").reset_index(drop=True)

    print("\nStep 3: Pairwise contrasts...")
    tukey_pvalues = run_tukey_posthoc(protein_data, metadata_df, config)
    fold_changes = calculate_fold_changes(protein_data, metadata_df, config)
    comparison = build_comparison_table(tukey_pvalues, fold_changes)

    print("\nStep 4: Selecting significant proteins per contrast...")
    significant = select_significant_proteins(tukey_pvalues, config.p_value_threshold)

    print("\n✓ Group comparison completed!")
    return {
        "anova": anova,
        "tukey_pvalues": tukey_pvalues,
        "fold_changes": fold_changes,
        "comparison": comparison,
        "significant": significant,
        "metadata": metadata_df,
    }


def display_analysis_summary(results, config, label_top_n=10):
    """
    Display a summary of the group comparison

    Returns:
    --------
    dict
        Summary statistics for downstream use
    """

    anova = results.get("anova") if results else None
    if anova is None or len(anova) == 0:
        print("⚠️ No group comparison results available")
        return {}

    print("=" * 60)
    print("STATISTICAL ANALYSIS SUMMARY")
    print("=" * 60)

    total_proteins = len(anova)
    valid_results = int(anova["P.Value"].notna().sum())
    significant_omnibus = int((anova["adj.P.Val"] <= config.p_value_threshold).sum())

    print("Analysis Overview:")
    print(f"  Grouping factor: {config.group_column}")
    print(f"  Total proteins analyzed: {total_proteins:,}")
    print(f"  Proteins with valid results: {valid_results:,}")
    print(f"  Omnibus significant (adjusted p <= {config.p_value_threshold}): {significant_omnibus:,}")

    print("\nPer-contrast Tukey selections (unadjusted by FDR):")
    per_contrast = {}
    for contrast, proteins in results.get("significant", {}).items():
        per_contrast[contrast] = len(proteins)
        print(f"  {contrast}: {len(proteins)}")

    if valid_results > 0:
        print(f"\n=== TOP {label_top_n} PROTEINS BY OMNIBUS P-VALUE ===")
        top = anova[anova["P.Value"].notna()].nsmallest(label_top_n, "P.Value")
        display_df = top[["Protein", "F", "P.Value", "adj.P.Val"]].copy()
        for col in ["P.Value", "adj.P.Val"]:
            display_df[col] = display_df[col].apply(
                lambda x: f"{x:.2e}" if pd.notna(x) and x < 0.01 else f"{x:.4f}" if pd.notna(x) else "N/A"
            )
        print(display_df.to_string(index=False))
    else:
        failures = anova["test_method"].value_counts()
        print("\nFailure Analysis:")
        for reason, count in failures.items():
            print(f"  {reason}: {count}")

    summary = {
        "total_proteins": total_proteins,
        "valid_results": valid_results,
        "significant_omnibus": significant_omnibus,
        "significant_per_contrast": per_contrast,
        "group_column": config.group_column,
    }

    print("\n✓ Analysis summary complete!")
    return summary
