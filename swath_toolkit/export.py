"""
Export Module for the SWATH Analysis Toolkit

Writes the run's CSV outputs (PCA loadings, significant identifiers per
contrast, adjusted p-value tables, comparison tables, ranked lists and
enrichment tables) and a timestamped Python configuration file that records
every setting needed to reproduce the run.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from .enrichment import merge_enrichment_results


CONFIG_BANNER = "# =============================================================================\n"


def _safe_name(label: str) -> str:
    """Filesystem-friendly version of a contrast or method label."""
    return re.sub(r"[^A-Za-z0-9]+", "_", str(label)).strip("_")


def export_pca_loadings(result, output_prefix: str = "swath_analysis") -> str:
    """
    Export the loadings of an ordination result.

    Parameters:
    -----------
    result : OrdinationResult
        Output of run_pca or run_sparse_pca
    output_prefix : str
        Prefix for output filenames

    Returns:
    --------
    str
        Path of the loadings CSV
    """

    loadings_file = f"{output_prefix}_{_safe_name(result.method).lower()}_loadings.csv"
    loadings = result.loadings.copy()
    loadings.index.name = "Protein"
    loadings.to_csv(loadings_file)
    print(f"{result.method} loadings exported to: {loadings_file}")
    return loadings_file


def export_pca_scores(result, output_prefix: str = "swath_analysis") -> str:
    """Export sample scores plus a trailing explained-variance row."""

    scores_file = f"{output_prefix}_{_safe_name(result.method).lower()}_scores.csv"
    scores = result.scores.copy()
    scores.index.name = "Sample"
    variance = pd.DataFrame([result.explained_variance_ratio.values],
                            columns=result.explained_variance_ratio.index,
                            index=pd.Index(["explained_variance_ratio"], name="Sample"))
    pd.concat([scores, variance]).to_csv(scores_file)
    print(f"{result.method} scores exported to: {scores_file}")
    return scores_file


def export_significant_identifiers(
    significant: Dict[str, List[str]],
    output_prefix: str = "swath_analysis",
    comparison: Optional[pd.DataFrame] = None,
) -> Dict[str, str]:
    """
    Export one CSV of significant proteins per contrast.

    Parameters:
    -----------
    significant : dict
        Contrast -> list of proteins (select_significant_proteins)
    output_prefix : str
        Prefix for output filenames
    comparison : pd.DataFrame, optional
        Comparison table; when given, each file also carries the contrast's
        p-value and log fold change

    Returns:
    --------
    dict
        Contrast -> exported file
    """

    exported = {}
    for contrast, proteins in significant.items():
        out_file = f"{output_prefix}_significant_{_safe_name(contrast)}.csv"
        table = pd.DataFrame({"Protein": list(proteins)})

        if comparison is not None:
            for suffix in ("P.Value", "logFC"):
                col = f"{contrast} {suffix}"
                if col in comparison.columns:
                    table[suffix] = comparison[col].reindex(table["Protein"]).values

        table.to_csv(out_file, index=False)
        exported[contrast] = out_file
        print(f"  {contrast}: {len(table)} proteins -> {out_file}")

    return exported


def export_adjusted_pvalues(anova_results: pd.DataFrame, output_prefix: str = "swath_analysis") -> str:
    """Export the omnibus test table with raw and FDR-adjusted p-values."""

    if "adj.P.Val" not in anova_results.columns:
        raise ValueError("ANOVA results have no 'adj.P.Val' column; run apply_multiple_testing_correction first")

    out_file = f"{output_prefix}_anova_adjusted_pvalues.csv"
    anova_results.to_csv(out_file, index=False)
    print(f"Adjusted p-values exported to: {out_file}")
    return out_file


def export_comparison_table(comparison: pd.DataFrame, output_prefix: str = "swath_analysis") -> str:
    """Export the per-contrast p-value / logFC table."""

    out_file = f"{output_prefix}_comparison_table.csv"
    table = comparison.copy()
    table.index.name = "Protein"
    table.to_csv(out_file)
    print(f"Comparison table exported to: {out_file}")
    return out_file


def export_ranked_list(ranked: pd.Series, output_prefix: str = "swath_analysis", label: str = "") -> str:
    """Write a ranked list as a headerless two-column .rnk file."""

    suffix = f"_{_safe_name(label)}" if label else ""
    out_file = f"{output_prefix}{suffix}_ranked.rnk"
    pd.DataFrame({"gene": ranked.index, "score": ranked.values}).to_csv(
        out_file, sep="\t", index=False, header=False
    )
    print(f"Ranked list exported to: {out_file}")
    return out_file


def export_enrichment_results(
    results: Union[pd.DataFrame, Dict[str, Dict[str, pd.DataFrame]]],
    output_prefix: str = "swath_analysis",
    label: str = "",
) -> str:
    """
    Export enrichment results as one table.

    Parameters:
    -----------
    results : pd.DataFrame or dict
        Merged table, or the nested dict from run_enrichment_suite
    output_prefix : str
        Prefix for output filenames
    label : str
        Optional contrast label for the filename

    Returns:
    --------
    str
        Path of the exported CSV
    """

    merged = results if isinstance(results, pd.DataFrame) else merge_enrichment_results(results)
    suffix = f"_{_safe_name(label)}" if label else ""
    out_file = f"{output_prefix}{suffix}_enrichment.csv"
    merged.to_csv(out_file, index=False)
    print(f"Enrichment results ({len(merged)} terms) exported to: {out_file}")
    return out_file


def export_timestamped_config(
    config_dict: Dict[str, Any],
    output_prefix: str = "swath_analysis",
    analysis_description: str = "SWATH proteomics analysis",
    computed_values: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Export analysis configuration as a timestamped Python file.

    Parameters:
    -----------
    config_dict : dict
        Dictionary containing all configuration parameters
    output_prefix : str
        Prefix for the configuration filename
    analysis_description : str
        Description of the analysis type
    computed_values : dict, optional
        Additional computed values to include as comments

    Returns:
    --------
    str
        Path to the exported configuration file
    """

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    config_file = f"{output_prefix}_config_{timestamp}.py"

    print(f"Exporting analysis configuration to: {config_file}")

    with open(config_file, "w", encoding="utf-8") as f:
        f.write(CONFIG_BANNER)
        f.write("# SWATH PROTEOMICS ANALYSIS CONFIGURATION\n")
        f.write(f"# Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"# Analysis: {analysis_description}\n")
        f.write(CONFIG_BANNER + "\n")

        section_configs = [
            (
                1,
                "INPUT FILES AND PATHS",
                [
                    "toolkit_path",
                    "protein_file",
                    "protein_sheet",
                    "metadata_file",
                    "metadata_sheet",
                    "study_design_file",
                    "identifier_map_file",
                ],
            ),
            (
                2,
                "STUDY DESIGN",
                [
                    "subject_column",
                    "include_column",
                    "clinical_group_column",
                    "sc_subjects",
                    "pbs_subjects",
                    "female_subjects",
                    "excluded_subjects",
                ],
            ),
            (3, "MISSING DATA POLICY", ["missing_data_policy", "check_mean_block"]),
            (
                4,
                "STATISTICAL ANALYSIS STRATEGY",
                [
                    "group_column",
                    "group_labels",
                    "log_transform_before_stats",
                    "log_base",
                    "correction_method",
                    "min_samples_per_group",
                ],
            ),
            (
                5,
                "SIGNIFICANCE THRESHOLDS",
                ["p_value_threshold", "tukey_alpha", "fold_change_threshold"],
            ),
            (
                6,
                "ORDINATION",
                ["n_components", "sparse_components", "sparse_keep_features", "ordination_covariates"],
            ),
            (
                7,
                "IDENTIFIER MAPPING AND ENRICHMENT",
                [
                    "run_enrichment",
                    "enrichment_contrasts",
                    "fold_change_files",
                    "fold_change_files_are_ratios",
                    "organism",
                    "target_namespace",
                    "enrichment_fold_change_cutoff",
                    "enrichment_pvalue_cutoff",
                    "gsea_permutations",
                    "gsea_min_size",
                    "gsea_max_size",
                    "gene_set_files",
                    "use_kegg_rest",
                    "ambiguous_mapping",
                    "strict_mapping",
                ],
            ),
            (
                8,
                "OUTPUT AND EXPORT SETTINGS",
                ["export_results", "output_prefix", "label_top_proteins", "random_seed"],
            ),
        ]

        for section_num, section_name, param_names in section_configs:
            _write_config_section(f, section_name, config_dict, param_names, section_num)

        if computed_values:
            f.write(CONFIG_BANNER)
            f.write("# COMPUTED VALUES (for reference)\n")
            f.write(CONFIG_BANNER)
            for key, value in computed_values.items():
                f.write(f"# {key}: {value}\n")

    return config_file


def _write_config_section(
    file_handle,
    section_name: str,
    config_dict: Dict[str, Any],
    param_names: List[str],
    section_number: int = 1,
) -> None:
    """Write a configuration section to file."""

    file_handle.write(CONFIG_BANNER)
    file_handle.write(f"# {section_number}. {section_name}\n")
    file_handle.write(CONFIG_BANNER)

    for param in param_names:
        if param in config_dict:
            file_handle.write(f"{param} = {repr(config_dict[param])}\n")

    file_handle.write("\n")


def create_config_dict_from_notebook_vars(**kwargs) -> Dict[str, Any]:
    """
    Create a configuration dictionary from notebook variables.

    Unknown keys are kept as given; missing keys take the defaults below.

    Parameters:
    -----------
    **kwargs : various
        Configuration variables from the notebook

    Returns:
    --------
    dict
        Configuration dictionary
    """

    config_template = {
        # Input files
        "toolkit_path": ".",
        "protein_file": "",
        "protein_sheet": 0,
        "metadata_file": "",
        "metadata_sheet": 0,
        "study_design_file": "",
        "identifier_map_file": None,
        # Study design
        "subject_column": "Subject",
        "include_column": None,
        "clinical_group_column": None,
        "sc_subjects": [],
        "pbs_subjects": [],
        "female_subjects": [],
        "excluded_subjects": [],
        # Missing data
        "missing_data_policy": "complete_proteins",
        "check_mean_block": True,
        # Statistics
        "group_column": "Treatment",
        "group_labels": [],
        "log_transform_before_stats": "auto",
        "log_base": "log2",
        "correction_method": "fdr_bh",
        "min_samples_per_group": 2,
        # Significance thresholds
        "p_value_threshold": 0.05,
        "tukey_alpha": 0.05,
        "fold_change_threshold": 1.0,
        # Ordination
        "n_components": None,
        "sparse_components": 2,
        "sparse_keep_features": 10,
        "ordination_covariates": ["Treatment", "Sex"],
        # Enrichment
        "run_enrichment": True,
        "enrichment_contrasts": None,
        "fold_change_files": {},
        "fold_change_files_are_ratios": False,
        "organism": "ssc",
        "target_namespace": "kegg",
        "enrichment_fold_change_cutoff": 1.1,
        "enrichment_pvalue_cutoff": 0.05,
        "gsea_permutations": 1000,
        "gsea_min_size": 10,
        "gsea_max_size": 500,
        "gene_set_files": {},
        "use_kegg_rest": True,
        "ambiguous_mapping": "first",
        "strict_mapping": False,
        # Output settings
        "export_results": True,
        "output_prefix": "swath_analysis",
        "label_top_proteins": 10,
        "random_seed": 42,
    }

    config_dict = config_template.copy()
    config_dict.update(kwargs)

    return config_dict


def export_complete_analysis(
    results: Dict[str, Any],
    config_dict: Dict[str, Any],
    output_prefix: str = "swath_analysis",
    analysis_description: str = "HI piglet SWATH analysis",
) -> Dict[str, str]:
    """
    Export every table of a run plus the timestamped configuration.

    Parameters:
    -----------
    results : dict
        Output of run_swath_analysis; recognised keys are 'group_comparison',
        'pca', 'sparse_pca', 'ranked_lists' and 'enrichment'
    config_dict : dict
        Complete configuration dictionary
    output_prefix : str
        Prefix for output filenames
    analysis_description : str
        Description for the configuration header

    Returns:
    --------
    dict
        Dictionary of all exported files
    """

    print("Exporting analysis results...")
    exported_files = {}

    comparison_results = results.get("group_comparison")
    if comparison_results is not None:
        exported_files["adjusted_pvalues"] = export_adjusted_pvalues(comparison_results["anova"], output_prefix)
        exported_files["comparison_table"] = export_comparison_table(comparison_results["comparison"], output_prefix)
        for contrast, path in export_significant_identifiers(
            comparison_results["significant"], output_prefix, comparison_results["comparison"]
        ).items():
            exported_files[f"significant:{contrast}"] = path

    for key in ("pca", "sparse_pca"):
        if results.get(key) is not None:
            exported_files[f"{key}_loadings"] = export_pca_loadings(results[key], output_prefix)
            exported_files[f"{key}_scores"] = export_pca_scores(results[key], output_prefix)

    for contrast, ranked in (results.get("ranked_lists") or {}).items():
        exported_files[f"ranked:{contrast}"] = export_ranked_list(ranked, output_prefix, contrast)

    for contrast, enrichment in (results.get("enrichment") or {}).items():
        exported_files[f"enrichment:{contrast}"] = export_enrichment_results(enrichment, output_prefix, contrast)

    computed_values = {}
    if results.get("analysis_matrix") is not None:
        n_samples, n_proteins = results["analysis_matrix"].shape
        computed_values["Total proteins analyzed"] = n_proteins
        computed_values["Total samples"] = n_samples
    if comparison_results is not None:
        computed_values["Contrasts"] = list(comparison_results["significant"].keys())

    config_file = export_timestamped_config(
        config_dict=config_dict,
        output_prefix=output_prefix,
        analysis_description=analysis_description,
        computed_values=computed_values,
    )
    exported_files["configuration"] = config_file

    _print_export_summary(exported_files, config_file)
    return exported_files


def _print_export_summary(exported_files: Dict[str, str], config_file: str) -> None:
    """Print a summary of exported files."""

    print("\n" + "=" * 60)
    print("✓ All analysis results and configuration exported successfully!")
    print("Files created:")
    for key, path in exported_files.items():
        print(f"  • {path} - {key}")
    print("=" * 60)

    print("\nREPRODUCIBILITY TIP:")
    print("To reproduce this analysis:")
    print(f"1. Copy the configuration variables from: {config_file}")
    print("2. Paste them into the configuration cell of a new notebook")
    print("3. Or load them directly and call run_swath_analysis()")
