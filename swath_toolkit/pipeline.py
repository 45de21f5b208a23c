"""
End-to-end run of the SWATH analysis from a configuration dictionary.

The dictionary has the same keys as the exported configuration file (see
``export.create_config_dict_from_notebook_vars``), so a previous run can be
reproduced with::

    config = {}
    exec(open('hi_piglet_swath_config_20250101_120000.py').read(), config)
    results = run_swath_analysis(config)

Every step runs to completion or raises; nothing is retried.
"""

from typing import Any, Dict

import requests

from .data_import import (
    build_sample_matrix,
    filter_clinical_metadata,
    load_fold_change_table,
    load_swath_data,
    restrict_to_proteomics_samples,
    split_abundance_blocks,
)
from .enrichment import (
    EnrichmentConfig,
    build_ranked_list,
    comparison_to_fold_change_table,
    load_gene_sets,
    merge_enrichment_results,
    run_enrichment_suite,
)
from .export import create_config_dict_from_notebook_vars, export_complete_analysis
from .identifier_mapping import load_identifier_map
from .missing_data import (
    check_mean_block_consistency,
    filter_complete_proteins,
    resolve_replicate_means,
    summarize_missingness,
)
from .ordination import associate_components_with_covariates, run_pca, run_sparse_pca
from .preprocessing import build_sample_metadata, check_clinical_treatment_agreement, to_long_form
from .statistical_analysis import (
    StatisticalConfig,
    display_analysis_summary,
    prepare_statistical_data,
    run_group_comparison,
)
from .study_design import StudyDesign, load_study_design
from .validation import enforce_metadata_data_consistency


MISSING_DATA_POLICIES = ("complete_proteins", "replicate_means")


def build_study_design(config: Dict[str, Any]) -> StudyDesign:
    """Study design from a CSV file when configured, otherwise from the inline lists."""
    if config.get("study_design_file"):
        return load_study_design(config["study_design_file"])

    design = StudyDesign(
        sc_subjects=config.get("sc_subjects", []),
        pbs_subjects=config.get("pbs_subjects", []),
        female_subjects=config.get("female_subjects", []),
        excluded_subjects=config.get("excluded_subjects", []),
    )
    design.validate()
    return design


def build_statistical_config(config: Dict[str, Any]) -> StatisticalConfig:
    stat_config = StatisticalConfig()
    for key in (
        "group_column",
        "group_labels",
        "p_value_threshold",
        "tukey_alpha",
        "fold_change_threshold",
        "correction_method",
        "min_samples_per_group",
        "log_transform_before_stats",
        "log_base",
    ):
        if key in config:
            setattr(stat_config, key, config[key])
    stat_config.validate()
    return stat_config


def build_enrichment_config(config: Dict[str, Any]) -> EnrichmentConfig:
    return EnrichmentConfig(
        organism=config["organism"],
        target_namespace=config["target_namespace"],
        fold_change_cutoff=config["enrichment_fold_change_cutoff"],
        pvalue_cutoff=config["enrichment_pvalue_cutoff"],
        min_size=config["gsea_min_size"],
        max_size=config["gsea_max_size"],
        permutation_num=config["gsea_permutations"],
        seed=config["random_seed"],
        gene_set_files=dict(config["gene_set_files"]),
        use_kegg_rest=config["use_kegg_rest"],
        ambiguous_mapping=config["ambiguous_mapping"],
        strict_mapping=config["strict_mapping"],
    )


def run_swath_analysis(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run ingestion, missing-data handling, group comparison, ordination and
    enrichment in order.

    Parameters
    ----------
    config_dict : dict
        Configuration variables; unspecified keys take the defaults of
        create_config_dict_from_notebook_vars

    Returns
    -------
    dict
        Intermediate and final tables: 'design', 'clinical',
        'replicate_matrix', 'mean_matrix', 'analysis_matrix',
        'sample_metadata', 'validation', 'missingness', 'group_comparison',
        'pca', 'sparse_pca', 'component_association', 'ranked_lists',
        'enrichment', 'exported_files'
    """
    config = create_config_dict_from_notebook_vars(
        **{k: v for k, v in config_dict.items() if not k.startswith("__")}
    )
    policy = config["missing_data_policy"]
    if policy not in MISSING_DATA_POLICIES:
        raise ValueError(f"missing_data_policy must be one of {MISSING_DATA_POLICIES}, got {policy!r}")

    results: Dict[str, Any] = {}

    # 1. Ingestion and reshaping
    print("=" * 60)
    print("1. LOADING DATA")
    print("=" * 60)
    design = build_study_design(config)
    results["design"] = design

    abundance_table, clinical = load_swath_data(
        config["protein_file"], config["metadata_file"],
        protein_sheet=config["protein_sheet"], metadata_sheet=config["metadata_sheet"],
    )
    _, replicate_block, mean_block = split_abundance_blocks(abundance_table)

    replicate_matrix = build_sample_matrix(replicate_block)
    excluded = [s for s in replicate_matrix.index if design.is_excluded(s)]
    if excluded:
        print(f"  Dropping {len(excluded)} samples of excluded subjects")
        replicate_matrix = replicate_matrix.drop(index=excluded)
    results["replicate_matrix"] = replicate_matrix

    subject_column = config["subject_column"]
    clinical = filter_clinical_metadata(clinical, design, subject_column, config["include_column"])
    clinical = restrict_to_proteomics_samples(clinical, replicate_matrix, design, subject_column)
    results["clinical"] = clinical
    results["validation"] = enforce_metadata_data_consistency(
        clinical, replicate_matrix, design, subject_column, strict_validation=False
    )

    # 2. Missing data
    print("\n" + "=" * 60)
    print(f"2. MISSING DATA POLICY: {policy}")
    print("=" * 60)
    results["missingness"] = summarize_missingness(replicate_matrix)

    mean_matrix = None
    if policy == "replicate_means":
        analysis_matrix = resolve_replicate_means(replicate_matrix, design)
        if config["check_mean_block"] and mean_block.shape[1] > 0:
            mean_matrix = build_sample_matrix(mean_block)
            mean_matrix = mean_matrix.loc[[s for s in mean_matrix.index if not design.is_excluded(s)]]
            check_mean_block_consistency(mean_matrix, replicate_matrix, design)
    else:
        analysis_matrix = filter_complete_proteins(replicate_matrix)
    results["mean_matrix"] = mean_matrix
    results["analysis_matrix"] = analysis_matrix

    sample_metadata = build_sample_metadata(analysis_matrix, design, clinical, subject_column)
    results["sample_metadata"] = sample_metadata
    results["long_form"] = to_long_form(analysis_matrix, design)
    if config["clinical_group_column"]:
        check_clinical_treatment_agreement(sample_metadata, config["clinical_group_column"])

    # 3. Group comparison
    stat_config = build_statistical_config(config)
    group_comparison = run_group_comparison(analysis_matrix, sample_metadata, stat_config)
    display_analysis_summary(group_comparison, stat_config, config["label_top_proteins"])
    results["group_comparison"] = group_comparison

    # 4. Ordination (always on a complete, log-scale matrix)
    print("\n" + "=" * 60)
    print("4. ORDINATION")
    print("=" * 60)
    ordination_matrix = filter_complete_proteins(prepare_statistical_data(analysis_matrix, stat_config))
    pca = run_pca(ordination_matrix, config["n_components"])
    sparse_pca = run_sparse_pca(
        ordination_matrix,
        n_components=config["sparse_components"],
        keep_features=config["sparse_keep_features"],
        random_state=config["random_seed"],
    )
    results["pca"] = pca
    results["sparse_pca"] = sparse_pca

    covariates = [c for c in config["ordination_covariates"] if c in sample_metadata.columns]
    results["component_association"] = (
        associate_components_with_covariates(pca.scores, sample_metadata, covariates) if covariates else None
    )

    # 5. Identifier mapping and enrichment
    results["ranked_lists"] = {}
    results["enrichment"] = {}
    if config["run_enrichment"]:
        print("\n" + "=" * 60)
        print("5. IDENTIFIER MAPPING AND ENRICHMENT")
        print("=" * 60)
        enrichment_config = build_enrichment_config(config)
        mapping = load_identifier_map(config["identifier_map_file"]) if config["identifier_map_file"] else None

        fold_change_tables = {
            contrast: load_fold_change_table(path, log2_transform=config["fold_change_files_are_ratios"])
            for contrast, path in (config.get("fold_change_files") or {}).items()
        }
        if not fold_change_tables:
            contrasts = config["enrichment_contrasts"] or list(group_comparison["tukey_pvalues"].columns)
            fold_change_tables = {
                contrast: comparison_to_fold_change_table(group_comparison["comparison"], contrast)
                for contrast in contrasts
            }

        with requests.Session() as session:
            corpora = load_gene_sets(enrichment_config, session=session)
            for contrast, fold_change_table in fold_change_tables.items():
                print(f"\n--- {contrast} ---")
                ranked = build_ranked_list(fold_change_table, mapping, enrichment_config, session=session)
                results["ranked_lists"][contrast] = ranked
                results["enrichment"][contrast] = merge_enrichment_results(
                    run_enrichment_suite(ranked, corpora, enrichment_config)
                )

    # 6. Export
    results["exported_files"] = {}
    if config["export_results"]:
        results["exported_files"] = export_complete_analysis(results, config, config["output_prefix"])

    return results
