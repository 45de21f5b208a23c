"""
SWATH Analysis Toolkit
======================

Exploratory analysis of SWATH-MS protein abundance tables for the piglet
hypoxic-ischaemic (HI) brain-injury study: ingestion and reshaping, two
missing-data policies, per-protein ANOVA with FDR correction and Tukey HSD
contrasts, PCA and sparse PCA, and UniProt -> KEGG/Entrez mapping feeding
over-representation and gene set enrichment analysis.

QUICK START EXAMPLE:
-------------------
    import swath_toolkit as stk

    # 1. Study design and data
    design = stk.load_study_design('study_design.csv')
    table, clinical = stk.load_swath_data('swath_proteins.xlsx', 'clinical.xlsx')
    _, replicates, means = stk.split_abundance_blocks(table)
    matrix = stk.filter_complete_proteins(stk.build_sample_matrix(replicates))

    # 2. Group comparison
    metadata = stk.build_sample_metadata(matrix, design)
    results = stk.run_group_comparison(matrix, metadata, stk.StatisticalConfig())

    # 3. Ordination and enrichment
    pca = stk.run_pca(matrix)
    fc = stk.comparison_to_fold_change_table(results['comparison'], 'HI+HTH+SC-CONTROL')
    ranked = stk.build_ranked_list(fc)

    # Or all of it from one configuration dictionary
    stk.run_swath_analysis(config_dict)

MODULE OVERVIEW:
===============

study_design
    Purpose: Sample id -> subject, treatment arm, sex and exclusion flags
    Key functions: load_study_design(), StudyDesign.annotate_samples()

data_import
    Purpose: Load SWATH abundance tables, clinical workbooks and fold-change exports
    Key functions: load_swath_data(), split_abundance_blocks(), build_sample_matrix()

preprocessing
    Purpose: Per-sample metadata and long-form reshaping
    Key functions: build_sample_metadata(), to_long_form()

missing_data
    Purpose: The two missing-data policies and their checks
    Key functions: filter_complete_proteins(), resolve_replicate_means()

statistical_analysis
    Purpose: ANOVA + FDR, Tukey HSD contrasts, fold changes, volcano tables
    Key functions: run_group_comparison(), StatisticalConfig()

ordination
    Purpose: PCA, sparse PCA and confound checks on component scores
    Key functions: run_pca(), run_sparse_pca(), associate_components_with_covariates()

identifier_mapping
    Purpose: Peak name parsing and UniProt -> KEGG/Entrez mapping (KEGG REST)
    Key functions: split_peak_names(), translate_accessions()

enrichment
    Purpose: Ranked lists, ORA and GSEA over KEGG/Reactome/GO/DO/DGN/MeSH corpora
    Key functions: build_ranked_list(), run_enrichment_suite(), EnrichmentConfig()

validation
    Purpose: Error types and metadata/data consistency checks
    Key functions: validate_metadata_data_consistency()

export
    Purpose: CSV outputs and timestamped, reproducible configuration files
    Key functions: export_complete_analysis(), export_timestamped_config()

pipeline
    Purpose: The whole run from one configuration dictionary
    Key functions: run_swath_analysis()

ERROR HANDLING:
==============
- MissingDataPolicyViolation: a matrix breaks the missing-data policy in force
- IdentifierMappingFailure: accessions without (or with ambiguous) targets
- EmptyResultSet: a filter or mapping step left nothing to analyse
- SampleMatchingError: clinical metadata and SWATH samples disagree
"""

# =============================================================================
# MODULE IMPORTS - Core functionality organized by analysis stage
# =============================================================================

from . import study_design        # Sample id -> treatment/sex/exclusion
from . import data_import         # Data loading and parsing
from . import preprocessing       # Metadata and reshaping
from . import missing_data        # Missing-data policies
from . import statistical_analysis # ANOVA, FDR, Tukey HSD
from . import ordination          # PCA and sparse PCA
from . import identifier_mapping  # UniProt -> KEGG/Entrez
from . import enrichment          # ORA and GSEA
from . import validation          # Error types and consistency checks
from . import export              # Results export and configuration management
from . import pipeline            # End-to-end run

__version__ = "1.0.0"

# =============================================================================
# CONVENIENCE IMPORTS - Most commonly used functions available at top level
# =============================================================================

from .study_design import StudyDesign, load_study_design

from .data_import import (
    load_swath_data,            # Main function: abundance table + clinical metadata
    split_abundance_blocks,     # Identifier, replicate and mean blocks
    build_sample_matrix,        # Samples x proteins matrix
    filter_clinical_metadata,   # Included, non-excluded clinical rows
    load_fold_change_table      # Per-contrast fold-change export
)

from .preprocessing import build_sample_metadata, to_long_form

from .missing_data import (
    filter_complete_proteins,   # Policy 1: complete-case proteins
    resolve_replicate_means,    # Policy 2: per-subject replicate means
    check_mean_block_consistency,
    summarize_missingness
)

from .statistical_analysis import (
    run_group_comparison,       # Main function: ANOVA + FDR + Tukey + fold changes
    display_analysis_summary,
    classify_regulation,        # Volcano table for one contrast
    StatisticalConfig
)

from .ordination import (
    run_pca,
    run_sparse_pca,
    associate_components_with_covariates,
    top_loading_features,
    OrdinationResult
)

from .identifier_mapping import split_peak_names, translate_accessions, map_identifiers

from .enrichment import (
    build_ranked_list,          # Main function: identifier -> log2 FC, descending
    comparison_to_fold_change_table,
    threshold_gene_list,
    load_gene_sets,
    run_enrichment_suite,       # ORA + GSEA on every corpus
    merge_enrichment_results,
    EnrichmentConfig
)

from .validation import (
    validate_metadata_data_consistency,
    generate_sample_matching_diagnostic_report,
    MissingDataPolicyViolation,
    IdentifierMappingFailure,
    EmptyResultSet,
    SampleMatchingError
)

from .export import (
    export_complete_analysis,   # Main function: export everything (tables + config)
    export_timestamped_config,
    create_config_dict_from_notebook_vars
)

from .pipeline import run_swath_analysis

# =============================================================================
# PUBLIC API - All functions available for import
# =============================================================================

__all__ = [
    # MODULES
    "study_design",
    "data_import",
    "preprocessing",
    "missing_data",
    "statistical_analysis",
    "ordination",
    "identifier_mapping",
    "enrichment",
    "validation",
    "export",
    "pipeline",

    # STUDY DESIGN
    "StudyDesign",
    "load_study_design",

    # DATA LOADING
    "load_swath_data",
    "split_abundance_blocks",
    "build_sample_matrix",
    "filter_clinical_metadata",
    "load_fold_change_table",

    # PREPROCESSING
    "build_sample_metadata",
    "to_long_form",

    # MISSING DATA
    "filter_complete_proteins",
    "resolve_replicate_means",
    "check_mean_block_consistency",
    "summarize_missingness",

    # STATISTICAL ANALYSIS
    "run_group_comparison",
    "display_analysis_summary",
    "classify_regulation",
    "StatisticalConfig",

    # ORDINATION
    "run_pca",
    "run_sparse_pca",
    "associate_components_with_covariates",
    "top_loading_features",
    "OrdinationResult",

    # IDENTIFIER MAPPING AND ENRICHMENT
    "split_peak_names",
    "translate_accessions",
    "map_identifiers",
    "build_ranked_list",
    "comparison_to_fold_change_table",
    "threshold_gene_list",
    "load_gene_sets",
    "run_enrichment_suite",
    "merge_enrichment_results",
    "EnrichmentConfig",

    # VALIDATION
    "validate_metadata_data_consistency",
    "generate_sample_matching_diagnostic_report",
    "MissingDataPolicyViolation",
    "IdentifierMappingFailure",
    "EmptyResultSet",
    "SampleMatchingError",

    # EXPORT
    "export_complete_analysis",
    "export_timestamped_config",
    "create_config_dict_from_notebook_vars",

    # PIPELINE
    "run_swath_analysis",
]
