# =============================================================================
# SWATH PROTEOMICS ANALYSIS CONFIGURATION
# Generated: 2025-09-15 14:10:22
# Analysis: HI piglet SWATH analysis - three-arm ANOVA + Tukey, KEGG/Reactome enrichment
# =============================================================================

# =============================================================================
# 1. INPUT FILES AND PATHS
# =============================================================================
toolkit_path = '.'
protein_file = 'HI-Piglet-SWATH-ProteinAreas.xlsx'
protein_sheet = 'Area - proteins'
metadata_file = 'HI-Piglet-Clinical.xlsx'
metadata_sheet = 'Piglets'
study_design_file = 'example_data/study_design.csv'
identifier_map_file = None

# =============================================================================
# 2. STUDY DESIGN
# =============================================================================
subject_column = 'Piglet ID'
include_column = 'Proteomics'
clinical_group_column = None

# =============================================================================
# 3. MISSING DATA POLICY
# =============================================================================
missing_data_policy = 'complete_proteins'
check_mean_block = True

# =============================================================================
# 4. STATISTICAL ANALYSIS STRATEGY
# =============================================================================
group_column = 'Treatment'
group_labels = ['CONTROL', 'HI+HTH+PBS', 'HI+HTH+SC']
log_transform_before_stats = 'auto'
log_base = 'log2'
correction_method = 'fdr_bh'
min_samples_per_group = 2

# =============================================================================
# 5. SIGNIFICANCE THRESHOLDS
# =============================================================================
p_value_threshold = 0.05
tukey_alpha = 0.05
fold_change_threshold = 1.0

# =============================================================================
# 6. ORDINATION
# =============================================================================
n_components = None
sparse_components = 2
sparse_keep_features = 10
ordination_covariates = ['Treatment', 'Sex', 'Acquisition Date']

# =============================================================================
# 7. IDENTIFIER MAPPING AND ENRICHMENT
# =============================================================================
run_enrichment = True
enrichment_contrasts = ['HI+HTH+SC-CONTROL', 'HI+HTH+SC-HI+HTH+PBS']
fold_change_files = {}
fold_change_files_are_ratios = False
organism = 'ssc'
target_namespace = 'kegg'
enrichment_fold_change_cutoff = 1.1
enrichment_pvalue_cutoff = 0.05
gsea_permutations = 1000
gsea_min_size = 10
gsea_max_size = 500
gene_set_files = {'Reactome': 'ReactomePathways_ssc_kegg.gmt'}
use_kegg_rest = True
ambiguous_mapping = 'first'
strict_mapping = False

# =============================================================================
# 8. OUTPUT AND EXPORT SETTINGS
# =============================================================================
export_results = True
output_prefix = 'HI-Piglet-SWATH'
label_top_proteins = 10
random_seed = 42

# =============================================================================
# COMPUTED VALUES (for reference)
# =============================================================================
# Total proteins analyzed: 1184
# Total samples: 20
# Contrasts: ['HI+HTH+PBS-CONTROL', 'HI+HTH+SC-CONTROL', 'HI+HTH+SC-HI+HTH+PBS']
