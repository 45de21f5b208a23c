"""
Pathway and Ontology Enrichment Module

Turns per-contrast fold changes into the two inputs enrichment needs:

- a ranked list (identifier -> log2 fold change, sorted descending) for
  gene set enrichment analysis (GSEA, gseapy ``prerank``)
- a thresholded subset (|log2 FC| > cutoff) for over-representation
  analysis (ORA, gseapy ``enrich`` hypergeometric test)

Annotation corpora are KEGG pathways (KEGG REST) and any number of GMT files
(Reactome, GO, DO, DGN, MeSH, ...) parsed with gseapy.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import gseapy as gp
import numpy as np
import pandas as pd
import requests
from gseapy.parser import read_gmt

from .identifier_mapping import (
    fetch_kegg_conversion,
    kegg_rest_get,
    split_peak_names,
    translate_accessions,
)
from .validation import EmptyResultSet


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EnrichmentConfig:
    """Configuration for identifier mapping and enrichment analysis.

    Attributes
    ----------
    organism : str
        KEGG organism code ('ssc' = Sus scrofa)
    target_namespace : str
        'kegg' or 'entrez'; must match the identifiers used in the GMT files
    fold_change_cutoff : float
        |log2 FC| above which a protein enters the ORA gene list
    pvalue_cutoff : float
        Adjusted p-value threshold for the 'Significant' flag
    min_size, max_size : int
        Gene set size limits for GSEA
    permutation_num : int
        GSEA permutations
    seed : int
        GSEA random seed
    gene_set_files : Dict[str, str]
        Corpus name -> GMT path, e.g. {'Reactome': 'reactome_ssc.gmt'}
    use_kegg_rest : bool
        Download KEGG pathways and identifier conversions from KEGG REST
    timeout : int
        KEGG REST timeout in seconds
    ambiguous_mapping : str
        'first', 'error' or 'expand' (see identifier_mapping.map_identifiers)
    strict_mapping : bool
        Fail on unmapped accessions instead of dropping them

    Examples
    --------
    >>> config = EnrichmentConfig(target_namespace='entrez')
    >>> config.gene_set_files = {'GO_BP': 'go_bp_ssc_entrez.gmt'}
    """

    organism: str = 'ssc'
    target_namespace: str = 'kegg'

    # Thresholds
    fold_change_cutoff: float = 1.1
    pvalue_cutoff: float = 0.05

    # GSEA settings
    min_size: int = 10
    max_size: int = 500
    permutation_num: int = 1000
    seed: int = 42

    # Annotation sources
    gene_set_files: Dict[str, str] = field(default_factory=dict)
    use_kegg_rest: bool = True
    timeout: int = 30

    # Mapping policy
    ambiguous_mapping: str = 'first'
    strict_mapping: bool = False


TIDY_COLUMNS = ['Corpus', 'Analysis', 'Term', 'P_Value', 'Adjusted_P_Value', 'Significant', 'Genes']


# =============================================================================
# RANKED LISTS
# =============================================================================

def sort_ranked_list(ranked: pd.Series) -> pd.Series:
    """Sort scores descending with a stable tiebreak on identifier."""
    order = pd.DataFrame({'id': ranked.index.astype(str), 'score': ranked.values})
    order = order.sort_values(['score', 'id'], ascending=[False, True], kind='mergesort')
    return pd.Series(order['score'].values, index=pd.Index(order['id'].values, name=ranked.index.name),
                     name=ranked.name)


def comparison_to_fold_change_table(comparison: pd.DataFrame, contrast: str) -> pd.DataFrame:
    """Pull one contrast out of a comparison table in fold-change-export shape."""
    fc_col = f'{contrast} logFC'
    p_col = f'{contrast} P.Value'
    missing = [c for c in (fc_col, p_col) if c not in comparison.columns]
    if missing:
        raise ValueError(f"Contrast '{contrast}' not in comparison table (missing {missing})")

    return pd.DataFrame({
        'Peak Name': comparison.index.astype(str),
        'Fold_Change': comparison[fc_col].values,
        'P_Value': comparison[p_col].values,
    })


def build_ranked_list(
    fold_change_table: pd.DataFrame,
    mapping: Optional[pd.DataFrame] = None,
    config: Optional[EnrichmentConfig] = None,
    session: Optional[requests.Session] = None
) -> pd.Series:
    """
    Build a ranked list of log2 fold changes keyed by KEGG/Entrez identifier.

    Parameters
    ----------
    fold_change_table : pd.DataFrame
        Columns 'Peak Name' and 'Fold_Change' (log2)
    mapping : pd.DataFrame, optional
        Offline accession -> identifier table; KEGG REST is used otherwise
    config : EnrichmentConfig, optional
        Namespace, organism and mapping policy

    Returns
    -------
    pd.Series
        Scores indexed by unique identifier, sorted descending

    Notes
    -----
    When several accessions land on the same identifier the one with the
    largest absolute fold change is kept.
    """
    if config is None:
        config = EnrichmentConfig()

    if mapping is None and not config.use_kegg_rest:
        raise ValueError("No identifier mapping given and KEGG REST lookups are disabled")

    table = fold_change_table.dropna(subset=['Fold_Change'])
    if table.empty:
        raise EmptyResultSet("Fold-change table has no finite fold changes")

    peaks = split_peak_names(table['Peak Name'])
    mapped = translate_accessions(
        peaks['Accession'],
        target_namespace=config.target_namespace,
        organism=config.organism,
        mapping=mapping,
        ambiguous=config.ambiguous_mapping,
        strict=config.strict_mapping,
        session=session,
        timeout=config.timeout,
    )

    scored = peaks.merge(table[['Peak Name', 'Fold_Change']], on='Peak Name')
    scored = scored.merge(mapped, left_on='Accession', right_on='source', how='inner')

    scored = scored.assign(abs_fc=scored['Fold_Change'].abs())
    scored = scored.sort_values('abs_fc', ascending=False, kind='mergesort')
    n_before = len(scored)
    scored = scored.drop_duplicates(subset='target', keep='first')
    if n_before > len(scored):
        print(f"  Collapsed {n_before - len(scored)} duplicate-mapped rows (kept largest |FC|)")

    ranked = pd.Series(scored['Fold_Change'].astype(float).values,
                       index=pd.Index(scored['target'].values, name='Identifier'), name='score')
    ranked = sort_ranked_list(ranked)

    print(f"✓ Ranked list: {len(ranked)} identifiers "
          f"(score range {ranked.min():.3f} to {ranked.max():.3f})")
    return ranked


def threshold_gene_list(ranked: pd.Series, cutoff: float = 1.1) -> List[str]:
    """Identifiers whose |score| exceeds ``cutoff``, in ranked order."""
    selected = ranked[ranked.abs() > cutoff]
    if selected.empty:
        raise EmptyResultSet(f"No identifiers with |log2 FC| > {cutoff}")
    return selected.index.tolist()


# =============================================================================
# ANNOTATION CORPORA
# =============================================================================

def fetch_kegg_gene_sets(
    organism: str = 'ssc',
    target_namespace: str = 'kegg',
    session: Optional[requests.Session] = None,
    timeout: int = 30
) -> Dict[str, List[str]]:
    """
    Download KEGG pathway memberships for an organism.

    Returns
    -------
    dict
        ``'ssc00010 Glycolysis / Gluconeogenesis' -> [member ids]``
    """
    link_text = kegg_rest_get(f'link/pathway/{organism}', session=session, timeout=timeout)
    list_text = kegg_rest_get(f'list/pathway/{organism}', session=session, timeout=timeout)

    names = {}
    for line in list_text.splitlines():
        fields = line.strip().split('\t')
        if len(fields) == 2:
            pathway_id = fields[0].replace('path:', '')
            # Drop the trailing " - Sus scrofa (pig)" organism suffix
            names[pathway_id] = fields[1].split(' - ')[0].strip()

    members: Dict[str, List[str]] = {}
    for line in link_text.splitlines():
        fields = line.strip().split('\t')
        if len(fields) != 2:
            continue
        gene, pathway_id = fields[0], fields[1].replace('path:', '')
        members.setdefault(pathway_id, []).append(gene)

    if target_namespace == 'entrez':
        conv = fetch_kegg_conversion('ncbi-geneid', organism, session=session, timeout=timeout)
        to_entrez = conv.groupby('source')['target'].first().to_dict()
        members = {pid: [to_entrez[g] for g in genes if g in to_entrez] for pid, genes in members.items()}

    gene_sets = {
        f"{pid} {names.get(pid, '')}".strip(): sorted(set(genes))
        for pid, genes in members.items() if genes
    }
    print(f"  KEGG {organism}: {len(gene_sets)} pathways")
    return gene_sets


def load_gene_sets(
    config: Optional[EnrichmentConfig] = None,
    session: Optional[requests.Session] = None
) -> Dict[str, Dict[str, List[str]]]:
    """
    Collect every configured annotation corpus.

    Returns
    -------
    dict
        Corpus name -> {term: [member ids]}
    """
    if config is None:
        config = EnrichmentConfig()

    corpora = {}
    if config.use_kegg_rest:
        corpora['KEGG'] = fetch_kegg_gene_sets(config.organism, config.target_namespace,
                                               session=session, timeout=config.timeout)

    for corpus, path in config.gene_set_files.items():
        if not os.path.exists(path):
            raise FileNotFoundError(f"Gene set file for {corpus} not found: {path}")
        corpora[corpus] = read_gmt(path)
        print(f"  {corpus}: {len(corpora[corpus])} gene sets from {os.path.basename(path)}")

    if not corpora:
        raise EmptyResultSet("No annotation corpora configured")

    return corpora


# =============================================================================
# ENRICHMENT
# =============================================================================

def _empty_enrichment_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=TIDY_COLUMNS)


def _is_entrez_id(identifier) -> bool:
    return str(identifier).strip().isdigit()


def _align_entrez_ids(gene_list, gene_sets, background):
    """
    Cast Entrez ids to int in the gene list, the background and the set members.

    gseapy converts an all-digit gene list to integers but leaves gene-set
    members as given, so string Entrez ids would never overlap. Members that
    are not Entrez ids are dropped once the list is numeric.
    """
    ids = list(gene_list) + (list(background) if background is not None else [])
    if not ids or not all(_is_entrez_id(g) for g in ids):
        return gene_list, gene_sets, background

    gene_list = [int(g) for g in gene_list]
    if background is not None:
        background = [int(g) for g in background]
    gene_sets = {
        term: [int(g) for g in members if _is_entrez_id(g)]
        for term, members in gene_sets.items()
    }
    return gene_list, gene_sets, background


def run_over_representation(
    gene_list: Iterable[str],
    gene_sets: Dict[str, List[str]],
    background: Optional[Iterable[str]] = None,
    config: Optional[EnrichmentConfig] = None,
    corpus: str = ''
) -> pd.DataFrame:
    """
    Hypergeometric over-representation test of a gene list.

    Parameters
    ----------
    gene_list : iterable of str
        Thresholded identifiers
    gene_sets : dict
        Term -> member ids
    background : iterable of str, optional
        Universe of measured identifiers; gseapy defaults to all annotated
        genes when omitted
    config : EnrichmentConfig, optional
    corpus : str
        Label written into the 'Corpus' column

    Returns
    -------
    pd.DataFrame
        Tidy result sorted by adjusted p-value
    """
    if config is None:
        config = EnrichmentConfig()

    gene_list = list(gene_list)
    if background is not None:
        background = list(background)
    gene_list, gene_sets, background = _align_entrez_ids(gene_list, gene_sets, background)

    enr = gp.enrich(
        gene_list=gene_list,
        gene_sets=gene_sets,
        background=background,
        outdir=None,
        cutoff=1.0,
        verbose=False,
    )

    res = enr.results
    if res is None or len(res) == 0:
        raise EmptyResultSet(
            f"Over-representation on {corpus or 'gene sets'}: none of the {len(gene_list)} "
            f"genes overlaps any gene set (check the identifier namespace)"
        )

    tidy = pd.DataFrame({
        'Corpus': corpus,
        'Analysis': 'ORA',
        'Term': res['Term'].values,
        'P_Value': pd.to_numeric(res['P-value'], errors='coerce').values,
        'Adjusted_P_Value': pd.to_numeric(res['Adjusted P-value'], errors='coerce').values,
        'Genes': res['Genes'].values,
        'Overlap': res['Overlap'].values,
        'Odds_Ratio': pd.to_numeric(res['Odds Ratio'], errors='coerce').values,
        'Combined_Score': pd.to_numeric(res['Combined Score'], errors='coerce').values,
    })
    tidy['Significant'] = tidy['Adjusted_P_Value'] <= config.pvalue_cutoff
    return tidy.sort_values('Adjusted_P_Value', kind='mergesort').reset_index(drop=True)


def run_gsea(
    ranked: pd.Series,
    gene_sets: Dict[str, List[str]],
    config: Optional[EnrichmentConfig] = None,
    corpus: str = ''
) -> pd.DataFrame:
    """Preranked GSEA on the full ranked list."""
    if config is None:
        config = EnrichmentConfig()

    rnk = pd.DataFrame({'gene': ranked.index.astype(str), 'score': ranked.values})

    pre_res = gp.prerank(
        rnk=rnk,
        gene_sets=gene_sets,
        threads=1,
        permutation_num=config.permutation_num,
        min_size=config.min_size,
        max_size=config.max_size,
        seed=config.seed,
        outdir=None,
        verbose=False,
    )

    res = pre_res.res2d
    if res is None or len(res) == 0:
        return _empty_enrichment_frame()

    tidy = pd.DataFrame({
        'Corpus': corpus,
        'Analysis': 'GSEA',
        'Term': res['Term'].values,
        'P_Value': pd.to_numeric(res['NOM p-val'], errors='coerce').values,
        'Adjusted_P_Value': pd.to_numeric(res['FDR q-val'], errors='coerce').values,
        'Genes': res['Lead_genes'].values,
        'ES': pd.to_numeric(res['ES'], errors='coerce').values,
        'NES': pd.to_numeric(res['NES'], errors='coerce').values,
    })
    tidy['Significant'] = tidy['Adjusted_P_Value'] <= config.pvalue_cutoff
    return tidy.sort_values('Adjusted_P_Value', kind='mergesort').reset_index(drop=True)


def run_enrichment_suite(
    ranked: pd.Series,
    corpora: Dict[str, Dict[str, List[str]]],
    config: Optional[EnrichmentConfig] = None,
    background: Optional[Iterable[str]] = None
) -> Dict[str, Dict[str, pd.DataFrame]]:
    """
    Run ORA and GSEA against every corpus.

    The ORA background defaults to every identifier in the ranked list, i.e.
    the proteins actually quantified.

    Returns
    -------
    dict
        Corpus -> {'ORA': DataFrame, 'GSEA': DataFrame}
    """
    if config is None:
        config = EnrichmentConfig()

    gene_list = threshold_gene_list(ranked, config.fold_change_cutoff)
    universe = list(background) if background is not None else ranked.index.tolist()

    print(f"Enrichment: {len(gene_list)} genes beyond |log2 FC| > {config.fold_change_cutoff}, "
          f"{len(ranked)} ranked")

    results = {}
    for corpus, gene_sets in corpora.items():
        print(f"  Running {corpus}...")
        ora = run_over_representation(gene_list, gene_sets, universe, config, corpus=corpus)
        gsea = run_gsea(ranked, gene_sets, config, corpus=corpus)
        print(f"    ORA: {int(ora['Significant'].sum())} significant terms, "
              f"GSEA: {int(gsea['Significant'].sum())} significant terms")
        results[corpus] = {'ORA': ora, 'GSEA': gsea}

    return results


def merge_enrichment_results(results: Dict[str, Dict[str, pd.DataFrame]]) -> pd.DataFrame:
    """Stack the per-corpus, per-analysis frames into one table."""
    frames = [frame for by_analysis in results.values() for frame in by_analysis.values() if len(frame)]
    if not frames:
        return _empty_enrichment_frame()

    merged = pd.concat(frames, ignore_index=True, sort=False)
    leading = [c for c in TIDY_COLUMNS if c in merged.columns]
    merged = merged[leading + [c for c in merged.columns if c not in leading]]
    return merged.sort_values(['Corpus', 'Analysis', 'Adjusted_P_Value'], kind='mergesort').reset_index(drop=True)


def display_enrichment_summary(merged: pd.DataFrame, top_n: int = 5) -> None:
    """Print the top terms per corpus and analysis."""
    print("=" * 60)
    print("ENRICHMENT SUMMARY")
    print("=" * 60)

    if merged.empty:
        print("No enrichment results")
        return

    for (corpus, analysis), group in merged.groupby(['Corpus', 'Analysis'], sort=True):
        n_sig = int(group['Significant'].sum())
        print(f"\n{corpus} / {analysis}: {n_sig} significant of {len(group)} tested")
        for _, row in group.head(top_n).iterrows():
            padj = row['Adjusted_P_Value']
            padj_text = f"{padj:.2e}" if np.isfinite(padj) else "NA"
            print(f"  {str(row['Term'])[:60]:<60} adj.P={padj_text}")
