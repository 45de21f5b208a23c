"""
Identifier Mapping Module

Splits SWATH peak names (``sp|F1SGG3|F1SGG3_PIG``) into their parts and maps
UniProt accessions to KEGG gene or Entrez Gene identifiers, either through
the KEGG REST ``conv`` service or an offline mapping table.

Ambiguity policy (one accession -> several targets) is explicit:

- ``"first"``: keep the first target in mapping-table order
- ``"error"``: raise IdentifierMappingFailure
- ``"expand"``: keep every target (fan-out)
"""

import os
from typing import Iterable, List, Optional

import pandas as pd
import requests

from .validation import EmptyResultSet, IdentifierMappingFailure


KEGG_REST_URL = 'https://rest.kegg.jp'

PEAK_NAME_FIELDS = ['Namespace', 'Accession', 'Entry_Name']

AMBIGUITY_POLICIES = ('first', 'error', 'expand')

# Prefixes dropped from KEGG conv output; KEGG gene ids keep their organism prefix
_STRIPPED_PREFIXES = ('up:', 'uniprot:', 'ncbi-geneid:', 'ncbi-proteinid:')


def split_peak_names(peak_names: Iterable[str], delimiter: str = '|') -> pd.DataFrame:
    """
    Split composite peak names into namespace, accession and entry name.

    Parameters
    ----------
    peak_names : iterable of str
        e.g. ``['sp|F1SGG3|F1SGG3_PIG', 'tr|A0A287A1B2|A0A287A1B2_PIG']``
    delimiter : str
        Field separator

    Returns
    -------
    pd.DataFrame
        Columns 'Peak Name', 'Namespace', 'Accession', 'Entry_Name'

    Raises
    ------
    ValueError
        If any peak name does not have exactly three fields
    """
    rows = []
    bad = []
    for peak in peak_names:
        text = str(peak).strip()
        parts = text.split(delimiter)
        if len(parts) != 3 or not parts[1].strip():
            bad.append(text)
            continue
        rows.append([text] + [p.strip() for p in parts])

    if bad:
        raise ValueError(
            f"{len(bad)} peak names do not follow 'namespace{delimiter}accession{delimiter}entry': "
            f"{bad[:5]}{'...' if len(bad) > 5 else ''}"
        )

    return pd.DataFrame(rows, columns=['Peak Name'] + PEAK_NAME_FIELDS)


def _strip_prefix(identifier: str) -> str:
    for prefix in _STRIPPED_PREFIXES:
        if identifier.startswith(prefix):
            return identifier[len(prefix):]
    return identifier


def kegg_rest_get(path: str, session: Optional[requests.Session] = None, timeout: int = 30) -> str:
    """Fetch one KEGG REST operation (e.g. 'link/pathway/ssc') and return the raw text."""
    url = f'{KEGG_REST_URL}/{path}'
    http = session or requests

    try:
        response = http.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise ConnectionError(f"Could not reach KEGG REST service at {url}: {e}") from e

    if not response.ok:
        raise ConnectionError(f"KEGG REST request failed ({response.status_code}): {url}")

    return response.text


def fetch_kegg_conversion(
    target: str,
    source: str,
    session: Optional[requests.Session] = None,
    timeout: int = 30
) -> pd.DataFrame:
    """
    Download an identifier conversion table from KEGG REST.

    Parameters
    ----------
    target : str
        Target database, e.g. ``'ssc'`` or ``'ncbi-geneid'``
    source : str
        Source database, e.g. ``'uniprot'`` or ``'ssc'``
    session : requests.Session, optional
        Reused HTTP session
    timeout : int
        Request timeout in seconds

    Returns
    -------
    pd.DataFrame
        Columns 'source' and 'target'

    Examples
    --------
    >>> uniprot_to_kegg = fetch_kegg_conversion('ssc', 'uniprot')
    >>> kegg_to_entrez = fetch_kegg_conversion('ncbi-geneid', 'ssc')
    """
    text = kegg_rest_get(f'conv/{target}/{source}', session=session, timeout=timeout)

    records = []
    for line in text.splitlines():
        fields = line.strip().split('\t')
        if len(fields) != 2:
            continue
        # KEGG lists pairs as "<source>\t<target>"
        records.append((_strip_prefix(fields[0]), _strip_prefix(fields[1])))

    table = pd.DataFrame(records, columns=['source', 'target'])
    print(f"  KEGG conv {source} -> {target}: {len(table):,} pairs")
    return table


def load_identifier_map(path: str, source_column: str = 'source', target_column: str = 'target') -> pd.DataFrame:
    """Load an offline accession -> identifier table (csv/tsv/xlsx)."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Identifier mapping file not found: {path}")

    if path.lower().endswith(('.xlsx', '.xls')):
        raw = pd.read_excel(path, dtype=str)
    elif path.lower().endswith(('.tsv', '.txt')):
        raw = pd.read_csv(path, sep='\t', dtype=str)
    else:
        raw = pd.read_csv(path, dtype=str)

    for col in (source_column, target_column):
        if col not in raw.columns:
            raise ValueError(f"Column '{col}' not found in mapping file {path}")

    table = raw[[source_column, target_column]].dropna()
    table.columns = ['source', 'target']
    return table.apply(lambda col: col.str.strip()).reset_index(drop=True)


def map_identifiers(
    identifiers: Iterable[str],
    mapping: pd.DataFrame,
    ambiguous: str = 'first',
    strict: bool = True,
    verbose: bool = True
) -> pd.DataFrame:
    """
    Map identifiers through a source -> target table.

    Parameters
    ----------
    identifiers : iterable of str
        Source identifiers to map (order preserved)
    mapping : pd.DataFrame
        Columns 'source' and 'target'
    ambiguous : str
        'first', 'error' or 'expand' for sources with several targets
    strict : bool
        Raise IdentifierMappingFailure for unmapped identifiers instead of
        dropping them

    Returns
    -------
    pd.DataFrame
        Columns 'source' and 'target'
    """
    if ambiguous not in AMBIGUITY_POLICIES:
        raise ValueError(f"ambiguous must be one of {AMBIGUITY_POLICIES}, got {ambiguous!r}")

    requested = pd.Series([str(i).strip() for i in identifiers], name='source').drop_duplicates()
    pairs = mapping[['source', 'target']].drop_duplicates()
    pairs = pairs[pairs['source'].isin(set(requested))]

    n_targets = pairs.groupby('source')['target'].nunique()
    ambiguous_sources = n_targets[n_targets > 1].index.tolist()
    if ambiguous_sources:
        if ambiguous == 'error':
            raise IdentifierMappingFailure(
                f"{len(ambiguous_sources)} identifiers map to several targets: {ambiguous_sources[:5]}",
                unmapped=ambiguous_sources,
            )
        if ambiguous == 'first':
            pairs = pairs.drop_duplicates(subset='source', keep='first')
        if verbose:
            print(f"  {len(ambiguous_sources)} identifiers with several targets (policy: {ambiguous})")

    unmapped = requested[~requested.isin(set(pairs['source']))].tolist()
    if unmapped:
        message = (f"{len(unmapped)}/{len(requested)} identifiers have no target: "
                   f"{unmapped[:5]}{'...' if len(unmapped) > 5 else ''}")
        if strict:
            raise IdentifierMappingFailure(message, unmapped=unmapped)
        if verbose:
            print(f"  Dropping unmapped: {message}")

    result = requested.to_frame().merge(pairs, on='source', how='inner')
    if result.empty:
        raise EmptyResultSet("No identifiers could be mapped")

    if verbose:
        print(f"✓ Mapped {result['source'].nunique()}/{len(requested)} identifiers")
    return result.reset_index(drop=True)


def translate_accessions(
    accessions: Iterable[str],
    target_namespace: str = 'kegg',
    organism: str = 'ssc',
    mapping: Optional[pd.DataFrame] = None,
    ambiguous: str = 'first',
    strict: bool = True,
    session: Optional[requests.Session] = None,
    timeout: int = 30
) -> pd.DataFrame:
    """
    Map UniProt accessions to KEGG gene ids or Entrez Gene ids.

    Parameters
    ----------
    accessions : iterable of str
        UniProt accessions
    target_namespace : str
        'kegg' (e.g. ``ssc:100152307``) or 'entrez' (e.g. ``100152307``)
    organism : str
        KEGG organism code ('ssc' for pig)
    mapping : pd.DataFrame, optional
        Offline accession -> target table; skips KEGG REST when given
    ambiguous, strict
        See map_identifiers

    Returns
    -------
    pd.DataFrame
        Columns 'source' (accession) and 'target'
    """
    accessions: List[str] = list(accessions)

    if mapping is not None:
        return map_identifiers(accessions, mapping, ambiguous=ambiguous, strict=strict)

    if target_namespace not in ('kegg', 'entrez'):
        raise ValueError(f"target_namespace must be 'kegg' or 'entrez', got {target_namespace!r}")

    print(f"Mapping {len(accessions)} UniProt accessions to {target_namespace.upper()} ({organism})...")
    to_kegg = fetch_kegg_conversion(organism, 'uniprot', session=session, timeout=timeout)
    kegg_mapped = map_identifiers(accessions, to_kegg, ambiguous=ambiguous, strict=strict)

    if target_namespace == 'kegg':
        return kegg_mapped

    to_entrez = fetch_kegg_conversion('ncbi-geneid', organism, session=session, timeout=timeout)
    entrez_mapped = map_identifiers(kegg_mapped['target'], to_entrez, ambiguous=ambiguous, strict=strict)
    chained = kegg_mapped.merge(
        entrez_mapped.rename(columns={'source': 'kegg', 'target': 'entrez'}),
        left_on='target', right_on='kegg', how='inner'
    )
    return chained[['source', 'entrez']].rename(columns={'entrez': 'target'}).reset_index(drop=True)
