"""
Ordination Module for the SWATH Analysis Toolkit

Centered/scaled PCA for variance-explained summaries and a sparse PCA with a
fixed number of retained proteins per component for interpretable loadings.
Both expect a complete matrix (see ``missing_data.filter_complete_proteins``).
Component signs are arbitrary.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.stats import f_oneway
from sklearn.decomposition import PCA, SparsePCA

from .validation import EmptyResultSet, MissingDataPolicyViolation


@dataclass
class OrdinationResult:
    """Scores, loadings and variance explained of one ordination.

    Attributes
    ----------
    scores : pd.DataFrame
        Samples x components
    loadings : pd.DataFrame
        Proteins x components
    explained_variance_ratio : pd.Series
        Fraction of total variance per component
    method : str
        'PCA' or 'sparse PCA'
    excluded_features : List[str]
        Zero-variance proteins left out of the scaling
    """

    scores: pd.DataFrame
    loadings: pd.DataFrame
    explained_variance_ratio: pd.Series
    method: str
    excluded_features: List[str] = field(default_factory=list)

    @property
    def n_components(self) -> int:
        return self.loadings.shape[1]


def _component_names(n: int) -> List[str]:
    return [f"PC{i + 1}" for i in range(n)]


def scale_matrix(sample_matrix: pd.DataFrame, verbose: bool = True):
    """
    Center and scale each protein column.

    Zero-variance columns are excluded rather than divided by zero.

    Parameters
    ----------
    sample_matrix : pd.DataFrame
        Samples x proteins, no missing values

    Returns
    -------
    scaled : pd.DataFrame
    excluded : List[str]
        Columns dropped for zero variance
    """
    if sample_matrix.isna().any().any():
        raise MissingDataPolicyViolation(
            "Ordination requires a complete matrix; apply filter_complete_proteins first"
        )
    if sample_matrix.shape[0] < 2:
        raise EmptyResultSet("Ordination needs at least two samples")

    std = sample_matrix.std(axis=0, ddof=1)
    excluded = std.index[~(std > 0)].tolist()
    kept = sample_matrix.drop(columns=excluded)

    if verbose and excluded:
        print(f"  Excluding {len(excluded)} zero-variance proteins from scaling")
    if kept.shape[1] == 0:
        raise EmptyResultSet("Every protein has zero variance; nothing to ordinate")

    # Sample standard deviation (ddof=1), as in R's scale()
    scaled = (kept - kept.mean(axis=0)) / kept.std(axis=0, ddof=1)
    return scaled, excluded


def run_pca(sample_matrix: pd.DataFrame, n_components: Optional[int] = None) -> OrdinationResult:
    """
    Full PCA on the centered/scaled matrix.

    Parameters
    ----------
    sample_matrix : pd.DataFrame
        Samples x proteins, complete
    n_components : int, optional
        Defaults to every component (min(samples, proteins))

    Returns
    -------
    OrdinationResult
    """
    print("=== PRINCIPAL COMPONENT ANALYSIS ===")
    scaled, excluded = scale_matrix(sample_matrix)

    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(scaled.values)
    names = _component_names(pca.n_components_)

    result = OrdinationResult(
        scores=pd.DataFrame(scores, index=scaled.index, columns=names),
        loadings=pd.DataFrame(pca.components_.T, index=scaled.columns, columns=names),
        explained_variance_ratio=pd.Series(pca.explained_variance_ratio_, index=names),
        method="PCA",
        excluded_features=excluded,
    )

    print(f"Components: {result.n_components}")
    for name in names[:3]:
        print(f"  {name} explains {result.explained_variance_ratio[name]:.1%} of variance")
    return result


def _keep_top(vector: np.ndarray, keep: int) -> np.ndarray:
    if keep >= vector.size:
        return vector
    cutoff = np.argsort(np.abs(vector))[:-keep]
    sparse = vector.copy()
    sparse[cutoff] = 0.0
    return sparse


def _fit_sparse_pca(X: np.ndarray, n_components: int, keep: List[int], alpha: float,
                    max_alpha_steps: int, random_state: int, max_iter: int, tol: float) -> np.ndarray:
    # Halve alpha until every component has at least its target number of
    # non-zero loadings, so the hard threshold below fixes the cardinality.
    components = np.zeros((n_components, X.shape[1]))
    for _ in range(max_alpha_steps):
        model = SparsePCA(n_components=n_components, alpha=alpha, random_state=random_state,
                          max_iter=max_iter, tol=tol)
        model.fit(X)
        components = model.components_
        nonzero = (components != 0).sum(axis=1)
        if all(n >= min(k, X.shape[1]) for n, k in zip(nonzero, keep)):
            break
        alpha /= 2
    return components


def run_sparse_pca(sample_matrix: pd.DataFrame,
                   n_components: int = 2,
                   keep_features: Union[int, Sequence[int]] = 10,
                   alpha: float = 1.0,
                   max_alpha_steps: int = 12,
                   random_state: int = 42,
                   max_iter: int = 1000,
                   tol: float = 1e-8) -> OrdinationResult:
    """
    Sparse PCA with a fixed number of non-zero loadings per component.

    scikit-learn's SparsePCA controls sparsity through the L1 penalty alpha,
    not through a count. alpha is halved until each component carries at
    least its target number of proteins, then every component keeps only its
    keep_features largest absolute loadings and is rescaled to unit norm.

    Parameters
    ----------
    sample_matrix : pd.DataFrame
        Samples x proteins, complete
    n_components : int
        Number of components
    keep_features : int or sequence of int
        Proteins retained per component (one value for all, or one per component)
    alpha : float
        Starting L1 penalty of SparsePCA
    max_alpha_steps : int
        Number of alpha halvings tried
    random_state, max_iter, tol
        Passed to SparsePCA

    Returns
    -------
    OrdinationResult
        Loadings have unit norm and at most keep_features non-zero entries,
        in the component order SparsePCA returns. explained_variance_ratio is
        the variance of each component's scores over the total variance of
        the scaled matrix.
    """
    print("=== SPARSE PRINCIPAL COMPONENT ANALYSIS ===")

    if isinstance(keep_features, (int, np.integer)):
        keep = [int(keep_features)] * n_components
    else:
        keep = [int(k) for k in keep_features]
        if len(keep) != n_components:
            raise ValueError("keep_features must have one entry per component")
    if any(k < 1 for k in keep):
        raise ValueError("keep_features must be positive")

    scaled, excluded = scale_matrix(sample_matrix)
    X = scaled.values.astype(float)
    n_components = min(n_components, min(X.shape))
    keep = keep[:n_components]
    total_variance = X.var(axis=0, ddof=1).sum()

    components = _fit_sparse_pca(X, n_components, keep, alpha, max_alpha_steps,
                                 random_state, max_iter, tol)

    loadings = np.zeros((X.shape[1], n_components))
    for k in range(n_components):
        v = _keep_top(components[k], keep[k])
        norm = np.linalg.norm(v)
        if norm == 0:
            print(f"  Warning: component {k + 1} has no non-zero loadings")
            continue
        loadings[:, k] = v / norm

    scores = X @ loadings
    names = _component_names(n_components)
    explained = scores.var(axis=0, ddof=1) / total_variance if total_variance > 0 else np.zeros(n_components)

    result = OrdinationResult(
        scores=pd.DataFrame(scores, index=scaled.index, columns=names),
        loadings=pd.DataFrame(loadings, index=scaled.columns, columns=names),
        explained_variance_ratio=pd.Series(explained, index=names),
        method="sparse PCA",
        excluded_features=excluded,
    )

    for name, k in zip(names, keep):
        nonzero = int((result.loadings[name] != 0).sum())
        print(f"  {name}: {nonzero} proteins retained (limit {k}), "
              f"{result.explained_variance_ratio[name]:.1%} of variance")
    return result


def top_loading_features(result: OrdinationResult, component: str = "PC1", n: int = 10) -> pd.Series:
    """Proteins with the largest absolute loadings on one component."""
    if component not in result.loadings.columns:
        raise ValueError(f"Component '{component}' not in result ({list(result.loadings.columns)})")
    loadings = result.loadings[component]
    loadings = loadings[loadings != 0]
    return loadings.reindex(loadings.abs().sort_values(ascending=False).index).head(n)


def associate_components_with_covariates(scores: pd.DataFrame,
                                         sample_metadata: pd.DataFrame,
                                         covariates: List[str],
                                         components: Optional[List[str]] = None) -> pd.DataFrame:
    """
    One-way ANOVA of component scores against categorical covariates.

    Used to see whether treatment, sex or acquisition date drives a component.

    Returns
    -------
    pd.DataFrame
        Components x covariates table of p-values (NaN when a covariate has
        fewer than two levels with two samples each)
    """
    components = components or list(scores.columns)
    missing = [c for c in covariates if c not in sample_metadata.columns]
    if missing:
        raise ValueError(f"Covariates not found in sample metadata: {missing}")

    joined = scores[components].join(sample_metadata[covariates], how="inner")
    if joined.empty:
        raise EmptyResultSet("No samples shared between scores and metadata")

    table: Dict[str, Dict[str, float]] = {}
    for component in components:
        table[component] = {}
        for covariate in covariates:
            levels = joined[[component, covariate]].dropna()
            groups = [
                values[component].values
                for _, values in levels.groupby(levels[covariate].astype(str))
                if len(values) >= 2
            ]
            if len(groups) < 2:
                table[component][covariate] = np.nan
                continue
            _, p_value = f_oneway(*groups)
            table[component][covariate] = p_value

    return pd.DataFrame.from_dict(table, orient="index", columns=covariates)
