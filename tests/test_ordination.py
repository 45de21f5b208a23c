"""
Tests for swath_toolkit.ordination module

Component signs are arbitrary, so nothing here asserts a sign.
"""

from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest
from sklearn.decomposition import SparsePCA

from swath_toolkit.ordination import (
    associate_components_with_covariates,
    run_pca,
    run_sparse_pca,
    scale_matrix,
    top_loading_features,
)
from swath_toolkit.preprocessing import build_sample_metadata
from swath_toolkit.validation import EmptyResultSet, MissingDataPolicyViolation


@pytest.fixture
def complete_log_matrix(replicate_matrix):
    return np.log2(replicate_matrix.dropna(axis=1))


@pytest.fixture
def signal_matrix(complete_log_matrix):
    """Six treatment-shifted proteins plus four noise proteins"""
    return complete_log_matrix.iloc[:, :10]


class TestScaleMatrix:
    """Test centering and scaling"""

    def test_mean_zero_unit_variance(self, complete_log_matrix):
        scaled, excluded = scale_matrix(complete_log_matrix)

        assert excluded == []
        np.testing.assert_allclose(scaled.mean().values, 0.0, atol=1e-10)
        np.testing.assert_allclose(scaled.std(ddof=1).values, 1.0, atol=1e-10)

    def test_zero_variance_excluded(self, complete_log_matrix):
        matrix = complete_log_matrix.copy()
        matrix["FLAT"] = 3.0

        scaled, excluded = scale_matrix(matrix)

        assert excluded == ["FLAT"]
        assert "FLAT" not in scaled.columns

    def test_missing_values_rejected(self, replicate_matrix):
        with pytest.raises(MissingDataPolicyViolation):
            scale_matrix(replicate_matrix)

    def test_single_sample_rejected(self, complete_log_matrix):
        with pytest.raises(EmptyResultSet):
            scale_matrix(complete_log_matrix.iloc[:1])


class TestRunPca:
    """Test full PCA"""

    def test_all_components_by_default(self, complete_log_matrix):
        result = run_pca(complete_log_matrix)

        n_samples, n_proteins = complete_log_matrix.shape
        assert result.n_components == min(n_samples, n_proteins)
        assert result.scores.shape == (n_samples, result.n_components)
        assert result.loadings.shape == (n_proteins, result.n_components)
        assert result.explained_variance_ratio.sum() == pytest.approx(1.0)

    def test_variance_ordered(self, complete_log_matrix):
        result = run_pca(complete_log_matrix, n_components=3)
        ratios = result.explained_variance_ratio.values

        assert list(result.scores.columns) == ["PC1", "PC2", "PC3"]
        assert all(ratios[i] >= ratios[i + 1] for i in range(len(ratios) - 1))

    def test_loadings_unit_norm(self, complete_log_matrix):
        result = run_pca(complete_log_matrix, n_components=2)
        norms = np.linalg.norm(result.loadings.values, axis=0)

        np.testing.assert_allclose(norms, 1.0, atol=1e-8)


class TestRunSparsePca:
    """Test sparse PCA with fixed cardinality"""

    def test_cardinality(self, complete_log_matrix):
        result = run_sparse_pca(complete_log_matrix, n_components=2, keep_features=5)

        nonzero = (result.loadings != 0).sum()
        assert (nonzero <= 5).all()
        np.testing.assert_allclose(np.linalg.norm(result.loadings.values, axis=0), 1.0, atol=1e-8)

    def test_per_component_counts(self, complete_log_matrix):
        result = run_sparse_pca(complete_log_matrix, n_components=2, keep_features=[3, 6])

        nonzero = (result.loadings != 0).sum()
        assert nonzero["PC1"] <= 3
        assert nonzero["PC2"] <= 6

    def test_first_component_picks_treatment_proteins(self, signal_matrix):
        """The shifted SC and PBS proteins dominate the leading sparse loadings"""
        result = run_sparse_pca(signal_matrix, n_components=1, keep_features=6)
        selected = set(result.loadings.index[result.loadings["PC1"] != 0])

        shifted = {f"sp|ACC{i:03d}|ACC{i:03d}_PIG" for i in range(6)}
        assert len(selected & shifted) >= 4

    def test_fixed_cardinality_is_reached(self, complete_log_matrix):
        """alpha is relaxed until each component can carry its full protein count"""
        result = run_sparse_pca(complete_log_matrix, n_components=2, keep_features=[4, 7])

        nonzero = (result.loadings != 0).sum()
        assert nonzero["PC1"] == 4
        assert nonzero["PC2"] == 7

    def test_reproducible_with_seed(self, complete_log_matrix):
        first = run_sparse_pca(complete_log_matrix, n_components=2, keep_features=5, random_state=3)
        second = run_sparse_pca(complete_log_matrix, n_components=2, keep_features=5, random_state=3)

        pd.testing.assert_frame_equal(first.loadings, second.loadings)

    def test_uses_sklearn_sparse_pca(self, complete_log_matrix):
        with patch("swath_toolkit.ordination.SparsePCA", wraps=SparsePCA) as sparse_pca:
            run_sparse_pca(complete_log_matrix, n_components=2, keep_features=5, alpha=0.5)

        assert sparse_pca.call_args_list[0].kwargs["alpha"] == 0.5
        assert sparse_pca.call_args_list[0].kwargs["n_components"] == 2

    def test_keep_features_length_mismatch(self, complete_log_matrix):
        with pytest.raises(ValueError, match="one entry per component"):
            run_sparse_pca(complete_log_matrix, n_components=2, keep_features=[3])


class TestComponentHelpers:
    """Test loading ranking and covariate association"""

    def test_top_loading_features(self, complete_log_matrix):
        result = run_pca(complete_log_matrix, n_components=2)
        top = top_loading_features(result, "PC1", n=4)

        assert len(top) == 4
        assert top.abs().is_monotonic_decreasing

    def test_unknown_component(self, complete_log_matrix):
        result = run_pca(complete_log_matrix, n_components=2)
        with pytest.raises(ValueError, match="PC9"):
            top_loading_features(result, "PC9")

    def test_treatment_associated_with_pc1(self, signal_matrix, study_design):
        result = run_pca(signal_matrix, n_components=3)
        metadata = build_sample_metadata(signal_matrix, study_design)

        table = associate_components_with_covariates(result.scores, metadata, ["Treatment", "Sex"])

        assert list(table.columns) == ["Treatment", "Sex"]
        assert list(table.index) == ["PC1", "PC2", "PC3"]
        assert table.loc["PC1", "Treatment"] < 0.01

    def test_unknown_covariate(self, complete_log_matrix, study_design):
        result = run_pca(complete_log_matrix, n_components=2)
        metadata = build_sample_metadata(complete_log_matrix, study_design)

        with pytest.raises(ValueError, match="Batch"):
            associate_components_with_covariates(result.scores, metadata, ["Batch"])
