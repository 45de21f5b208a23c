"""
Basic tests to verify pytest setup and the package surface
"""

import pandas as pd
import numpy as np


def test_basic_functionality():
    """Test basic functionality to verify test setup works"""
    df = pd.DataFrame({"A": [1, 2, 3], "B": [4, 5, 6]})

    assert len(df) == 3
    assert df["A"].sum() == 6


def test_swath_toolkit_import():
    """Test that we can import the toolkit"""
    import swath_toolkit

    assert hasattr(swath_toolkit, "__version__")


def test_public_api_exported():
    """Every name in __all__ resolves"""
    import swath_toolkit

    missing = [name for name in swath_toolkit.__all__ if not hasattr(swath_toolkit, name)]
    assert missing == []


def test_basic_configs():
    """Test that we can create the configuration objects"""
    from swath_toolkit import EnrichmentConfig, StatisticalConfig, StudyDesign

    assert StatisticalConfig().validate()
    assert EnrichmentConfig().organism == "ssc"
    assert StudyDesign().assign_treatment("1234_sample 1") == "CONTROL"


def test_numpy_functionality():
    """Test basic numpy functionality"""
    arr = np.array([1, 2, 3, 4, 5])

    assert arr.mean() == 3.0
