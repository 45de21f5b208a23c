"""
Pytest configuration and fixtures for swath_toolkit tests
"""

import numpy as np
import pandas as pd
import pytest

from swath_toolkit.statistical_analysis import StatisticalConfig
from swath_toolkit.study_design import StudyDesign


CONTROL_SUBJECTS = ["1001", "1002"]
SC_SUBJECTS = ["2343", "2350"]
PBS_SUBJECTS = ["2401", "2405"]
FEMALE_SUBJECTS = ["1002", "2350", "2405"]
ALL_SUBJECTS = CONTROL_SUBJECTS + PBS_SUBJECTS + SC_SUBJECTS

N_PROTEINS = 20


def peak_name(i):
    return f"sp|ACC{i:03d}|ACC{i:03d}_PIG"


@pytest.fixture
def study_design():
    """Study design with two piglets per arm"""
    return StudyDesign(
        sc_subjects=SC_SUBJECTS,
        pbs_subjects=PBS_SUBJECTS,
        female_subjects=FEMALE_SUBJECTS,
        excluded_subjects=["2999"],
    )


@pytest.fixture
def run_names():
    """Two replicate runs per piglet"""
    return [f"{subject}_sample {rep}" for subject in ALL_SUBJECTS for rep in (1, 2)]


@pytest.fixture
def swath_table(run_names):
    """Wide SWATH export: peak name, replicate columns, then per-piglet means"""
    np.random.seed(42)

    log_values = np.random.normal(15, 0.2, (N_PROTEINS, len(run_names)))
    for j, run in enumerate(run_names):
        subject = run.split("_")[0]
        if subject in SC_SUBJECTS:
            log_values[0:3, j] += 3.0
        if subject in PBS_SUBJECTS:
            log_values[3:6, j] += 2.0

    intensities = 2 ** log_values
    # Protein 18 missing in one replicate, protein 19 missing in both runs of 1001
    intensities[18, 0] = np.nan
    intensities[19, 0] = np.nan
    intensities[19, 1] = np.nan

    replicates = pd.DataFrame(intensities, columns=run_names)
    table = pd.DataFrame({"Peak Name": [peak_name(i) for i in range(N_PROTEINS)]})
    table = pd.concat([table, replicates], axis=1)

    for subject in ALL_SUBJECTS:
        reps = replicates[[f"{subject}_sample 1", f"{subject}_sample 2"]]
        table[f"{subject}_mean"] = reps.mean(axis=1, skipna=True)

    return table


@pytest.fixture
def clinical_metadata():
    """Clinical workbook: one row per piglet, plus one never measured"""
    subjects = [int(s) for s in ALL_SUBJECTS] + [3001]
    return pd.DataFrame({
        "Subject": subjects,
        "Include": ["yes"] * len(subjects),
        "Acquisition Date": ["2023-01-10", "2023-01-10", "2023-01-11", "2023-01-11",
                             "2023-01-12", "2023-01-12", "2023-01-13"],
    })


@pytest.fixture
def replicate_matrix(swath_table, run_names):
    """Runs x proteins matrix built from the replicate block"""
    matrix = swath_table.set_index("Peak Name")[run_names].T
    matrix.index.name = "Sample"
    matrix.columns.name = "Protein"
    return matrix


@pytest.fixture
def three_group_data():
    """
    Deterministic three-group data for one protein:
    A = 10..14, B = a permutation of A, C = A + 8
    """
    a = [10.0, 11.0, 12.0, 13.0, 14.0]
    b = [12.0, 14.0, 10.0, 13.0, 11.0]
    c = [x + 8 for x in a]

    samples = [f"S{i:02d}" for i in range(15)]
    protein_data = pd.DataFrame([a + b + c], index=["PROT1"], columns=samples)
    metadata_df = pd.DataFrame({
        "Sample": samples,
        "Treatment": ["A"] * 5 + ["B"] * 5 + ["C"] * 5,
    })
    return protein_data, metadata_df


@pytest.fixture
def statistical_config():
    """Statistical configuration on data already on the log scale"""
    config = StatisticalConfig()
    config.group_column = "Treatment"
    config.log_transform_before_stats = False
    return config


@pytest.fixture
def identifier_map():
    """Offline UniProt -> KEGG table for the fixture proteins"""
    return pd.DataFrame({
        "source": [f"ACC{i:03d}" for i in range(N_PROTEINS)],
        "target": [f"ssc:{100000 + i}" for i in range(N_PROTEINS)],
    })
