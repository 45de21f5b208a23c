#!/usr/bin/env python3
"""
Test runner script for swath_toolkit

Runs the test modules stage by stage (study design and import, missing data,
statistics, ordination, mapping and enrichment, pipeline) and prints a
summary. Pass --quick to run the whole suite once without the per-stage runs.
"""

import os
import subprocess
import sys
import time


STAGES = [
    ("tests/test_basic.py", "Basic Functionality"),
    ("tests/test_study_design.py tests/test_data_import.py tests/test_preprocessing.py",
     "Study Design, Import and Reshaping"),
    ("tests/test_missing_data.py tests/test_validation.py", "Missing Data Policies and Validation"),
    ("tests/test_statistical_analysis.py", "ANOVA, FDR and Tukey HSD"),
    ("tests/test_ordination.py", "PCA and Sparse PCA"),
    ("tests/test_identifier_mapping.py tests/test_enrichment.py", "Identifier Mapping and Enrichment"),
    ("tests/test_export.py tests/test_pipeline.py", "Export and End-to-End Pipeline"),
]


def run_stage(targets, description):
    """Run pytest on one group of test modules; True when it passes"""
    print(f"\n{'=' * 60}")
    print(f"🧪 {description}")
    print('=' * 60)

    started = time.time()
    result = subprocess.run(
        [sys.executable, "-m", "pytest", *targets.split(), "-v", "--tb=short"],
        check=False,
        cwd=os.path.dirname(os.path.abspath(__file__)),
    )
    elapsed = time.time() - started

    if result.returncode == 0:
        print(f"✅ {description} - PASSED ({elapsed:.1f}s)")
        return True
    print(f"❌ {description} - FAILED (exit code: {result.returncode})")
    return False


def main(argv):
    print("SWATH Toolkit Test Suite")
    print("=" * 60)

    stages = [("tests/", "Complete Test Suite")] if "--quick" in argv else STAGES
    results = [(description, run_stage(targets, description)) for targets, description in stages]

    print(f"\n{'=' * 60}")
    print("📊 TEST SUMMARY")
    print('=' * 60)
    for description, success in results:
        status = "✅ PASSED" if success else "❌ FAILED"
        print(f"{status:12} - {description}")

    failed = sum(1 for _, success in results if not success)
    print(f"\n Overall: {len(results) - failed}/{len(results)} stages passed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
