"""
Data Validation Module for the SWATH Analysis Toolkit

Exception types raised by the pipeline and functions for checking that the
clinical spreadsheet and the SWATH abundance export describe the same piglets.
"""

import pandas as pd
from typing import Dict, List, Optional


class SampleMatchingError(Exception):
    """Custom exception for sample matching issues."""
    def __init__(self, message):
        super().__init__(message)


class MissingDataPolicyViolation(Exception):
    """Raised when data reaches a missing-value path no policy covers."""
    def __init__(self, message):
        super().__init__(message)


class IdentifierMappingFailure(Exception):
    """Raised when accessions have no (or no unambiguous) target identifier."""
    def __init__(self, message, unmapped: Optional[List[str]] = None):
        super().__init__(message)
        self.unmapped = list(unmapped) if unmapped is not None else []


class EmptyResultSet(Exception):
    """Raised when a filtering or threshold step removes every row."""
    def __init__(self, message):
        super().__init__(message)


def require_rows(data, what: str):
    """Raise EmptyResultSet if ``data`` has no rows, otherwise return it."""
    if data is None or len(data) == 0:
        raise EmptyResultSet(f"No rows left after {what}")
    return data


def validate_metadata_data_consistency(
    clinical: pd.DataFrame,
    sample_matrix: pd.DataFrame,
    design,
    subject_column: str,
    verbose: bool = True,
) -> Dict:
    """
    Validate consistency between clinical metadata and SWATH sample data.

    Parameters:
    -----------
    clinical : pd.DataFrame
        Filtered clinical metadata, one row per piglet
    sample_matrix : pd.DataFrame
        Samples x proteins matrix (index = sample ids)
    design : StudyDesign
        Study design used to parse sample ids into subjects
    subject_column : str
        Clinical column holding the piglet id
    verbose : bool, default True
        Whether to print detailed validation results

    Returns:
    --------
    Dict containing validation results and diagnostic information
    """

    results = {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'diagnostics': {}
    }

    if verbose:
        print("CLINICAL/PROTEOMICS CONSISTENCY VALIDATION")
        print("=" * 50)

    if subject_column not in clinical.columns:
        results['errors'].append(f"Subject column '{subject_column}' not found in clinical metadata")
        results['is_valid'] = False
        return results

    clinical_subjects = [str(s).strip() for s in clinical[subject_column].dropna()]
    sample_subjects = {}
    for sample_id in sample_matrix.index:
        subject = design.parse_sample_id(sample_id)['subject']
        sample_subjects.setdefault(subject, []).append(sample_id)

    found_subjects = [s for s in clinical_subjects if s in sample_subjects]
    missing_subjects = [s for s in clinical_subjects if s not in sample_subjects]
    unexpected_subjects = sorted(s for s in sample_subjects if s not in clinical_subjects)
    excluded_present = sorted(s for s in sample_subjects if s in design.excluded_subjects)

    if missing_subjects:
        results['warnings'].append(
            f"Found {len(missing_subjects)} clinical subjects without SWATH samples: "
            f"{missing_subjects[:5]}{'...' if len(missing_subjects) > 5 else ''}"
        )

    if unexpected_subjects:
        error_msg = (f"Found {len(unexpected_subjects)} SWATH subjects with no clinical record: "
                     f"{unexpected_subjects[:5]}{'...' if len(unexpected_subjects) > 5 else ''}")
        results['errors'].append(error_msg)
        results['is_valid'] = False

    if excluded_present:
        results['warnings'].append(
            f"Excluded subjects still present in SWATH data: {excluded_present}"
        )

    results['diagnostics'] = {
        'total_clinical_subjects': len(clinical_subjects),
        'subjects_found_in_data': len(found_subjects),
        'subjects_missing_from_data': len(missing_subjects),
        'unexpected_subjects': unexpected_subjects,
        'excluded_subjects_in_data': excluded_present,
        'found_subjects': found_subjects,
        'missing_subjects': missing_subjects,
        'samples_per_subject': {s: len(v) for s, v in sample_subjects.items()},
    }

    if verbose:
        diag = results['diagnostics']
        print(f"Clinical subjects: {diag['total_clinical_subjects']}")
        print(f"  Found in SWATH data: {diag['subjects_found_in_data']}")
        print(f"  Missing from SWATH data: {diag['subjects_missing_from_data']}")
        print(f"SWATH subjects without clinical record: {len(unexpected_subjects)}")

        for warning in results['warnings']:
            print(f"  WARNING: {warning}")

        if results['errors']:
            print("\nVALIDATION FAILED")
            for error in results['errors']:
                print(f"  ERROR: {error}")
        else:
            print("\n✓ VALIDATION PASSED")

    return results


def enforce_metadata_data_consistency(
    clinical: pd.DataFrame,
    sample_matrix: pd.DataFrame,
    design,
    subject_column: str,
    strict_validation: bool = True,
) -> Dict:
    """Run the consistency check and raise SampleMatchingError on failure when strict."""
    validation_results = validate_metadata_data_consistency(
        clinical, sample_matrix, design, subject_column, verbose=True
    )

    if not validation_results['is_valid']:
        error_summary = "\n".join(validation_results['errors'])
        if strict_validation:
            raise SampleMatchingError(f"Sample matching validation failed:\n{error_summary}")
        print("⚠️  WARNING: Validation issues detected but continuing with available data:")
        for error in validation_results['errors']:
            print(f"   {error}")

    return validation_results


def generate_sample_matching_diagnostic_report(
    validation_results: Dict,
    output_file: Optional[str] = None
) -> str:
    """
    Generate a detailed diagnostic report for sample matching issues.

    Parameters:
    -----------
    validation_results : Dict
        Results from validate_metadata_data_consistency
    output_file : str, optional
        Path to save the report

    Returns:
    --------
    str: Formatted diagnostic report
    """

    diag = validation_results['diagnostics']

    report = []
    report.append("SAMPLE MATCHING DIAGNOSTIC REPORT")
    report.append("=" * 50)
    report.append(f"Generated on: {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M:%S')}")
    report.append("")

    report.append("SUMMARY STATISTICS")
    report.append("-" * 30)
    report.append(f"Total subjects in clinical metadata: {diag['total_clinical_subjects']}")
    report.append(f"Subjects found in SWATH data: {diag['subjects_found_in_data']}")
    report.append(f"Subjects missing from SWATH data: {diag['subjects_missing_from_data']}")
    if diag['total_clinical_subjects'] > 0:
        match_rate = diag['subjects_found_in_data'] / diag['total_clinical_subjects'] * 100
        report.append(f"Match rate: {match_rate:.1f}%")
    report.append("")

    if diag['missing_subjects']:
        report.append("MISSING SUBJECTS")
        report.append("-" * 30)
        for i, subject in enumerate(diag['missing_subjects'][:10]):
            report.append(f"{i+1}. {subject}")
        if len(diag['missing_subjects']) > 10:
            report.append(f"... and {len(diag['missing_subjects']) - 10} more")
        report.append("")

    if diag['unexpected_subjects']:
        report.append("SWATH SUBJECTS WITHOUT CLINICAL RECORD")
        report.append("-" * 30)
        report.append(", ".join(diag['unexpected_subjects']))
        report.append("")

    report.append("RECOMMENDATIONS")
    report.append("-" * 30)
    if diag['subjects_missing_from_data'] > 0:
        report.append("1. Check the inclusion flag in the clinical workbook")
        report.append("2. Verify the SWATH export contains every included piglet")
    if diag['unexpected_subjects']:
        report.append("3. Check sample naming in the SWATH export (expected '<subject>_sample <n>')")
    if validation_results['is_valid']:
        report.append("✓ All samples successfully matched - no action needed")

    report_text = "\n".join(report)

    if output_file:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(report_text)
        print(f"Diagnostic report saved to: {output_file}")

    return report_text
