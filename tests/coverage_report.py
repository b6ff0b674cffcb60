# File: tests/coverage_report.py
#!/usr/bin/env python3
"""
Generate test coverage report for the parkfare pricing engine.
Requires: pip install -e .[test]
"""

import coverage
import sys
from pathlib import Path

TESTS_DIR = Path(__file__).parent
SOURCE_DIR = TESTS_DIR.parent / "src" / "parkfare"

sys.path.insert(0, str(TESTS_DIR))


def generate_coverage_report():
    """Generate test coverage report"""
    cov = coverage.Coverage(
        source=[str(SOURCE_DIR)],
        omit=['*/tests/*', '*/__pycache__/*']
    )
    cov.start()

    try:
        # Imported after start so module-level code is measured
        from run_tests import run_all_tests
        result = run_all_tests()
    finally:
        cov.stop()
        cov.save()

    print("\n" + "=" * 60)
    print("Test Coverage Report")
    print("=" * 60)

    print("\nConsole Report:")
    cov.report()

    print("\nGenerating HTML report...")
    cov.html_report(directory='htmlcov')
    print("HTML report generated in 'htmlcov' directory")

    print("\nGenerating XML report...")
    cov.xml_report(outfile='coverage.xml')
    print("XML report generated as 'coverage.xml'")

    return result


if __name__ == "__main__":
    result = generate_coverage_report()
    sys.exit(0 if result.wasSuccessful() else 1)
