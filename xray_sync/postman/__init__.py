"""
Postman Report Module.

Reading the Postman CLI JSON report and interpreting its naming
conventions:
- Report parsing into immutable run/execution records with verdicts.
- Extraction of Test Execution, Test Set and test case keys from names.
"""

from xray_sync.postman.key_extractor import KeyExtractor, KeyPatterns, ParsedKeys
from xray_sync.postman.report_parser import (
    AssertionOutcome,
    ExecutionRecord,
    TestRunReport,
    Verdict,
    load_report,
)

__all__ = [
    "KeyExtractor",
    "KeyPatterns",
    "ParsedKeys",
    "AssertionOutcome",
    "ExecutionRecord",
    "TestRunReport",
    "Verdict",
    "load_report",
]
