"""
Jira / Xray Client Module.

Provides integration with the Jira REST API and the Xray Cloud API for:
- Searching, creating, linking and transitioning Jira issues.
- Associating tests with Test Sets and Test Executions.
- Importing execution results (Xray JSON).
"""

from xray_sync.jira_client.jira_client import JiraClient, JiraConfig
from xray_sync.jira_client.xray_client import XrayClient, XrayConfig, XraySession
from xray_sync.jira_client.result_reporter import ExecutionReport, ResultReporter, TestResult

__all__ = [
    "JiraClient",
    "JiraConfig",
    "XrayClient",
    "XrayConfig",
    "XraySession",
    "ExecutionReport",
    "ResultReporter",
    "TestResult",
]
