"""
Postman -> Jira/Xray synchronization.

This package contains the logic for:
- Postman: report parsing and naming-convention key extraction.
- Jira Client: Jira REST and Xray Cloud API wrappers.
- Sync: the per-record reconciler and run summary.
- Configuration: settings files, environment and schema validation.
"""

__version__ = "0.1.0"
