"""
postman-xray-sync test suite.

Unit tests run against mocked HTTP sessions or the in-memory Jira/Xray
fakes defined in conftest.py; no network access is needed.
"""
