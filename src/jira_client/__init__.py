"""
Jira Xray Client Module.

Provides integration with Jira and the Xray REST APIs (Server/DC and Cloud) for:
- Mapping Test keys to Pytest functions.
- Finding or creating Test issues.
- Creating Test Executions and importing results (JSON/JUnit XML).
- Publishing a whole run (reconciler) and diagnosing the Jira setup.
"""

from src.jira_client.xray_client import XrayClient, XrayClientError, XrayConfig
from src.jira_client.xray_cloud_client import XrayCloudClient
from src.jira_client.factory import create_xray_client
from src.jira_client.test_mapper import TestMapper, TestMapping, extract_test_key
from src.jira_client.result_reporter import (
    ExecutionReport,
    ResultReporter,
    TestResult,
    map_outcome,
    merge_results,
)
from src.jira_client.reconciler import PublishOutcome, XrayReconciler
from src.jira_client.diagnostics import JiraDiagnostics

__all__ = [
    "XrayClient",
    "XrayClientError",
    "XrayConfig",
    "XrayCloudClient",
    "create_xray_client",
    "TestMapper",
    "TestMapping",
    "extract_test_key",
    "ResultReporter",
    "TestResult",
    "ExecutionReport",
    "map_outcome",
    "merge_results",
    "PublishOutcome",
    "XrayReconciler",
    "JiraDiagnostics",
]
