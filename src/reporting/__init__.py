"""
Reporting Module.

Pytest integration that forwards test results to Jira Xray:
- Test key mapping during collection (optionally narrowed to a Test Set).
- Per-test results with duration, errors, defects and evidence.
- Xray JSON / JUnit XML export and publishing at the end of the session.
"""

from src.reporting.xray_plugin import XrayReporterPlugin

__all__ = ["XrayReporterPlugin"]
