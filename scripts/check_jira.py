#!/usr/bin/env python
"""
Check Jira Script.

Verifies the Jira/Xray configuration: connection, visible projects, issue
types, and whether the configured project offers the Xray issue types.

Usage:
    python scripts/check_jira.py
    python scripts/check_jira.py --project PROJ
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.config.settings import load_xray_settings
from src.jira_client.diagnostics import JiraDiagnostics


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Check Jira / Xray configuration")
    parser.add_argument(
        "--project",
        type=str,
        default="",
        help="Project key to inspect (default: JIRA_PROJECT_KEY)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Run the diagnostics and print a summary. Returns 0 when Jira is usable."""
    args = parse_args(argv)
    settings = load_xray_settings()
    if args.project:
        settings = replace(settings, project_key=args.project)

    if not settings.base_url:
        logger.error("[Jira] JIRA_BASE_URL is not set")
        return 1

    diagnostics = JiraDiagnostics(settings)
    try:
        report = diagnostics.run_diagnostics()
    finally:
        diagnostics.close()

    logger.info("=" * 60)
    logger.info("[Jira] Diagnostics summary")
    logger.info("=" * 60)
    logger.info(f"[Jira] Connected: {report['connected']} ({report['user'] or 'n/a'})")
    if report["missing_settings"]:
        logger.warning(f"[Jira] Missing settings: {report['missing_settings']}")
    logger.info(f"[Jira] Projects visible: {len(report['projects'])}")
    for name, available in report["xray_issue_types"].items():
        logger.info(f"[Jira] Issue type '{name}': {'available' if available else 'MISSING'}")

    if not report["connected"]:
        return 1
    if report["xray_issue_types"] and not report["xray_issue_types"].get("Test Execution"):
        logger.error("[Jira] 'Test Execution' issue type is not available; Xray reporting will fail")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
