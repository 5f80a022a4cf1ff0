#!/usr/bin/env python
"""
Report to Xray Script.

Either imports an existing results file into Jira Xray, or runs the test
suite with the Xray reporter enabled.

Usage:
    python scripts/report_to_xray.py --test-plan-key PROJ-100
    python scripts/report_to_xray.py --environment Staging --version 2.1.0 -- -m smoke
    python scripts/report_to_xray.py --results test-results/junit.xml
    python scripts/report_to_xray.py --results test-results/xray-results.json --test-execution-key PROJ-200
"""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from src.config.settings import XraySettings, load_xray_settings
from src.jira_client.factory import create_xray_client
from src.jira_client.result_reporter import EXECUTION_KEY_FILENAME, write_execution_key
from src.jira_client.xray_client import XrayClientError, extract_execution_key


def parse_args(argv=None):
    """Parse command-line arguments; anything after ``--`` goes to pytest."""
    parser = argparse.ArgumentParser(
        description="Report test results to Jira Xray"
    )
    parser.add_argument(
        "--results",
        type=str,
        default="",
        help="JUnit XML or Xray JSON file to import (default: run the tests)",
    )
    parser.add_argument(
        "--test-plan-key",
        type=str,
        default="",
        help="Jira Test Plan key",
    )
    parser.add_argument(
        "--environment",
        type=str,
        default="",
        help="Test environment (default: JIRA_ENVIRONMENT or CI/CD)",
    )
    parser.add_argument(
        "--version",
        type=str,
        default="",
        help="Tested version (default: JIRA_VERSION or 1.0.0)",
    )
    parser.add_argument(
        "--test-execution-key",
        type=str,
        default="",
        help="Existing Test Execution key",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="test-results",
        help="Directory for exported results and the execution key file",
    )
    parser.add_argument(
        "pytest_args",
        nargs=argparse.REMAINDER,
        help="Extra pytest arguments (after --)",
    )
    return parser.parse_args(argv)


def build_settings(args) -> XraySettings:
    """Load Xray settings and apply command-line overrides."""
    settings = load_xray_settings()
    overrides = {
        "test_plan_key": args.test_plan_key,
        "environment": args.environment,
        "version": args.version,
        "test_execution_key": args.test_execution_key,
    }
    return replace(settings, **{k: v for k, v in overrides.items() if v})


def import_results(settings: XraySettings, results_path: Path) -> str:
    """
    Import a results file.

    Returns:
        The Test Execution key.

    Raises:
        XrayClientError: If the import fails.
        ValueError: If the file type is not supported.
    """
    client = create_xray_client(settings)
    try:
        if results_path.suffix.lower() == ".xml":
            response = client.import_junit_results(
                str(results_path),
                test_exec_key=settings.test_execution_key or None,
                test_plan_key=settings.test_plan_key or None,
            )
        elif results_path.suffix.lower() == ".json":
            payload = json.loads(results_path.read_text(encoding="utf-8"))
            if settings.test_execution_key:
                payload["testExecutionKey"] = settings.test_execution_key
            if settings.test_plan_key and "testExecutionKey" not in payload:
                payload.setdefault("info", {})["testPlanKey"] = settings.test_plan_key
            response = client.import_execution_results(payload)
        else:
            raise ValueError(f"Unsupported results file type: {results_path.suffix}")
    finally:
        client.close()

    return extract_execution_key(response) or settings.test_execution_key


def run_tests(args) -> int:
    """Run pytest with the Xray reporter enabled."""
    pytest_args = ["--xray", "--xray-output-dir", args.output_dir]
    if args.test_plan_key:
        pytest_args += ["--xray-test-plan-key", args.test_plan_key]
    if args.environment:
        pytest_args += ["--xray-environment", args.environment]
    if args.version:
        pytest_args += ["--xray-version", args.version]
    if args.test_execution_key:
        pytest_args += ["--xray-test-exec-key", args.test_execution_key]
    pytest_args += [a for a in args.pytest_args if a != "--"]

    logger.info(f"[Xray] Running tests with Xray reporter: pytest {' '.join(pytest_args)}")
    return int(pytest.main(pytest_args))


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    settings = build_settings(args)

    missing = settings.missing_env_vars()
    if missing:
        logger.error("[Xray] Missing required environment variables:")
        for name in missing:
            logger.error(f"   - {name}")
        logger.error("[Xray] Set these variables in your .env file or environment.")
        return 1

    logger.info("[Xray] Starting Xray reporting process")
    logger.info(f"[Xray] Environment: {settings.environment}")
    logger.info(f"[Xray] Version: {settings.version}")
    if settings.test_plan_key:
        logger.info(f"[Xray] Test Plan: {settings.test_plan_key}")
    if settings.test_execution_key:
        logger.info(f"[Xray] Test Execution: {settings.test_execution_key}")

    output_dir = Path(args.output_dir)
    if args.results:
        results_path = Path(args.results)
        if not results_path.is_file():
            logger.error(f"[Xray] Results file not found: {results_path}")
            return 1
        try:
            execution_key = import_results(settings, results_path)
        except (XrayClientError, ValueError) as e:
            logger.error(f"[Xray] Failed to report to Xray: {e}")
            return 1
        exit_code = 0
        if execution_key:
            write_execution_key(output_dir, execution_key)
    else:
        exit_code = run_tests(args)

    key_file = output_dir / EXECUTION_KEY_FILENAME
    if key_file.is_file():
        execution_key = key_file.read_text(encoding="utf-8").strip()
        logger.info(f"[Xray] Successfully reported to Jira Xray: {execution_key}")
        logger.info(f"[Xray] View in Jira: {settings.base_url}/browse/{execution_key}")
    else:
        logger.warning("[Xray] Xray execution key not found. Check logs for errors.")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
