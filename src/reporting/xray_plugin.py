"""
Pytest plugin reporting test results to Jira Xray.

Enabled with ``--xray`` (or ``XRAY_REPORTING=true``). During the run it maps
collected tests to Test keys, records one TestResult per mapped test, and at
the end of the session exports the report and publishes it through
XrayReconciler.

Usage::

    pytest --xray --xray-test-plan-key PROJ-900 --xray-output-dir test-results

Tests link to Jira with a marker, a docstring prefix or a file-name prefix
(see ``src.jira_client.test_mapper``)::

    @pytest.mark.xray("PROJ-101", defects=["PROJ-555"])
    def test_search(page, xray_evidence):
        ...
        page.screenshot(path="test-results/search.png")
        xray_evidence("test-results/search.png")
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from loguru import logger

from src.config.loader import ConfigurationError
from src.config.settings import XraySettings, load_xray_settings
from src.jira_client.factory import create_xray_client
from src.jira_client.reconciler import PublishOutcome, XrayReconciler
from src.jira_client.result_reporter import ResultReporter, TestResult, map_outcome
from src.jira_client.test_mapper import TestMapper, extract_defects
from src.jira_client.xray_client import XrayClientError
from src.utils.log_setup import log_test_end, log_test_start

PLUGIN_NAME = "xray_reporter"
EVIDENCE_PROPERTY = "xray_evidence"
ISSUE_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*-\d+$")

XRAY_JSON_FILENAME = "xray-results.json"
JUNIT_FILENAME = "junit-xray.xml"
MAPPING_FILENAME = "xray-test-mapping.json"


# ---------------------------------------------------------------------------
# Options / registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("xray", "Jira Xray reporting")
    group.addoption(
        "--xray",
        action="store_true",
        default=False,
        help="Report results to Jira Xray (also enabled by XRAY_REPORTING=true)",
    )
    group.addoption(
        "--xray-test-exec-key",
        default=None,
        help="Existing Test Execution to report into (default: create a new one)",
    )
    group.addoption(
        "--xray-test-plan-key",
        default=None,
        help="Test Plan to link the Test Execution to",
    )
    group.addoption(
        "--xray-test-set",
        default=None,
        help="Only run tests in this Test Set (issue key or summary)",
    )
    group.addoption(
        "--xray-environment",
        default=None,
        help="Test environment label for the execution",
    )
    group.addoption(
        "--xray-version",
        default=None,
        help="Version label for the execution",
    )
    group.addoption(
        "--xray-output-dir",
        default=None,
        help="Directory for the Xray JSON, JUnit XML, test mapping and execution key files",
    )
    group.addoption(
        "--xray-dry-run",
        action="store_true",
        default=False,
        help="Collect and export results without calling Jira",
    )
    group.addoption(
        "--xray-fail-on-error",
        action="store_true",
        default=False,
        help="Fail the session when publishing to Xray fails",
    )


def _reporting_enabled(config: pytest.Config) -> bool:
    env_value = os.environ.get("XRAY_REPORTING", "").strip().lower()
    return bool(config.getoption("--xray")) or env_value in ("true", "1", "yes", "on")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "xray(test_key, defects=None): Map this test to a Jira Xray Test key",
    )
    if _reporting_enabled(config) and not config.pluginmanager.has_plugin(PLUGIN_NAME):
        config.pluginmanager.register(XrayReporterPlugin(config), PLUGIN_NAME)


@pytest.fixture
def xray_evidence(request: pytest.FixtureRequest) -> Callable[[str], None]:
    """
    Register files (screenshots, traces, logs) as evidence for this test.

    Evidence is embedded in the imported result and attached to the Test
    Execution.
    """

    def attach(path: str | Path) -> None:
        request.node.user_properties.append((EVIDENCE_PROPERTY, str(path)))
        logger.debug(f"Evidence registered for {request.node.nodeid}: {path}")

    return attach


# ---------------------------------------------------------------------------
# Plugin
# ---------------------------------------------------------------------------


def _error_message(report: pytest.TestReport) -> str:
    """Short error description for a failed or skipped report."""
    longrepr = report.longrepr
    if longrepr is None:
        return ""
    if isinstance(longrepr, tuple) and len(longrepr) == 3:
        # Skip reports carry (path, lineno, reason)
        return str(longrepr[2]).removeprefix("Skipped: ")
    reprcrash = getattr(longrepr, "reprcrash", None)
    if reprcrash is not None:
        return reprcrash.message
    text = report.longreprtext.strip()
    return text.splitlines()[-1] if text else ""


def _outcome(report: pytest.TestReport) -> str:
    if hasattr(report, "wasxfail"):
        return "xfailed" if report.skipped else "xpassed"
    if report.when != "call" and report.failed:
        return "error"
    return report.outcome


class XrayReporterPlugin:
    """
    Collects pytest results into a ResultReporter and publishes them to Xray.

    Only tests mapped to a Test key are reported; the rest run normally.
    """

    def __init__(self, config: pytest.Config) -> None:
        self._config = config
        self._settings = self._resolve_settings(config)
        self._mapper = TestMapper()
        self._defects: Dict[str, List[str]] = {}
        self._pending: Dict[str, TestResult] = {}
        self._reporter = ResultReporter(
            project_key=self._settings.project_key,
            environment=self._settings.environment,
            fix_version=self._settings.version,
            test_plan_key=self._settings.test_plan_key,
        )
        if self._settings.test_execution_key:
            self._reporter.set_test_exec_key(self._settings.test_execution_key)
        self._output_dir: Optional[str] = config.getoption("--xray-output-dir")
        self._dry_run: bool = config.getoption("--xray-dry-run")
        self._fail_on_error: bool = config.getoption("--xray-fail-on-error")
        self.outcome: Optional[PublishOutcome] = None

    @staticmethod
    def _resolve_settings(config: pytest.Config) -> XraySettings:
        settings = load_xray_settings()
        overrides = {
            "test_execution_key": config.getoption("--xray-test-exec-key"),
            "test_plan_key": config.getoption("--xray-test-plan-key"),
            "environment": config.getoption("--xray-environment"),
            "version": config.getoption("--xray-version"),
        }
        return replace(settings, **{k: v for k, v in overrides.items() if v})

    @property
    def reporter(self) -> ResultReporter:
        return self._reporter

    @property
    def settings(self) -> XraySettings:
        return self._settings

    # -- session -----------------------------------------------------------

    def pytest_sessionstart(self, session: pytest.Session) -> None:
        mode = "dry run" if self._dry_run else self._settings.deployment
        logger.info(
            f"Xray reporting enabled ({mode}): project={self._settings.project_key or 'N/A'}, "
            f"environment={self._settings.environment}"
        )
        if not self._dry_run and not self._settings.validate():
            logger.warning(
                f"Xray configuration incomplete, missing: {self._settings.missing_fields()}"
            )

    @pytest.hookimpl(trylast=True)
    def pytest_collection_modifyitems(
        self, session: pytest.Session, config: pytest.Config, items: List[pytest.Item]
    ) -> None:
        self._mapper.collect_from_items(items)
        for item in items:
            defects = extract_defects(item)
            if defects:
                self._defects[item.nodeid] = defects

        test_set = config.getoption("--xray-test-set")
        if not test_set:
            return

        test_ids = self._fetch_test_set(test_set)
        if test_ids is None:
            return

        selected = self._mapper.filter_items_by_test_ids(items, test_ids)
        selected_ids = {item.nodeid for item in selected}
        deselected = [item for item in items if item.nodeid not in selected_ids]
        if deselected:
            config.hook.pytest_deselected(items=deselected)
        items[:] = selected

    def _fetch_test_set(self, test_set: str) -> Optional[List[str]]:
        if self._dry_run:
            logger.warning(f"Dry run: not fetching Test Set {test_set}, running all tests")
            return None
        try:
            client = create_xray_client(self._settings)
        except (ValueError, ConfigurationError) as e:
            logger.error(f"Cannot create Xray client for Test Set {test_set}, running all tests: {e}")
            return None
        try:
            if ISSUE_KEY_PATTERN.match(test_set):
                return client.fetch_test_set(test_set)
            return client.fetch_test_set_by_name(test_set)
        except XrayClientError as e:
            logger.error(f"Could not fetch Test Set {test_set}, running all tests: {e}")
            return None
        finally:
            client.close()

    # -- per test ----------------------------------------------------------

    def pytest_runtest_logstart(self, nodeid: str, location: tuple) -> None:
        mapping = self._mapper.get_by_nodeid(nodeid)
        if mapping is None:
            return
        log_test_start(f"{mapping.test_id} {mapping.title or mapping.function_name}")
        self._pending[nodeid] = TestResult(
            test_id=mapping.test_id,
            status="EXECUTING",
            title=mapping.title or mapping.function_name,
            start_time=datetime.now(),
            defects=list(self._defects.get(nodeid, [])),
        )

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        result = self._pending.get(report.nodeid)
        if result is None:
            return

        if report.when == "call" or (report.when == "setup" and not report.passed):
            self._record(result, report)
        elif report.when == "teardown" and report.failed and result.status == "PASSED":
            result.status = "FAILED"
            result.error_message = f"Teardown failed: {_error_message(report)}"
            result.traceback = report.longreprtext

        if report.when == "teardown":
            result.evidence.extend(
                value for name, value in report.user_properties if name == EVIDENCE_PROPERTY
            )
            self._reporter.add_result(self._pending.pop(report.nodeid))

    def _record(self, result: TestResult, report: pytest.TestReport) -> None:
        outcome = _outcome(report)
        result.status = map_outcome(outcome)
        result.duration_sec = report.duration
        result.end_time = datetime.now()
        if outcome == "xfailed":
            result.error_message = f"Expected failure: {report.wasxfail or _error_message(report)}"
        elif not report.passed:
            result.error_message = _error_message(report)
        if report.failed:
            result.traceback = report.longreprtext

        lines = [
            f"Test: {result.title}",
            f"Status: {outcome}",
            f"Duration: {result.duration_ms}ms",
        ]
        if outcome == "xpassed" and report.wasxfail:
            lines.append(f"Expected to fail: {report.wasxfail}")
        result.comment = "\n".join(lines)
        log_test_end(result.title, report.outcome)

    # -- end of session ----------------------------------------------------

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        for result in self._pending.values():
            # Tests that started but never finished (interrupted run)
            result.status = "ABORTED"
            self._reporter.add_result(result)
        self._pending.clear()

        report = self._reporter.finalize()
        if self._output_dir:
            output_dir = Path(self._output_dir)
            self._reporter.export_xray_json(
                str(output_dir / XRAY_JSON_FILENAME), cloud=self._settings.is_cloud
            )
            self._reporter.export_junit_xml(str(output_dir / JUNIT_FILENAME))
            (output_dir / MAPPING_FILENAME).write_text(
                json.dumps(self._mapper.mapping_report(), indent=2), encoding="utf-8"
            )

        if self._dry_run:
            logger.info(f"Xray dry run, not publishing: {self._reporter.get_summary()}")
            return

        try:
            client = create_xray_client(self._settings)
        except (ValueError, ConfigurationError) as e:
            logger.error(f"Cannot create Xray client: {e}")
            self._handle_publish_error(session, str(e))
            return

        try:
            self.outcome = XrayReconciler(client, self._settings).publish(
                report, output_dir=self._output_dir
            )
        finally:
            client.close()

        if self.outcome.errors:
            self._handle_publish_error(session, "; ".join(self.outcome.errors))

    def _handle_publish_error(self, session: pytest.Session, message: str) -> None:
        logger.error(f"Xray reporting failed: {message}")
        if self._fail_on_error and session.exitstatus == pytest.ExitCode.OK:
            session.exitstatus = pytest.ExitCode.TESTS_FAILED

    def pytest_terminal_summary(self, terminalreporter: Any) -> None:
        summary = self._reporter.get_summary()
        terminalreporter.write_sep("-", "Xray")
        terminalreporter.write_line(
            f"{summary['total_tests']} mapped tests: {summary['passed']} passed, "
            f"{summary['failed']} failed, {summary['skipped']} skipped"
        )
        if self.outcome is not None:
            if self.outcome.test_execution_key:
                terminalreporter.write_line(
                    f"Test Execution: {self.outcome.test_execution_key}"
                )
            if self.outcome.skipped_reason:
                terminalreporter.write_line(f"Not published: {self.outcome.skipped_reason}")
            for error in self.outcome.errors:
                terminalreporter.write_line(f"Error: {error}", red=True)
