"""
Result Reporter Module.

Handles formatting of browser test results for Jira Xray:
- Xray JSON import format (Server/DC and Cloud status vocabularies).
- JUnit XML format (widely compatible).
- Jira comment bodies summarising a run.
- Summary statistics.
- Merging of results that report to the same Test.

Statuses are held in one canonical vocabulary (PASSED, FAILED, SKIPPED,
TODO, EXECUTING, ABORTED) and translated when serialised, since Xray
Server expects PASS/FAIL while Xray Cloud expects PASSED/FAILED.
"""

from __future__ import annotations

import base64
import json
import mimetypes
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

EXECUTION_KEY_FILENAME = "xray-execution-key.txt"

STATUS_ALIASES = {
    "PASS": "PASSED",
    "FAIL": "FAILED",
    "SKIP": "SKIPPED",
}

SERVER_STATUS_NAMES = {
    "PASSED": "PASS",
    "FAILED": "FAIL",
    "SKIPPED": "TODO",
    "TODO": "TODO",
    "EXECUTING": "EXECUTING",
    "ABORTED": "ABORTED",
}

# pytest / browser-runner outcome -> canonical status
OUTCOME_STATUS_MAP = {
    "passed": "PASSED",
    "failed": "FAILED",
    "skipped": "SKIPPED",
    "timedout": "FAILED",
    "error": "FAILED",
    "xfailed": "SKIPPED",
    "xpassed": "PASSED",
    "interrupted": "ABORTED",
}


def map_outcome(outcome: str) -> str:
    """
    Map a test-runner outcome to a canonical Xray status.

    Unknown outcomes are reported as FAILED so nothing is silently green.
    """
    return OUTCOME_STATUS_MAP.get(outcome.replace("_", "").lower(), "FAILED")


@dataclass
class TestResult:
    """
    Result of a single test execution for Xray reporting.

    Attributes:
        test_id: Jira Test issue key (e.g., "PROJ-101").
        status: Canonical status (see module docstring); aliases are normalised.
        title: Human-readable test title, used when a Test issue must be created.
        comment: Optional result comment.
        duration_sec: Test execution duration in seconds.
        evidence: List of file paths to attach as evidence.
        defects: List of defect issue keys linked to this failure.
        start_time: When the test started.
        end_time: When the test finished.
        error_message: Error message if the test failed.
        traceback: Full error traceback if available.
    """

    __test__ = False

    test_id: str
    status: str = "TODO"
    title: str = ""
    comment: str = ""
    duration_sec: float = 0.0
    evidence: List[str] = field(default_factory=list)
    defects: List[str] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: str = ""
    traceback: str = ""

    VALID_STATUSES = {"PASSED", "FAILED", "SKIPPED", "TODO", "EXECUTING", "ABORTED"}

    def __post_init__(self) -> None:
        """Normalise and validate the status value."""
        status = self.status.upper()
        status = STATUS_ALIASES.get(status, status)
        if status not in self.VALID_STATUSES:
            logger.warning(
                f"Invalid test result status '{self.status}' for {self.test_id}, "
                f"defaulting to 'TODO'. Valid: {sorted(self.VALID_STATUSES)}"
            )
            status = "TODO"
        self.status = status

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration_sec * 1000))

    def full_comment(self) -> str:
        """Comment text with the error message appended, if any."""
        if not self.error_message:
            return self.comment
        if self.comment:
            return f"{self.comment}\n\nError: {self.error_message}"
        return f"Error: {self.error_message}"

    def to_xray_dict(self, cloud: bool = False) -> Dict[str, Any]:
        """
        Convert to Xray JSON format for a single test.

        Args:
            cloud: Use the Xray Cloud status vocabulary instead of Server's.
        """
        status = self.status if cloud else SERVER_STATUS_NAMES[self.status]
        result: Dict[str, Any] = {
            "testKey": self.test_id,
            "status": status,
        }
        comment = self.full_comment()
        if comment:
            result["comment"] = comment
        if self.start_time:
            result["start"] = self.start_time.isoformat()
        if self.end_time:
            result["finish"] = self.end_time.isoformat()
        if self.defects:
            result["defects"] = self.defects
        evidence = [e for e in (_encode_evidence(path) for path in self.evidence) if e]
        if evidence:
            result["evidence"] = evidence
        return result


def _encode_evidence(path: str) -> Optional[Dict[str, str]]:
    """Read an evidence file into Xray's embedded evidence structure."""
    file_path = Path(path)
    if not file_path.is_file():
        logger.warning(f"Evidence file not found, skipping: {path}")
        return None
    content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
    return {
        "data": base64.b64encode(file_path.read_bytes()).decode("ascii"),
        "filename": file_path.name,
        "contentType": content_type,
    }


@dataclass
class ExecutionReport:
    """
    Complete test execution report for Xray.

    Wraps multiple TestResult objects into a full execution report
    that can be serialized to JSON or XML for Xray import.

    Attributes:
        test_exec_key: Existing Test Execution key to update (optional).
        summary: Summary for a new Test Execution issue.
        description: Description for the execution.
        project_key: Jira project key.
        environment: Test environment label.
        fix_version: Fix version for the execution.
        test_plan_key: Test Plan the execution belongs to.
        user: Jira user recorded as the executor.
        results: List of individual test results.
        start_time: When the execution started.
        end_time: When the execution finished.
    """

    test_exec_key: str = ""
    summary: str = ""
    description: str = ""
    project_key: str = ""
    environment: str = ""
    fix_version: str = ""
    test_plan_key: str = ""
    user: str = ""
    results: List[TestResult] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def add_result(self, result: TestResult) -> None:
        """Add a test result to the execution report."""
        self.results.append(result)

    @property
    def total_tests(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status == "PASSED")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "FAILED")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "SKIPPED")

    @property
    def other(self) -> int:
        """Number of tests that neither passed nor failed."""
        return self.total_tests - self.passed - self.failed

    @property
    def pass_rate(self) -> float:
        """Pass rate as a percentage."""
        if self.total_tests == 0:
            return 0.0
        return (self.passed / self.total_tests) * 100

    @property
    def overall_status(self) -> str:
        """FAILED when any test failed, otherwise PASSED."""
        return "FAILED" if self.failed else "PASSED"

    @property
    def duration_sec(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return sum(r.duration_sec for r in self.results)


# Worst first: a merged result takes the status that sorts lowest here.
STATUS_PRECEDENCE = ["FAILED", "ABORTED", "EXECUTING", "TODO", "PASSED", "SKIPPED"]


def merge_results(results: List[TestResult]) -> List[TestResult]:
    """
    Collapse results sharing a Test key into one result per key.

    Several Pytest nodes can report to the same Test (e.g. a parametrized
    test). The merged result keeps the worst status, joins comments and
    error messages, sums durations and combines evidence and defects.
    Order follows each key's first appearance.
    """
    grouped: Dict[str, List[TestResult]] = {}
    for result in results:
        grouped.setdefault(result.test_id, []).append(result)

    merged: List[TestResult] = []
    for test_id, group in grouped.items():
        if len(group) == 1:
            merged.append(group[0])
            continue
        starts = [r.start_time for r in group if r.start_time]
        ends = [r.end_time for r in group if r.end_time]
        merged.append(
            TestResult(
                test_id=test_id,
                status=min((r.status for r in group), key=STATUS_PRECEDENCE.index),
                title=next((r.title for r in group if r.title), ""),
                comment="\n\n".join(r.comment for r in group if r.comment),
                duration_sec=sum(r.duration_sec for r in group),
                evidence=list(dict.fromkeys(e for r in group for e in r.evidence)),
                defects=list(dict.fromkeys(d for r in group for d in r.defects)),
                start_time=min(starts) if starts else None,
                end_time=max(ends) if ends else None,
                error_message="\n".join(r.error_message for r in group if r.error_message),
                traceback="\n\n".join(r.traceback for r in group if r.traceback),
            )
        )
        logger.debug(f"Merged {len(group)} results for {test_id}: {merged[-1].status}")
    return merged


def format_results_comment(results: List[TestResult]) -> str:
    """
    Format test results as a Jira comment (wiki markup).

    Args:
        results: Results to summarise.

    Returns:
        Comment body with totals and one line per test.
    """
    passed = sum(1 for r in results if r.status == "PASSED")
    failed = sum(1 for r in results if r.status == "FAILED")
    skipped = sum(1 for r in results if r.status == "SKIPPED")

    lines = [
        "h2. Test Execution Results",
        "",
        "*Execution Summary:*",
        f"* Total Tests: {len(results)}",
        f"* Passed: {passed}",
        f"* Failed: {failed}",
        f"* Skipped: {skipped}",
        "",
        "*Test Details:*",
    ]
    icons = {"PASSED": "(/)", "FAILED": "(x)"}
    for result in results:
        icon = icons.get(result.status, "(i)")
        if result.title:
            summary = result.title
        elif result.comment:
            summary = result.comment.splitlines()[0]
        else:
            summary = "Test executed"
        lines.append(f"{icon} *{result.test_id}* [{result.status}]: {summary}")
        if result.duration_sec:
            lines.append(f"** Duration: {result.duration_ms}ms")
        if result.error_message:
            lines.append(f"** Error: {result.error_message}")
    return "\n".join(lines)


def write_execution_key(output_dir: str | Path, test_exec_key: str) -> Path:
    """Write the Test Execution key to ``<output_dir>/xray-execution-key.txt``."""
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    key_file = path / EXECUTION_KEY_FILENAME
    key_file.write_text(test_exec_key, encoding="utf-8")
    logger.info(f"Test Execution key written to: {key_file}")
    return key_file


class ResultReporter:
    """
    Collects and exports test results for Jira Xray.

    Supports:
    - Xray JSON format (native import).
    - JUnit XML format (widely compatible).
    - Summary statistics generation.

    Usage::

        reporter = ResultReporter(project_key="PROJ")

        reporter.add_result(TestResult(test_id="PROJ-101", status="PASSED"))
        reporter.add_result(TestResult(test_id="PROJ-102", status="FAILED",
                                       error_message="Timeout exceeded"))

        reporter.export_xray_json("results.json")
        reporter.export_junit_xml("results.xml")
    """

    def __init__(
        self,
        project_key: str = "",
        environment: str = "",
        fix_version: str = "",
        test_plan_key: str = "",
        user: str = "",
    ) -> None:
        self.project_key = project_key
        self.environment = environment
        self.fix_version = fix_version
        self._report = ExecutionReport(
            project_key=project_key,
            environment=environment,
            fix_version=fix_version,
            test_plan_key=test_plan_key,
            user=user,
            start_time=datetime.now(),
        )
        logger.debug(f"ResultReporter initialized: project={project_key}")

    @property
    def report(self) -> ExecutionReport:
        return self._report

    def add_result(self, result: TestResult) -> None:
        """Add a test result to the report."""
        self._report.add_result(result)
        logger.debug(f"Result added: {result.test_id} -> {result.status}")

    def set_test_exec_key(self, test_exec_key: str) -> None:
        self._report.test_exec_key = test_exec_key

    def finalize(self) -> ExecutionReport:
        """
        Finalize the report, setting the end time.

        Returns:
            The completed ExecutionReport.
        """
        self._report.end_time = datetime.now()
        logger.info(
            f"Report finalized: {self._report.total_tests} tests, "
            f"{self._report.passed} passed, {self._report.failed} failed, "
            f"pass rate: {self._report.pass_rate:.1f}%"
        )
        return self._report

    def to_xray_json(self, cloud: bool = False) -> Dict[str, Any]:
        """
        Convert the report to Xray JSON import format.

        Args:
            cloud: Use the Xray Cloud status vocabulary.

        Returns:
            Dictionary in Xray JSON import format.
        """
        return build_xray_payload(self._report, cloud=cloud)

    def export_xray_json(self, output_path: str, cloud: bool = False) -> Path:
        """
        Export the report as Xray JSON format file.

        Args:
            output_path: Path to write the JSON file.
            cloud: Use the Xray Cloud status vocabulary.

        Returns:
            Path to the written file.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.to_xray_json(cloud=cloud)
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        logger.info(f"Xray JSON report exported to: {path}")
        return path

    def export_junit_xml(self, output_path: str) -> Path:
        """
        Export the report as JUnit XML format file.

        This format can be imported by Xray via the JUnit endpoint.

        Args:
            output_path: Path to write the XML file.

        Returns:
            Path to the written file.
        """
        report = self._report
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        testsuite = ET.Element("testsuite")
        testsuite.set("name", report.summary or f"{self.project_key} Test Execution")
        testsuite.set("tests", str(report.total_tests))
        testsuite.set("failures", str(report.failed))
        testsuite.set("errors", "0")
        testsuite.set("skipped", str(report.skipped))
        testsuite.set("time", str(sum(r.duration_sec for r in report.results)))

        if report.start_time:
            testsuite.set("timestamp", report.start_time.isoformat())

        for result in report.results:
            testcase = ET.SubElement(testsuite, "testcase")
            testcase.set("name", result.title or result.test_id)
            testcase.set("classname", f"{self.project_key}.{result.test_id}")
            testcase.set("time", str(result.duration_sec))

            if result.status == "FAILED":
                failure = ET.SubElement(testcase, "failure")
                failure.set("message", result.error_message or "Test failed")
                if result.traceback:
                    failure.text = result.traceback

            elif result.status == "ABORTED":
                error = ET.SubElement(testcase, "error")
                error.set("message", result.error_message or "Test aborted")

            elif result.status in ("TODO", "SKIPPED"):
                skipped = ET.SubElement(testcase, "skipped")
                skipped.set("message", result.comment or "Not executed")

            # Xray links JUnit test cases to Test issues through this property
            properties = ET.SubElement(testcase, "properties")
            prop = ET.SubElement(properties, "property")
            prop.set("name", "test_key")
            prop.set("value", result.test_id)

        tree = ET.ElementTree(testsuite)
        ET.indent(tree, space="  ")
        tree.write(str(path), encoding="unicode", xml_declaration=True)
        logger.info(f"JUnit XML report exported to: {path}")
        return path

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the execution report.

        Returns:
            Dictionary with execution statistics.
        """
        report = self._report
        return {
            "project_key": self.project_key,
            "environment": self.environment,
            "total_tests": report.total_tests,
            "passed": report.passed,
            "failed": report.failed,
            "skipped": report.skipped,
            "other": report.other,
            "pass_rate": f"{report.pass_rate:.1f}%",
            "start_time": str(report.start_time) if report.start_time else None,
            "end_time": str(report.end_time) if report.end_time else None,
        }


def build_xray_payload(
    report: ExecutionReport,
    cloud: bool = False,
    results: Optional[List[TestResult]] = None,
) -> Dict[str, Any]:
    """
    Build the Xray JSON import payload for a report.

    Args:
        report: The execution report.
        cloud: Use the Xray Cloud status vocabulary.
        results: Subset of results to include (defaults to all). Results
            sharing a Test key become one entry (see ``merge_results``).

    Returns:
        Payload with ``testExecutionKey`` when the report targets an existing
        execution, otherwise with an ``info`` block describing a new one.
    """
    results = report.results if results is None else results
    payload: Dict[str, Any] = {
        "tests": [r.to_xray_dict(cloud=cloud) for r in merge_results(results)],
    }

    if report.test_exec_key:
        payload["testExecutionKey"] = report.test_exec_key
        return payload

    info: Dict[str, Any] = {}
    if report.summary:
        info["summary"] = report.summary
    if report.description:
        info["description"] = report.description
    if report.project_key:
        info["project"] = report.project_key
    if report.environment:
        info["testEnvironments"] = [report.environment]
    if report.fix_version:
        info["version"] = report.fix_version
    if report.test_plan_key:
        info["testPlanKey"] = report.test_plan_key
    if report.user:
        info["user"] = report.user
    if report.start_time:
        info["startDate"] = report.start_time.isoformat()
    if report.end_time:
        info["finishDate"] = report.end_time.isoformat()
    if info:
        payload["info"] = info

    return payload
