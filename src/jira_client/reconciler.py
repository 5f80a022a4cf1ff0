"""
Xray Reconciler Module.

Publishes an ExecutionReport to Jira Xray:

1. Merge results sharing a Test key, then resolve each Test issue
   (find, or create when allowed).
2. Reuse the configured Test Execution, or create a new one.
3. Import the results against that execution.
4. Comment the execution with a results summary and its final status.
5. Optionally comment and transition each Test issue.
6. Attach evidence files to the execution.
7. Write the execution key file for CI consumers.

Steps 4-6 are best-effort; failures there are logged by the client and do
not abort the publish.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger

from src.config.settings import XraySettings
from src.jira_client.result_reporter import (
    ExecutionReport,
    TestResult,
    build_xray_payload,
    format_results_comment,
    merge_results,
    write_execution_key,
)
from src.jira_client.xray_client import XrayClient, XrayClientError


@dataclass
class PublishOutcome:
    """
    Result of publishing a report.

    Attributes:
        test_execution_key: Execution the results were imported into ("" if none).
        reported: Test keys whose results were imported.
        skipped_keys: Test keys dropped because their Test issue was unavailable.
        errors: Error messages from failed steps.
        skipped_reason: Why nothing was published, when that is the case.
    """

    test_execution_key: str = ""
    reported: List[str] = field(default_factory=list)
    skipped_keys: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped_reason: str = ""

    @property
    def success(self) -> bool:
        return bool(self.test_execution_key) and not self.errors


class XrayReconciler:
    """
    Reconciles a local ExecutionReport with Jira Xray.

    Usage::

        settings = load_xray_settings()
        reconciler = XrayReconciler(create_xray_client(settings), settings)
        outcome = reconciler.publish(reporter.finalize(), output_dir="test-results")
    """

    def __init__(self, client: XrayClient, settings: XraySettings) -> None:
        self._client = client
        self._settings = settings

    def publish(
        self,
        report: ExecutionReport,
        output_dir: Optional[str | Path] = None,
    ) -> PublishOutcome:
        """
        Publish a report to Xray.

        Args:
            report: The finalized execution report.
            output_dir: Where to write ``xray-execution-key.txt`` (optional).

        Returns:
            PublishOutcome describing what was reported.
        """
        outcome = PublishOutcome()

        missing = self._settings.missing_fields()
        if missing:
            logger.warning(
                f"Xray configuration incomplete (missing: {missing}). "
                "Skipping Jira reporting."
            )
            outcome.skipped_reason = f"missing configuration: {', '.join(missing)}"
            return outcome

        if not report.results:
            logger.warning("No test results to report to Xray")
            outcome.skipped_reason = "no results"
            return outcome

        logger.info(f"Publishing {report.total_tests} test results to Xray")
        resolved = self._resolve_test_cases(merge_results(report.results), outcome)
        if not resolved:
            logger.error("No valid test cases found. Cannot create test execution.")
            outcome.skipped_reason = "no test cases available"
            outcome.errors.append(
                f"None of the {len(outcome.skipped_keys)} Test issues could be found or created"
            )
            return outcome

        test_keys = [r.test_id for r in resolved]
        try:
            exec_key = self._prepare_execution(report, test_keys)
        except XrayClientError as e:
            logger.error(f"Failed to prepare Test Execution: {e}")
            outcome.errors.append(str(e))
            return outcome
        outcome.test_execution_key = exec_key

        payload = build_xray_payload(
            replace(report, test_exec_key=exec_key),
            cloud=self._settings.is_cloud,
            results=resolved,
        )
        try:
            self._client.import_execution_results(payload)
        except XrayClientError as e:
            logger.error(f"Failed to import results into {exec_key}: {e}")
            outcome.errors.append(str(e))
            return outcome
        outcome.reported = test_keys

        self._client.add_comment(exec_key, format_results_comment(resolved))
        self._client.update_test_execution_status(exec_key, report.overall_status)

        if self._settings.comment_test_cases:
            for result in resolved:
                self._client.add_test_execution_comment(
                    result.test_id, result.status, result.duration_ms, result.comment
                )
                self._client.update_test_case_status(result.test_id, result.status)

        for result in resolved:
            for evidence_path in result.evidence:
                self._client.attach_file(exec_key, evidence_path)

        if output_dir:
            write_execution_key(output_dir, exec_key)

        logger.info(
            f"Xray reporting complete: {len(outcome.reported)} results in {exec_key}"
            + (f", {len(outcome.skipped_keys)} skipped" if outcome.skipped_keys else "")
        )
        return outcome

    def _resolve_test_cases(
        self,
        results: List[TestResult],
        outcome: PublishOutcome,
    ) -> List[TestResult]:
        """Return results re-keyed to their available Test issues."""
        resolved: List[TestResult] = []
        for result in results:
            title = result.title or f"Automated Test: {result.test_id}"
            if self._client.can_create_issues:
                key = self._client.ensure_test_case_exists(result.test_id, title)
            else:
                key = result.test_id if self._client.find_test_case(result.test_id) else None

            if not key:
                logger.warning(f"Test case {result.test_id} unavailable, skipping its result")
                outcome.skipped_keys.append(result.test_id)
                continue
            if key != result.test_id:
                logger.info(f"Reporting {result.test_id} under created test case {key}")
                result = replace(result, test_id=key)
            resolved.append(result)
        return resolved

    def _prepare_execution(self, report: ExecutionReport, test_keys: List[str]) -> str:
        existing_key = self._settings.test_execution_key or report.test_exec_key
        if existing_key:
            logger.info(f"Using existing Test Execution: {existing_key}")
            self._client.add_tests_to_execution(existing_key, test_keys)
            return existing_key

        summary = report.summary or (
            f"Automated Test Execution - {datetime.now().isoformat(timespec='seconds')}"
        )
        return self._client.create_test_execution(
            summary=summary,
            test_ids=test_keys,
            description=self._describe(report),
            environment=report.environment or self._settings.environment,
            fix_version=report.fix_version or self._settings.version,
            test_plan_key=report.test_plan_key or self._settings.test_plan_key,
        )

    def _describe(self, report: ExecutionReport) -> str:
        lines = [
            report.description or f"Automated test execution from {self._settings.reporter}",
            "",
        ]
        if report.start_time:
            lines.append(f"Started: {report.start_time.isoformat(timespec='seconds')}")
        lines.append(f"Duration: {report.duration_sec:.2f}s")
        lines.append(
            f"Results: {report.total_tests} total, {report.passed} passed, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        test_plan_key = report.test_plan_key or self._settings.test_plan_key
        if test_plan_key:
            lines.append(f"Test Plan: {test_plan_key}")
        return "\n".join(lines)
