"""
Jira Diagnostics Module.

Read-only checks that help set up Xray reporting: can we authenticate,
which projects and issue types are visible, and does the configured project
offer the Xray issue types ("Test", "Test Execution").
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from src.config.settings import XraySettings
from src.jira_client.xray_client import XrayClient, XrayClientError

XRAY_ISSUE_TYPES = ("Test", "Test Execution", "Test Set", "Test Plan")


class JiraDiagnostics:
    """
    Runs connectivity and configuration checks against Jira.

    Each check is best-effort: failures are logged and reported as empty
    results instead of raising.
    """

    def __init__(self, settings: XraySettings, client: Optional[XrayClient] = None) -> None:
        self._settings = settings
        self._client = client or XrayClient(
            base_url=settings.base_url,
            project_key=settings.project_key,
            username=settings.username,
            api_token=settings.api_token,
            timeout_sec=settings.timeout_sec,
            verify_ssl=settings.verify_ssl,
            allow_create=False,
        )

    def check_connection(self) -> Optional[Dict[str, Any]]:
        """Return the authenticated user, or None when the connection fails."""
        logger.info(f"Checking Jira connection: {self._settings.base_url}")
        try:
            user = self._client.get("/rest/api/2/myself")
        except XrayClientError as e:
            logger.error(f"Jira connection failed: {e}")
            return None
        name = user.get("displayName") or user.get("name") or "unknown"
        logger.info(f"Connected to Jira as: {name}")
        return user

    def check_projects(self) -> List[Dict[str, str]]:
        """List the visible projects as ``{"key", "name"}`` entries."""
        try:
            projects = self._client.get("/rest/api/2/project")
        except XrayClientError as e:
            logger.error(f"Failed to list projects: {e}")
            return []

        listed = [{"key": p.get("key", ""), "name": p.get("name", "")} for p in projects or []]
        logger.info(f"Found {len(listed)} accessible projects")
        for project in listed:
            logger.debug(f"  {project['key']}: {project['name']}")

        keys = {p["key"] for p in listed}
        if self._settings.project_key and self._settings.project_key not in keys:
            logger.warning(
                f"Configured project {self._settings.project_key} is not accessible"
            )
        return listed

    def check_issue_types(self) -> List[str]:
        """List the issue type names visible to the user."""
        try:
            issue_types = self._client.get("/rest/api/2/issuetype")
        except XrayClientError as e:
            logger.error(f"Failed to list issue types: {e}")
            return []

        names = [t.get("name", "") for t in issue_types or []]
        logger.info(f"Available issue types: {names}")
        missing = [name for name in ("Test", "Test Execution") if name not in names]
        if missing:
            logger.warning(f"Xray issue types not available: {missing}")
        return names

    def check_project_details(self, project_key: str) -> Optional[Dict[str, Any]]:
        """Return key, name, lead and issue types of a project, or None."""
        try:
            project = self._client.get(f"/rest/api/2/project/{project_key}")
        except XrayClientError as e:
            logger.error(f"Failed to read project {project_key}: {e}")
            return None

        details = {
            "key": project.get("key", project_key),
            "name": project.get("name", ""),
            "lead": (project.get("lead") or {}).get("displayName", ""),
            "issue_types": [t.get("name", "") for t in project.get("issueTypes", [])],
        }
        logger.info(
            f"Project {details['key']} ({details['name']}): "
            f"issue types {details['issue_types']}"
        )
        return details

    def run_diagnostics(self) -> Dict[str, Any]:
        """
        Run every check.

        Returns:
            Dictionary with ``connected``, ``user``, ``projects``,
            ``issue_types``, ``project`` and ``xray_issue_types`` (name -> available).
        """
        missing = self._settings.missing_fields()
        if missing:
            logger.warning(f"Xray configuration incomplete, missing: {missing}")

        user = self.check_connection()
        report: Dict[str, Any] = {
            "connected": user is not None,
            "user": (user or {}).get("displayName", ""),
            "missing_settings": missing,
            "projects": [],
            "issue_types": [],
            "project": None,
            "xray_issue_types": {},
        }
        if user is None:
            return report

        report["projects"] = self.check_projects()
        report["issue_types"] = self.check_issue_types()
        if self._settings.project_key:
            project = self.check_project_details(self._settings.project_key)
            report["project"] = project
            available = project["issue_types"] if project else report["issue_types"]
            report["xray_issue_types"] = {
                name: name in available for name in XRAY_ISSUE_TYPES
            }
        return report

    def close(self) -> None:
        self._client.close()
