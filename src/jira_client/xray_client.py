"""
Xray REST API Client.

Client for Jira (REST API v2) with the Xray Server/Data Center API:
- Authentication (basic with username + API token, or bearer token).
- Finding and creating Test issues.
- Creating Test Executions and associating tests with them.
- Importing execution results (Xray JSON or JUnit XML).
- Comments, status transitions and attachments on issues.
- Fetching Test IDs from Test Sets.

Lookups and decorations (find, comment, transition, attach) are best-effort
and return None/False on failure. Operations that define the execution
(create, associate, import) raise XrayClientError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger


class XrayClientError(Exception):
    """Raised when an Xray API operation fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class XrayConfig:
    """Configuration for the Xray API client."""

    base_url: str
    project_key: str
    auth_method: str = "basic"  # "basic" or "token"
    api_token: str = ""
    username: str = ""
    password: str = ""
    timeout_sec: int = 30
    verify_ssl: bool = True
    allow_create: bool = True


# Xray status -> Jira workflow status used for Test issue transitions
JIRA_STATUS_MAP = {
    "PASSED": "Done",
    "FAILED": "In Progress",
    "EXECUTING": "In Progress",
    "SKIPPED": "To Do",
    "TODO": "To Do",
}


def extract_execution_key(response: Any) -> str:
    """
    Pull the Test Execution key out of an Xray import/create response.

    Server returns ``{"testExecIssue": {"key": ...}}``; Cloud and the Jira
    issue API return ``{"key": ...}``.
    """
    if not isinstance(response, dict):
        return ""
    if isinstance(response.get("testExecIssue"), dict):
        return response["testExecIssue"].get("key", "")
    return response.get("key") or response.get("testExecutionKey") or ""


class XrayClient:
    """
    Client for Jira + Xray Server/Data Center.

    Usage::

        client = XrayClient(
            base_url="https://jira.example.com",
            project_key="PROJ",
            username="automation",
            api_token="your-token-here",
        )
        key = client.ensure_test_case_exists("PROJ-101", "Search returns results")
        exec_key = client.create_test_execution("Nightly run", [key])
    """

    ENDPOINTS = {
        "issue": "/rest/api/2/issue",
        "issue_detail": "/rest/api/2/issue/{key}",
        "issue_comment": "/rest/api/2/issue/{key}/comment",
        "issue_transitions": "/rest/api/2/issue/{key}/transitions",
        "issue_attachments": "/rest/api/2/issue/{key}/attachments",
        "search": "/rest/api/2/search",
        "test_set_tests": "/rest/raven/1.0/api/testset/{test_set_key}/test",
        "test_execution_tests": "/rest/raven/1.0/api/testexec/{key}/test",
        "test_plan_executions": "/rest/raven/1.0/api/testplan/{key}/testexecution",
        "import_results_xray": "/rest/raven/1.0/import/execution",
        "import_results_junit": "/rest/raven/1.0/import/execution/junit",
    }

    def __init__(
        self,
        base_url: str = "",
        project_key: str = "",
        auth_method: str = "basic",
        api_token: str = "",
        username: str = "",
        password: str = "",
        timeout_sec: int = 30,
        verify_ssl: bool = True,
        allow_create: bool = True,
        config: Optional[XrayConfig] = None,
    ) -> None:
        """
        Initialize the Xray client.

        Args:
            base_url: Jira instance base URL.
            project_key: Jira project key (e.g., "PROJ").
            auth_method: "basic" (username + API token/password) or "token" (bearer).
            api_token: API token (basic auth password, or bearer token).
            username: Username for basic auth.
            password: Password for basic auth when no API token is used.
            timeout_sec: Request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            allow_create: Whether Test issues may be created when missing.
            config: Optional XrayConfig dataclass (overrides individual params).
        """
        if config:
            config.base_url = config.base_url.rstrip("/")
            self._config = config
        else:
            self._config = XrayConfig(
                base_url=base_url.rstrip("/"),
                project_key=project_key,
                auth_method=auth_method,
                api_token=api_token,
                username=username,
                password=password,
                timeout_sec=timeout_sec,
                verify_ssl=verify_ssl,
                allow_create=allow_create,
            )

        self._session: Optional[requests.Session] = None
        self._can_create_issues = self._config.allow_create
        logger.info(
            f"{type(self).__name__} initialized: project={self._config.project_key}, "
            f"url={self._config.base_url}"
        )

    @property
    def config(self) -> XrayConfig:
        return self._config

    @property
    def is_configured(self) -> bool:
        """Check if the client has minimum configuration to operate."""
        return bool(self._config.base_url and self._config.project_key)

    @property
    def can_create_issues(self) -> bool:
        """False when creation is disabled by config or after a failed attempt."""
        return self._can_create_issues

    def _get_session(self) -> requests.Session:
        """Get or create an HTTP session with authentication headers."""
        if self._session is None:
            self._session = requests.Session()
            self._session.verify = self._config.verify_ssl
            self._session.headers.update({
                "Content-Type": "application/json",
                "Accept": "application/json",
            })

            if self._config.auth_method == "token":
                self._session.headers["Authorization"] = (
                    f"Bearer {self._config.api_token}"
                )
            elif self._config.auth_method == "basic":
                self._session.auth = (
                    self._config.username,
                    self._config.api_token or self._config.password,
                )

        return self._session

    def _url(self, endpoint: str) -> str:
        return f"{self._config.base_url}{endpoint}"

    def _request(
        self,
        method: str,
        endpoint: str,
        session: Optional[requests.Session] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET, POST, PUT).
            endpoint: API endpoint path, or an absolute URL.
            session: Session to send on (defaults to the Jira session).
            **kwargs: Additional arguments for requests (json, data, params, files, headers).

        Returns:
            Parsed JSON response ({} for empty bodies).

        Raises:
            XrayClientError: If the request fails.
        """
        session = session or self._get_session()
        url = endpoint if endpoint.startswith("http") else self._url(endpoint)
        logger.debug(f"Xray API {method} {url}")

        try:
            response = session.request(
                method=method,
                url=url,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            body = e.response.text[:500] if e.response is not None else ""
            logger.error(f"Xray API HTTP error: {method} {url} (status={status_code}) {body}")
            raise XrayClientError(
                f"Xray API request failed: {e}", status_code=status_code
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Xray API connection error: {e}")
            raise XrayClientError(f"Cannot connect to Jira: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Xray API timeout: {e}")
            raise XrayClientError(
                f"Jira API request timed out after {self._config.timeout_sec}s"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Xray API unexpected error: {e}")
            raise XrayClientError(f"Unexpected error: {e}") from e

        logger.debug(f"Xray API call successful: {method} {url}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"response": response.text}

    def get(self, endpoint: str, **params: Any) -> Any:
        """GET a Jira REST endpoint relative to the base URL."""
        return self._request("GET", endpoint, params=params or None)

    # ------------------------------------------------------------------
    # Test Case Operations
    # ------------------------------------------------------------------

    def find_test_case(self, test_key: str) -> Optional[Dict[str, Any]]:
        """
        Look up a Test issue by key.

        Args:
            test_key: Jira issue key (e.g., "PROJ-101").

        Returns:
            The issue JSON, or None when it doesn't exist or can't be read.
        """
        endpoint = self.ENDPOINTS["issue_detail"].format(key=test_key)
        try:
            issue = self._request("GET", endpoint)
        except XrayClientError as e:
            logger.info(f"Test case {test_key} not found ({e.status_code or 'no response'})")
            return None

        if not isinstance(issue, dict) or not issue.get("key"):
            logger.info(f"Test case not found: {test_key}")
            return None

        issue_type = issue.get("fields", {}).get("issuetype", {}).get("name", "unknown")
        logger.info(f"Found existing test case: {test_key} (Type: {issue_type})")
        return issue

    def create_test_case(
        self,
        test_key: str,
        title: str,
        description: str = "",
    ) -> Optional[str]:
        """
        Try to create a Test issue for an automated test.

        Jira assigns the new key; the requested key only selects the project
        (its prefix) and is recorded in the description. A failed attempt
        disables creation for the rest of this client's life.

        Returns:
            Key of the created issue, or None if creation is disabled or failed.
        """
        if not self._can_create_issues:
            logger.info(f"Skipping test case creation for {test_key} - creation disabled")
            return None

        project_key = test_key.split("-")[0] if "-" in test_key else self._config.project_key
        payload = {
            "fields": {
                "project": {"key": project_key},
                "summary": title or test_key,
                "description": description or (
                    "Automated test case created by pytest integration\n\n"
                    f"Test Key: {test_key}\n"
                    f"Created: {datetime.now().isoformat()}"
                ),
                "issuetype": {"name": "Test"},
                "priority": {"name": "Medium"},
                "labels": ["automation"],
            }
        }

        logger.info(f"Attempting to create test case: {test_key}")
        try:
            response = self._request("POST", self.ENDPOINTS["issue"], json=payload)
        except XrayClientError as e:
            logger.warning(f"Failed to create test case {test_key}: {e}")
            logger.info("Disabling test case creation for future attempts")
            self._can_create_issues = False
            return None

        created_key = response.get("key", "") if isinstance(response, dict) else ""
        if not created_key:
            logger.warning(f"Test case creation for {test_key} returned no key")
            return None
        logger.info(f"Successfully created new test case: {created_key}")
        return created_key

    def ensure_test_case_exists(
        self,
        test_key: str,
        title: str,
        description: str = "",
    ) -> Optional[str]:
        """
        Find a Test issue, creating it when missing and creation is allowed.

        Returns:
            The key to report against, or None when the test case is unavailable.
        """
        if self.find_test_case(test_key):
            return test_key

        created_key = self.create_test_case(test_key, title, description)
        if created_key:
            return created_key

        logger.warning(f"Test case {test_key} not found and could not be created")
        return None

    def update_test_case_status(self, test_key: str, status: str) -> bool:
        """
        Move a Test issue to the Jira workflow status matching an Xray status.

        Returns:
            True when a matching transition was applied.
        """
        jira_status = JIRA_STATUS_MAP.get(status, "To Do")
        endpoint = self.ENDPOINTS["issue_transitions"].format(key=test_key)
        try:
            response = self._request("GET", endpoint)
            transitions = response.get("transitions", []) if isinstance(response, dict) else []
            match = next(
                (
                    t for t in transitions
                    if t.get("to", {}).get("name", "").lower() == jira_status.lower()
                    or t.get("name", "").lower() == jira_status.lower()
                ),
                None,
            )
            if match is None:
                logger.warning(
                    f"No transition to '{jira_status}' available for {test_key} "
                    f"(available: {[t.get('name') for t in transitions]})"
                )
                return False
            self._request("POST", endpoint, json={"transition": {"id": match["id"]}})
        except XrayClientError as e:
            logger.error(f"Failed to update test case {test_key} status: {e}")
            return False

        logger.info(f"Updated test case {test_key} status to {status} (Jira: {jira_status})")
        return True

    # ------------------------------------------------------------------
    # Comments and Attachments
    # ------------------------------------------------------------------

    def add_comment(self, issue_key: str, body: str) -> bool:
        """Add a comment to an issue. Best-effort."""
        endpoint = self.ENDPOINTS["issue_comment"].format(key=issue_key)
        try:
            self._request("POST", endpoint, json={"body": body})
        except XrayClientError as e:
            logger.error(f"Failed to add comment to {issue_key}: {e}")
            return False
        logger.info(f"Added comment to {issue_key}")
        return True

    def add_test_execution_comment(
        self,
        test_key: str,
        status: str,
        duration_ms: int,
        comment: str = "",
    ) -> bool:
        """Comment a Test issue with the outcome of one execution."""
        body = (
            "h3. Test Execution Result\n\n"
            f"*Status*: {status}\n"
            f"*Execution Time*: {duration_ms}ms\n"
            f"*Timestamp*: {datetime.now().isoformat()}\n\n"
            f"{comment or 'Test executed via pytest automation'}"
        )
        return self.add_comment(test_key, body)

    def update_test_execution_status(self, test_exec_key: str, status: str) -> bool:
        """
        Record the final status of a Test Execution as a comment.

        Returns:
            True when the comment was posted.
        """
        body = (
            "h3. Test Execution Status Updated\n\n"
            f"*Final Status*: {status}\n"
            f"*Updated At*: {datetime.now().isoformat()}"
        )
        if self.add_comment(test_exec_key, body):
            logger.info(f"Updated test execution {test_exec_key} status to {status} via comment")
            return True
        logger.warning(f"Could not update test execution status for {test_exec_key}")
        return False

    def attach_file(self, issue_key: str, file_path: str) -> bool:
        """Attach a local file to an issue. Best-effort."""
        path = Path(file_path)
        if not path.is_file():
            logger.warning(f"Attachment not found, skipping: {file_path}")
            return False

        endpoint = self.ENDPOINTS["issue_attachments"].format(key=issue_key)
        try:
            with path.open("rb") as f:
                self._request(
                    "POST",
                    endpoint,
                    files={"file": (path.name, f)},
                    # Let requests set the multipart boundary
                    headers={"X-Atlassian-Token": "no-check", "Content-Type": None},
                )
        except XrayClientError as e:
            logger.error(f"Failed to attach {path.name} to {issue_key}: {e}")
            return False
        logger.info(f"Attached {path.name} to {issue_key}")
        return True

    # ------------------------------------------------------------------
    # Test Set Operations
    # ------------------------------------------------------------------

    def fetch_test_set(self, test_set_key: str) -> List[str]:
        """
        Fetch all Test IDs from a Jira Xray Test Set.

        Args:
            test_set_key: The Jira issue key of the Test Set (e.g., "PROJ-500").

        Returns:
            List of Test ID strings.

        Raises:
            XrayClientError: If the API call fails.
        """
        logger.info(f"Fetching tests from Test Set: {test_set_key}")

        endpoint = self.ENDPOINTS["test_set_tests"].format(test_set_key=test_set_key)
        response = self._request("GET", endpoint)

        if isinstance(response, list):
            test_ids = [test["key"] for test in response if "key" in test]
        elif isinstance(response, dict):
            # Some Xray versions wrap in a dict
            tests = response.get("tests", response.get("issues", []))
            test_ids = [test["key"] for test in tests if "key" in test]
        else:
            test_ids = []

        logger.info(f"Fetched {len(test_ids)} tests from {test_set_key}: {test_ids}")
        return test_ids

    def fetch_test_set_by_name(self, test_set_name: str) -> List[str]:
        """
        Fetch Test IDs by searching for a Test Set by its summary.

        Raises:
            XrayClientError: If the Test Set is not found or API call fails.
        """
        logger.info(f"Searching for Test Set by name: '{test_set_name}'")

        jql = (
            f'project = "{self._config.project_key}" '
            f'AND issuetype = "Test Set" '
            f'AND summary ~ "{test_set_name}"'
        )
        response = self._request(
            "GET", self.ENDPOINTS["search"], params={"jql": jql, "maxResults": 1}
        )

        issues = response.get("issues", []) if isinstance(response, dict) else []
        if not issues:
            raise XrayClientError(
                f"Test Set '{test_set_name}' not found in project "
                f"{self._config.project_key}"
            )

        test_set_key = issues[0]["key"]
        logger.info(f"Found Test Set: {test_set_name} -> {test_set_key}")
        return self.fetch_test_set(test_set_key)

    # ------------------------------------------------------------------
    # Test Execution Operations
    # ------------------------------------------------------------------

    def create_test_execution(
        self,
        summary: str,
        test_ids: List[str],
        description: str = "",
        environment: str = "",
        fix_version: str = "",
        test_plan_key: str = "",
    ) -> str:
        """
        Create a new Test Execution issue in Jira.

        Args:
            summary: Summary/title of the Test Execution.
            test_ids: List of Test issue keys to include.
            description: Optional description.
            environment: Optional environment label, appended to the description.
            fix_version: Optional version label, appended to the description.
            test_plan_key: Optional Test Plan to link the execution to.

        Returns:
            Key of the created Test Execution issue.

        Raises:
            XrayClientError: If creation fails.
        """
        logger.info(f"Creating Test Execution: '{summary}' with {len(test_ids)} tests")

        labels = [
            f"{name}: {value}"
            for name, value in (("Environment", environment), ("Version", fix_version))
            if value
        ]
        if labels:
            description = f"{description}\n\n" + "\n".join(labels)
            description = description.strip()

        payload: Dict[str, Any] = {
            "fields": {
                "project": {"key": self._config.project_key},
                "summary": summary,
                "issuetype": {"name": "Test Execution"},
            }
        }
        if description:
            payload["fields"]["description"] = description

        response = self._request("POST", self.ENDPOINTS["issue"], json=payload)
        exec_key = extract_execution_key(response)
        if not exec_key:
            raise XrayClientError("Test Execution creation returned no issue key")
        logger.info(f"Test Execution created: {exec_key}")

        if test_ids:
            self.add_tests_to_execution(exec_key, test_ids)

        if test_plan_key:
            endpoint = self.ENDPOINTS["test_plan_executions"].format(key=test_plan_key)
            self._request("POST", endpoint, json={"add": [exec_key]})
            logger.info(f"Linked {exec_key} to Test Plan {test_plan_key}")

        return exec_key

    def add_tests_to_execution(self, test_exec_key: str, test_ids: List[str]) -> None:
        """
        Associate Test issues with an existing Test Execution.

        Raises:
            XrayClientError: If the association fails.
        """
        endpoint = self.ENDPOINTS["test_execution_tests"].format(key=test_exec_key)
        self._request("POST", endpoint, json={"add": test_ids})
        logger.info(f"Associated {len(test_ids)} tests with {test_exec_key}")

    def import_execution_results(
        self,
        results_json: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Import test execution results to Xray via JSON format.

        Args:
            results_json: Xray-formatted results dictionary.

        Returns:
            API response with created/updated execution info.

        Raises:
            XrayClientError: If import fails.
        """
        logger.info(f"Importing {len(results_json.get('tests', []))} results to Xray")
        response = self._request(
            "POST", self.ENDPOINTS["import_results_xray"], json=results_json
        )
        result = response if isinstance(response, dict) else {"response": response}
        logger.info(f"Results imported: {extract_execution_key(result) or 'N/A'}")
        return result

    def _junit_params(
        self,
        project_key: Optional[str],
        test_exec_key: Optional[str],
        test_plan_key: Optional[str],
    ) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if project_key or self._config.project_key:
            params["projectKey"] = project_key or self._config.project_key
        if test_exec_key:
            params["testExecKey"] = test_exec_key
        if test_plan_key:
            params["testPlanKey"] = test_plan_key
        return params

    def import_junit_results(
        self,
        junit_xml_path: str,
        project_key: Optional[str] = None,
        test_exec_key: Optional[str] = None,
        test_plan_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Import JUnit XML results to Xray.

        Args:
            junit_xml_path: Path to the JUnit XML file.
            project_key: Override project key (defaults to configured).
            test_exec_key: Existing Test Execution to update.
            test_plan_key: Test Plan to associate the execution with.

        Returns:
            API response.

        Raises:
            XrayClientError: If the file is missing or the import fails.
        """
        path = Path(junit_xml_path)
        if not path.is_file():
            raise XrayClientError(f"JUnit results file not found: {junit_xml_path}")
        logger.info(f"Importing JUnit results from: {path}")

        params = self._junit_params(project_key, test_exec_key, test_plan_key)
        with path.open("rb") as f:
            response = self._request(
                "POST",
                self.ENDPOINTS["import_results_junit"],
                params=params,
                files={"file": (path.name, f, "application/xml")},
                headers={"Content-Type": None},
            )

        result = response if isinstance(response, dict) else {"response": response}
        logger.info(f"JUnit results imported: {extract_execution_key(result) or 'N/A'}")
        return result

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.debug("Xray client session closed")
