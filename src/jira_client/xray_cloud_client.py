"""
Xray Cloud Client.

Xray Cloud keeps test-management data outside Jira: results are imported
through ``https://xray.cloud.getxray.app/api/v2`` with a bearer token obtained
from client id/secret credentials. Jira-side operations (finding/creating
Test issues, comments, transitions, attachments) still go to the Jira Cloud
site with basic auth, through the inherited XrayClient methods.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from src.jira_client.xray_client import (
    XrayClient,
    XrayClientError,
    XrayConfig,
    extract_execution_key,
)

XRAY_CLOUD_URL = "https://xray.cloud.getxray.app"

# Xray Cloud tokens are valid for 60 minutes; refresh a bit earlier
TOKEN_TTL_SEC = 50 * 60

TEST_SET_QUERY = """
query TestSetTests($jql: String!, $limit: Int!) {
  getTestSets(jql: $jql, limit: 1) {
    results {
      tests(limit: $limit) {
        results { jira(fields: ["key"]) }
      }
    }
  }
}
"""


class XrayCloudClient(XrayClient):
    """
    Client for Jira Cloud + Xray Cloud.

    Usage::

        client = XrayCloudClient(
            base_url="https://your-site.atlassian.net",
            project_key="PROJ",
            username="you@example.com",
            api_token="jira-api-token",
            client_id="xray-client-id",
            client_secret="xray-client-secret",
        )
        client.import_execution_results(report_json)
    """

    XRAY_ENDPOINTS = {
        "authenticate": "/api/v2/authenticate",
        "import_results_xray": "/api/v2/import/execution",
        "import_results_junit": "/api/v2/import/execution/junit",
        "graphql": "/api/v2/graphql",
    }

    def __init__(
        self,
        base_url: str = "",
        project_key: str = "",
        api_token: str = "",
        username: str = "",
        client_id: str = "",
        client_secret: str = "",
        xray_url: str = XRAY_CLOUD_URL,
        timeout_sec: int = 30,
        verify_ssl: bool = True,
        allow_create: bool = True,
        config: Optional[XrayConfig] = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            project_key=project_key,
            auth_method="basic",
            api_token=api_token,
            username=username,
            timeout_sec=timeout_sec,
            verify_ssl=verify_ssl,
            allow_create=allow_create,
            config=config,
        )
        self._client_id = client_id
        self._client_secret = client_secret
        self._xray_url = xray_url.rstrip("/")
        self._xray_session: Optional[requests.Session] = None
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def is_configured(self) -> bool:
        return super().is_configured and bool(self._client_id and self._client_secret)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> str:
        """
        Obtain an Xray Cloud bearer token, reusing a cached one while valid.

        Returns:
            The access token.

        Raises:
            XrayClientError: If authentication fails or returns no token.
        """
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        logger.info("Authenticating with Xray Cloud")
        response = self._request(
            "POST",
            f"{self._xray_url}{self.XRAY_ENDPOINTS['authenticate']}",
            session=self._get_xray_session(),
            json={"client_id": self._client_id, "client_secret": self._client_secret},
        )

        if isinstance(response, dict):
            token = response.get("access_token") or response.get("token") or ""
        else:
            token = str(response or "").strip().strip('"')

        if not token:
            raise XrayClientError("No access token received from Xray Cloud")

        self._token = token
        self._token_expires_at = time.monotonic() + TOKEN_TTL_SEC
        logger.info("Xray Cloud authentication successful")
        return token

    def _get_xray_session(self) -> requests.Session:
        if self._xray_session is None:
            self._xray_session = requests.Session()
            self._xray_session.verify = self._config.verify_ssl
            self._xray_session.headers.update({
                "Content-Type": "application/json",
                "Accept": "application/json",
            })
        return self._xray_session

    def _xray_request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Send an authenticated request to the Xray Cloud API."""
        token = self.authenticate()
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        return self._request(
            method,
            f"{self._xray_url}{endpoint}",
            session=self._get_xray_session(),
            headers=headers,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def import_execution_results(
        self,
        results_json: Dict[str, Any],
    ) -> Dict[str, Any]:
        logger.info(
            f"Importing {len(results_json.get('tests', []))} results to Xray Cloud"
        )
        response = self._xray_request(
            "POST", self.XRAY_ENDPOINTS["import_results_xray"], json=results_json
        )
        result = response if isinstance(response, dict) else {"response": response}
        logger.info(f"Results imported: {extract_execution_key(result) or 'N/A'}")
        return result

    def import_junit_results(
        self,
        junit_xml_path: str,
        project_key: Optional[str] = None,
        test_exec_key: Optional[str] = None,
        test_plan_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        path = Path(junit_xml_path)
        if not path.is_file():
            raise XrayClientError(f"JUnit results file not found: {junit_xml_path}")
        logger.info(f"Importing JUnit results to Xray Cloud from: {path}")

        response = self._xray_request(
            "POST",
            self.XRAY_ENDPOINTS["import_results_junit"],
            params=self._junit_params(project_key, test_exec_key, test_plan_key),
            data=path.read_bytes(),
            headers={"Content-Type": "text/xml"},
        )
        result = response if isinstance(response, dict) else {"response": response}
        logger.info(f"JUnit results imported: {extract_execution_key(result) or 'N/A'}")
        return result

    # ------------------------------------------------------------------
    # Test Executions
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
        Create a Test Execution by importing the tests with status TODO.

        Xray Cloud has no REST endpoint for associating tests with an
        execution, so the import creates and populates it in one call.

        Raises:
            XrayClientError: If the import fails or returns no key.
        """
        logger.info(f"Creating Test Execution on Xray Cloud: '{summary}'")

        info: Dict[str, Any] = {
            "summary": summary,
            "project": self._config.project_key,
        }
        if description:
            info["description"] = description
        if environment:
            info["testEnvironments"] = [environment]
        if fix_version:
            info["version"] = fix_version
        if test_plan_key:
            info["testPlanKey"] = test_plan_key

        response = self.import_execution_results({
            "info": info,
            "tests": [{"testKey": key, "status": "TODO"} for key in test_ids],
        })
        exec_key = extract_execution_key(response)
        if not exec_key:
            raise XrayClientError("Xray Cloud import returned no Test Execution key")
        logger.info(f"Test Execution created: {exec_key}")
        return exec_key

    def add_tests_to_execution(self, test_exec_key: str, test_ids: List[str]) -> None:
        self.import_execution_results({
            "testExecutionKey": test_exec_key,
            "tests": [{"testKey": key, "status": "TODO"} for key in test_ids],
        })
        logger.info(f"Associated {len(test_ids)} tests with {test_exec_key}")

    # ------------------------------------------------------------------
    # Test Sets
    # ------------------------------------------------------------------

    def fetch_test_set(self, test_set_key: str) -> List[str]:
        """Fetch Test keys of a Test Set through the Xray Cloud GraphQL API."""
        logger.info(f"Fetching tests from Test Set (Xray Cloud): {test_set_key}")
        response = self._xray_request(
            "POST",
            self.XRAY_ENDPOINTS["graphql"],
            json={
                "query": TEST_SET_QUERY,
                "variables": {"jql": f"key = {test_set_key}", "limit": 100},
            },
        )

        if isinstance(response, dict) and response.get("errors"):
            raise XrayClientError(f"GraphQL error: {response['errors']}")

        test_sets = (
            response.get("data", {}).get("getTestSets", {}).get("results", [])
            if isinstance(response, dict) else []
        )
        test_ids: List[str] = []
        for test_set in test_sets:
            for test in test_set.get("tests", {}).get("results", []):
                key = (test.get("jira") or {}).get("key")
                if key:
                    test_ids.append(key)

        logger.info(f"Fetched {len(test_ids)} tests from {test_set_key}: {test_ids}")
        return test_ids

    def close(self) -> None:
        super().close()
        if self._xray_session is not None:
            self._xray_session.close()
            self._xray_session = None
        self._token = None
