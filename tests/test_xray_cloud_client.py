"""
Tests for the Xray Cloud client and the client factory.

The Jira and Xray Cloud HTTP sessions are replaced with mocks.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import MagicMock, patch

import pytest

from src.config.settings import XraySettings
from src.jira_client.factory import create_xray_client
from src.jira_client.xray_client import XrayClient, XrayClientError
from src.jira_client.xray_cloud_client import XRAY_CLOUD_URL, XrayCloudClient


def _response(data: Any = None, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = json.dumps(data).encode() if data is not None else b""
    response.json.return_value = data
    response.text = json.dumps(data) if data is not None else ""
    return response


@pytest.fixture
def cloud_client() -> XrayCloudClient:
    """Cloud client with a mocked Xray session; the first call authenticates."""
    client = XrayCloudClient(
        base_url="https://example.atlassian.net",
        project_key="DEMO",
        username="bot@example.com",
        api_token="jira-token",
        client_id="id",
        client_secret="secret",
    )
    client._xray_session = MagicMock()
    return client


def _xray_calls(client: XrayCloudClient) -> List[Dict[str, Any]]:
    return [call.kwargs for call in client._xray_session.request.call_args_list]


class TestXrayCloudAuthentication:

    def test_not_configured_without_client_credentials(self) -> None:
        client = XrayCloudClient(
            base_url="https://example.atlassian.net", project_key="DEMO"
        )
        assert not client.is_configured

    def test_authenticate_plain_string_token(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.return_value = _response("abc123")

        assert cloud_client.authenticate() == "abc123"

        call = _xray_calls(cloud_client)[0]
        assert call["url"] == f"{XRAY_CLOUD_URL}/api/v2/authenticate"
        assert call["json"] == {"client_id": "id", "client_secret": "secret"}

    def test_authenticate_object_token(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.return_value = _response({"access_token": "xyz"})
        assert cloud_client.authenticate() == "xyz"

    def test_token_cached(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.return_value = _response("abc123")

        cloud_client.authenticate()
        cloud_client.authenticate()

        assert cloud_client._xray_session.request.call_count == 1

    def test_token_refreshed_after_expiry(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.return_value = _response("abc123")

        with patch("src.jira_client.xray_cloud_client.time.monotonic", return_value=0.0):
            cloud_client.authenticate()
        with patch("src.jira_client.xray_cloud_client.time.monotonic", return_value=3001.0):
            cloud_client.authenticate()

        assert cloud_client._xray_session.request.call_count == 2

    def test_empty_token_raises(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.return_value = _response("")
        with pytest.raises(XrayClientError, match="No access token"):
            cloud_client.authenticate()


class TestXrayCloudOperations:

    def test_import_execution_results_uses_bearer_token(
        self, cloud_client: XrayCloudClient
    ) -> None:
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response({"id": "1", "key": "DEMO-300"}),
        ]

        result = cloud_client.import_execution_results({"tests": []})

        assert result["key"] == "DEMO-300"
        call = _xray_calls(cloud_client)[1]
        assert call["url"] == f"{XRAY_CLOUD_URL}/api/v2/import/execution"
        assert call["headers"]["Authorization"] == "Bearer abc123"

    def test_import_junit_results_sends_xml_body(
        self, cloud_client: XrayCloudClient, tmp_path: Path
    ) -> None:
        junit = tmp_path / "junit.xml"
        junit.write_text("<testsuite/>", encoding="utf-8")
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response({"key": "DEMO-301"}),
        ]

        cloud_client.import_junit_results(str(junit), test_exec_key="DEMO-300")

        call = _xray_calls(cloud_client)[1]
        assert call["url"].endswith("/api/v2/import/execution/junit")
        assert call["data"] == b"<testsuite/>"
        assert call["headers"]["Content-Type"] == "text/xml"
        assert call["params"] == {"projectKey": "DEMO", "testExecKey": "DEMO-300"}

    def test_create_test_execution_imports_todo_tests(
        self, cloud_client: XrayCloudClient
    ) -> None:
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response({"key": "DEMO-400"}),
        ]

        key = cloud_client.create_test_execution(
            "Nightly", ["DEMO-1", "DEMO-2"], environment="Staging", test_plan_key="DEMO-100"
        )

        assert key == "DEMO-400"
        payload = _xray_calls(cloud_client)[1]["json"]
        assert payload["info"]["project"] == "DEMO"
        assert payload["info"]["testEnvironments"] == ["Staging"]
        assert payload["info"]["testPlanKey"] == "DEMO-100"
        assert payload["tests"] == [
            {"testKey": "DEMO-1", "status": "TODO"},
            {"testKey": "DEMO-2", "status": "TODO"},
        ]

    def test_create_test_execution_without_key_raises(
        self, cloud_client: XrayCloudClient
    ) -> None:
        cloud_client._xray_session.request.side_effect = [_response("abc123"), _response({})]
        with pytest.raises(XrayClientError):
            cloud_client.create_test_execution("Nightly", ["DEMO-1"])

    def test_add_tests_to_execution(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response({"key": "DEMO-400"}),
        ]

        cloud_client.add_tests_to_execution("DEMO-400", ["DEMO-3"])

        payload = _xray_calls(cloud_client)[1]["json"]
        assert payload["testExecutionKey"] == "DEMO-400"

    def test_fetch_test_set(self, cloud_client: XrayCloudClient) -> None:
        graphql = {
            "data": {
                "getTestSets": {
                    "results": [
                        {"tests": {"results": [
                            {"jira": {"key": "DEMO-1"}},
                            {"jira": {"key": "DEMO-2"}},
                        ]}}
                    ]
                }
            }
        }
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response(graphql),
        ]

        assert cloud_client.fetch_test_set("DEMO-500") == ["DEMO-1", "DEMO-2"]
        variables = _xray_calls(cloud_client)[1]["json"]["variables"]
        assert variables["jql"] == "key = DEMO-500"

    def test_fetch_test_set_graphql_error(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._xray_session.request.side_effect = [
            _response("abc123"),
            _response({"errors": [{"message": "bad query"}]}),
        ]
        with pytest.raises(XrayClientError, match="GraphQL"):
            cloud_client.fetch_test_set("DEMO-500")

    def test_jira_operations_use_jira_site(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._session = MagicMock()
        cloud_client._session.request.return_value = _response({"id": "1"})

        assert cloud_client.add_comment("DEMO-1", "hello")

        url = cloud_client._session.request.call_args.kwargs["url"]
        assert url == "https://example.atlassian.net/rest/api/2/issue/DEMO-1/comment"
        cloud_client._xray_session.request.assert_not_called()

    def test_close_drops_token(self, cloud_client: XrayCloudClient) -> None:
        cloud_client._token = "abc123"
        session = cloud_client._xray_session

        cloud_client.close()

        session.close.assert_called_once()
        assert cloud_client._token is None


# ---------------------------------------------------------------------------
# Factory Tests
# ---------------------------------------------------------------------------


class TestCreateXrayClient:

    def test_server_client(self) -> None:
        settings = XraySettings(
            base_url="https://jira.example.com",
            project_key="DEMO",
            username="bot",
            api_token="secret",
            timeout_sec=10,
        )

        client = create_xray_client(settings)

        assert type(client) is XrayClient
        assert client.config.timeout_sec == 10
        assert client.can_create_issues

    def test_cloud_client(self) -> None:
        settings = XraySettings(
            base_url="https://example.atlassian.net",
            project_key="DEMO",
            deployment="cloud",
            client_id="id",
            client_secret="secret",
        )

        client = create_xray_client(settings)

        assert isinstance(client, XrayCloudClient)
        assert client.is_configured

    def test_read_only_disables_creation(self) -> None:
        settings = XraySettings(
            base_url="https://jira.example.com", project_key="DEMO", read_only=True
        )
        assert not create_xray_client(settings).can_create_issues

    def test_unknown_deployment(self) -> None:
        settings = XraySettings(deployment="on-prem")
        with pytest.raises(ValueError, match="Unsupported Xray deployment"):
            create_xray_client(settings)
