"""
Runtime Settings Module.

Builds typed settings for the test session from three layers, lowest first:

1. Dataclass defaults.
2. ``config/test_environment.yaml`` (or the ``.example`` file) via ConfigLoader.
3. Environment variables, optionally read from a ``.env`` file.

Two settings objects are exposed:
- EnvironmentSettings: browser, auxiliary services (Azure, email, SFTP), logging.
- XraySettings: Jira / Xray reporting.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

from src.config.loader import ConfigLoader, ConfigurationError

TRUE_VALUES = {"true", "1", "yes", "on"}

ENVIRONMENT_FILES = ("test_environment.yaml", "test_environment.example.yaml")

# XraySettings field -> environment variable
XRAY_ENV_VARS = {
    "base_url": "JIRA_BASE_URL",
    "username": "JIRA_USERNAME",
    "api_token": "JIRA_API_TOKEN",
    "project_key": "JIRA_PROJECT_KEY",
    "test_execution_key": "JIRA_TEST_EXECUTION_KEY",
    "test_plan_key": "JIRA_TEST_PLAN_KEY",
    "environment": "JIRA_ENVIRONMENT",
    "version": "JIRA_VERSION",
    "reporter": "JIRA_REPORTER",
    "deployment": "XRAY_DEPLOYMENT",
    "client_id": "XRAY_CLIENT_ID",
    "client_secret": "XRAY_CLIENT_SECRET",
    "read_only": "XRAY_READ_ONLY",
    "create_test_cases": "XRAY_CREATE_TEST_CASES",
    "comment_test_cases": "XRAY_COMMENT_TEST_CASES",
    "timeout_sec": "XRAY_TIMEOUT_SEC",
    "verify_ssl": "XRAY_VERIFY_SSL",
}


def _env_str(name: str, default: str = "") -> str:
    value = os.environ.get(name)
    return value if value not in (None, "") else default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Environment variable {name} must be an integer, got '{value}'"
        ) from e


@dataclass
class AzureSettings:
    """Azure Blob Storage connection settings."""

    connection_string: str = ""
    container_name: str = "test-container"

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string)


@dataclass
class EmailSettings:
    """SMTP / IMAP settings for email validation."""

    host: str = "smtp.gmail.com"
    port: int = 587
    user: str = ""
    password: str = ""
    secure: bool = False
    imap_host: str = ""
    imap_port: int = 993

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    @property
    def resolved_imap_host(self) -> str:
        """IMAP host, derived from the SMTP host when not set explicitly."""
        return self.imap_host or self.host.replace("smtp", "imap", 1)


@dataclass
class SftpSettings:
    """SFTP server settings."""

    host: str = ""
    port: int = 22
    username: str = ""
    password: str = ""
    private_key_path: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username)


@dataclass
class LoggingSettings:
    """Log sink settings."""

    level: str = "INFO"
    to_file: bool = False
    file_path: str = "./logs/test.log"


@dataclass
class EnvironmentSettings:
    """
    Settings for the browser test environment and auxiliary services.

    Attributes:
        environment: Environment name ("local", "ci", "staging", ...).
        base_url: Application base URL for Page Objects.
        headless: Run browsers headless.
        slow_mo: Delay between browser actions in milliseconds.
        timeout: Default action / navigation timeout in milliseconds.
    """

    environment: str = "local"
    base_url: str = "https://www.google.com"
    headless: bool = False
    slow_mo: int = 0
    timeout: int = 30000
    azure: AzureSettings = field(default_factory=AzureSettings)
    email: EmailSettings = field(default_factory=EmailSettings)
    sftp: SftpSettings = field(default_factory=SftpSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def is_ci(self) -> bool:
        return _env_bool("CI") or self.environment == "ci"

    def is_local(self) -> bool:
        return self.environment == "local"

    def warnings(self) -> List[str]:
        """Return a warning for each auxiliary service that is not configured."""
        messages = []
        if not self.azure.is_configured:
            messages.append(
                "AZURE_STORAGE_CONNECTION_STRING is not set. "
                "Azure Blob Storage utilities will not work."
            )
        if not self.email.is_configured:
            messages.append(
                "Email credentials are not set. Email validation utilities will not work."
            )
        if not self.sftp.is_configured:
            messages.append(
                "SFTP credentials are not set. SFTP utilities will not work."
            )
        return messages

    def validate(self) -> None:
        """
        Validate required settings.

        Raises:
            ConfigurationError: If the base URL is missing.
        """
        if not self.base_url:
            raise ConfigurationError("Environment configuration errors: BASE_URL is required")
        for message in self.warnings():
            logger.warning(message)


@dataclass
class XraySettings:
    """
    Settings for reporting to Jira Xray.

    ``deployment`` selects the Xray flavour: "server" (Server/Data Center,
    Jira basic auth) or "cloud" (Xray Cloud, client id/secret).
    Cloud still needs the Jira username and API token: Test issues are
    looked up and created on the Jira site with basic auth.
    """

    base_url: str = ""
    username: str = ""
    api_token: str = ""
    project_key: str = ""
    test_execution_key: str = ""
    test_plan_key: str = ""
    environment: str = "CI/CD"
    version: str = "1.0.0"
    reporter: str = "Pytest Automation"
    deployment: str = "server"
    client_id: str = ""
    client_secret: str = ""
    read_only: bool = False
    create_test_cases: bool = True
    comment_test_cases: bool = False
    timeout_sec: int = 30
    verify_ssl: bool = True

    SERVER_REQUIRED = ("base_url", "username", "api_token", "project_key")
    CLOUD_REQUIRED = SERVER_REQUIRED + ("client_id", "client_secret")

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self.deployment = (self.deployment or "server").lower()

    @property
    def is_cloud(self) -> bool:
        return self.deployment == "cloud"

    @property
    def can_create_issues(self) -> bool:
        """Whether the reporter may create Test issues that don't exist yet."""
        return self.create_test_cases and not self.read_only

    @property
    def jira_api_url(self) -> str:
        return f"{self.base_url}/rest/api/2"

    def missing_fields(self) -> List[str]:
        """Names of the required fields that are empty for this deployment."""
        required = self.CLOUD_REQUIRED if self.is_cloud else self.SERVER_REQUIRED
        return [name for name in required if not getattr(self, name)]

    def missing_env_vars(self) -> List[str]:
        """Environment variables that would fill the missing required fields."""
        return [XRAY_ENV_VARS[name] for name in self.missing_fields()]

    def validate(self) -> bool:
        """Return True when every required field is present."""
        return not self.missing_fields()


def _read_config_file(loader: ConfigLoader, config_file: Optional[str]) -> Dict[str, Any]:
    candidates = (config_file,) if config_file else ENVIRONMENT_FILES
    for candidate in candidates:
        try:
            return loader.load_environment(candidate, environment=os.environ.get("ENVIRONMENT"))
        except FileNotFoundError:
            continue
    if config_file:
        raise ConfigurationError(f"Configuration file not found: {config_file}")
    logger.debug("No test environment file found, using defaults and environment")
    return {}


def build_environment_settings(data: Dict[str, Any]) -> EnvironmentSettings:
    """Build EnvironmentSettings from file data overlaid with environment variables."""
    browser = data.get("browser", {})
    azure = data.get("azure", {})
    email = data.get("email", {})
    sftp = data.get("sftp", {})
    log_cfg = data.get("logging", {})

    settings = EnvironmentSettings(
        environment=_env_str("ENVIRONMENT", data.get("environment", "local")),
        base_url=_env_str("BASE_URL", data.get("base_url", "https://www.google.com")),
        headless=_env_bool("HEADLESS", browser.get("headless", False)) or _env_bool("CI"),
        slow_mo=_env_int("SLOW_MO", browser.get("slow_mo", 0)),
        timeout=_env_int("TIMEOUT", browser.get("timeout", 30000)),
        azure=AzureSettings(
            connection_string=_env_str(
                "AZURE_STORAGE_CONNECTION_STRING", azure.get("connection_string", "")
            ),
            container_name=_env_str(
                "AZURE_STORAGE_CONTAINER_NAME", azure.get("container_name", "test-container")
            ),
        ),
        email=EmailSettings(
            host=_env_str("EMAIL_HOST", email.get("host", "smtp.gmail.com")),
            port=_env_int("EMAIL_PORT", email.get("port", 587)),
            user=_env_str("EMAIL_USER", email.get("user", "")),
            password=_env_str("EMAIL_PASSWORD", email.get("password", "")),
            secure=_env_bool("EMAIL_SECURE", email.get("secure", False)),
            imap_host=_env_str("EMAIL_IMAP_HOST", email.get("imap_host", "")),
            imap_port=_env_int("EMAIL_IMAP_PORT", email.get("imap_port", 993)),
        ),
        sftp=SftpSettings(
            host=_env_str("SFTP_HOST", sftp.get("host", "")),
            port=_env_int("SFTP_PORT", sftp.get("port", 22)),
            username=_env_str("SFTP_USERNAME", sftp.get("username", "")),
            password=_env_str("SFTP_PASSWORD", sftp.get("password", "")),
            private_key_path=_env_str(
                "SFTP_PRIVATE_KEY_PATH", sftp.get("private_key_path", "")
            ),
        ),
        logging=LoggingSettings(
            level=_env_str("LOG_LEVEL", log_cfg.get("level", "INFO")).upper(),
            to_file=_env_bool("LOG_TO_FILE", log_cfg.get("to_file", False)),
            file_path=_env_str("LOG_FILE_PATH", log_cfg.get("file_path", "./logs/test.log")),
        ),
    )
    settings.validate()
    return settings


def build_xray_settings(data: Dict[str, Any]) -> XraySettings:
    """Build XraySettings from the ``xray`` file section overlaid with environment variables."""
    xray = data.get("xray") or {}
    defaults = XraySettings()
    values: Dict[str, Any] = {}
    for name, env_name in XRAY_ENV_VARS.items():
        default = getattr(defaults, name)
        file_value = xray.get(name)
        if file_value is not None:
            default = file_value
        if isinstance(getattr(defaults, name), bool):
            values[name] = _env_bool(env_name, default)
        elif isinstance(getattr(defaults, name), int):
            values[name] = _env_int(env_name, default)
        else:
            values[name] = _env_str(env_name, str(default))
    return XraySettings(**values)


_settings_cache: Dict[str, Any] = {}


def _load_file_data(config_file: Optional[str], config_dir: Optional[Path]) -> Dict[str, Any]:
    load_dotenv(override=False)
    loader = ConfigLoader(config_dir) if config_dir else ConfigLoader()
    return _read_config_file(loader, config_file)


def load_settings(
    config_file: Optional[str] = None,
    config_dir: Optional[Path] = None,
) -> EnvironmentSettings:
    """
    Load the environment settings once per process.

    Args:
        config_file: Explicit config file (otherwise test_environment.yaml,
                     falling back to the example file).
        config_dir: Directory to search for the config file.

    Returns:
        Cached EnvironmentSettings instance.
    """
    if "environment" not in _settings_cache:
        data = _load_file_data(config_file, config_dir)
        _settings_cache["environment"] = build_environment_settings(data)
    return _settings_cache["environment"]


def load_xray_settings(
    config_file: Optional[str] = None,
    config_dir: Optional[Path] = None,
) -> XraySettings:
    """Load the Xray reporting settings once per process."""
    if "xray" not in _settings_cache:
        data = _load_file_data(config_file, config_dir)
        _settings_cache["xray"] = build_xray_settings(data)
    return _settings_cache["xray"]


def reset_settings() -> None:
    """Drop cached settings so the next load re-reads file and environment."""
    _settings_cache.clear()
