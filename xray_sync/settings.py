"""
Sync Settings.

Resolves the settings of one synchronization run. Sources, lowest to
highest precedence:

1. Built-in defaults.
2. An optional YAML/JSON settings file (validated against
   ``sync_config_schema``).
3. Environment variables (``.env`` is loaded by the CLI beforehand).

Environment Variables:
    JIRA_BASE_URL        Jira Cloud site, e.g. https://yourdomain.atlassian.net
    JIRA_USER            Jira user (email) for basic auth
    JIRA_API_TOKEN       Jira API token
    JIRA_PROJECT_KEY     Project holding tests and bugs (default: TEST)
    BUG_ISSUE_TYPE       Issue type used for bugs (default: Bug)
    BUG_LINK_TYPE        Link type between bug and test (default: Relates)
    XRAY_BASE_URL        Xray Cloud base URL (default: https://xray.cloud.getxray.app)
    XRAY_CLIENT_ID       Xray API client id
    XRAY_CLIENT_SECRET   Xray API client secret
    PIPELINE_URL         Link written into bug descriptions (falls back to BUILD_URL)
    XRAY_SYNC_KEY_MAP    Path of the persistent case/bug key map
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from xray_sync.config.loader import ConfigLoader
from xray_sync.errors import ConfigurationError
from xray_sync.jira_client.jira_client import JiraConfig
from xray_sync.jira_client.xray_client import XrayConfig
from xray_sync.postman.key_extractor import KeyPatterns

# env var -> (section, key)
ENV_MAPPING: Dict[str, tuple] = {
    "JIRA_BASE_URL": ("jira", "base_url"),
    "JIRA_USER": ("jira", "user"),
    "JIRA_API_TOKEN": ("jira", "api_token"),
    "JIRA_PROJECT_KEY": ("jira", "project_key"),
    "BUG_ISSUE_TYPE": ("jira", "bug_issue_type"),
    "BUG_LINK_TYPE": ("jira", "bug_link_type"),
    "XRAY_BASE_URL": ("xray", "base_url"),
    "XRAY_CLIENT_ID": ("xray", "client_id"),
    "XRAY_CLIENT_SECRET": ("xray", "client_secret"),
    "BUILD_URL": (None, "pipeline_url"),
    "PIPELINE_URL": (None, "pipeline_url"),
    "XRAY_SYNC_KEY_MAP": (None, "key_map_path"),
}

REQUIRED_SETTINGS = [
    ("jira", "base_url", "JIRA_BASE_URL"),
    ("jira", "user", "JIRA_USER"),
    ("jira", "api_token", "JIRA_API_TOKEN"),
    ("jira", "project_key", "JIRA_PROJECT_KEY"),
    ("xray", "base_url", "XRAY_BASE_URL"),
    ("xray", "client_id", "XRAY_CLIENT_ID"),
    ("xray", "client_secret", "XRAY_CLIENT_SECRET"),
]

SECRET_KEYS = {"api_token", "client_secret"}


@dataclass
class SyncSettings:
    """All settings needed for one synchronization run."""

    jira: JiraConfig
    xray: XrayConfig
    patterns: KeyPatterns = field(default_factory=KeyPatterns)
    pipeline_url: str = ""
    key_map_path: Optional[str] = None

    def redacted(self) -> Dict[str, Any]:
        """Settings as a dict with secrets masked, for logging."""
        def _mask(section: Any) -> Dict[str, Any]:
            return {
                k: ("***" if k in SECRET_KEYS and v else v)
                for k, v in vars(section).items()
            }

        return {
            "jira": _mask(self.jira),
            "xray": _mask(self.xray),
            "patterns": vars(self.patterns),
            "pipeline_url": self.pipeline_url,
            "key_map_path": self.key_map_path,
        }


def _defaults() -> Dict[str, Any]:
    return {
        "jira": {"project_key": "TEST"},
        "xray": {"base_url": XrayConfig.base_url},
        "patterns": {},
        "http": {},
    }


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _from_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    # PIPELINE_URL is listed after BUILD_URL so an explicit value wins
    for env_name, (section, key) in ENV_MAPPING.items():
        value = environ.get(env_name)
        if not value:
            continue
        if section is None:
            overrides[key] = value
        else:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_settings(
    config_file: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    loader: Optional[ConfigLoader] = None,
) -> SyncSettings:
    """
    Resolve settings from defaults, an optional file and the environment.

    Raises:
        ConfigurationError: If the file is invalid or a required value is missing.
    """
    environ = os.environ if environ is None else environ
    data = _defaults()

    if config_file:
        loader = loader or ConfigLoader()
        try:
            data = _merge(data, loader.load_sync_config(config_file))
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e

    data = _merge(data, _from_environment(environ))

    missing = [
        env_name
        for section, key, env_name in REQUIRED_SETTINGS
        if not data.get(section, {}).get(key)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)} "
            f"(set them in the environment or the settings file)"
        )

    http = data.get("http", {})
    jira_data = data["jira"]
    labels: Optional[List[str]] = jira_data.get("labels")

    jira = JiraConfig(
        base_url=jira_data["base_url"],
        user=jira_data["user"],
        api_token=jira_data["api_token"],
        project_key=jira_data["project_key"],
        test_issue_type=jira_data.get("test_issue_type", "Test"),
        bug_issue_type=jira_data.get("bug_issue_type", "Bug"),
        bug_link_type=jira_data.get("bug_link_type", "Relates"),
        timeout_sec=http.get("timeout_sec", 30),
        verify_ssl=http.get("verify_ssl", True),
    )
    if labels is not None:
        jira.labels = list(labels)

    xray_data = data["xray"]
    xray = XrayConfig(
        base_url=xray_data["base_url"],
        client_id=xray_data["client_id"],
        client_secret=xray_data["client_secret"],
        timeout_sec=http.get("timeout_sec", 30),
        verify_ssl=http.get("verify_ssl", True),
    )

    patterns = KeyPatterns(**data.get("patterns", {}))
    settings = SyncSettings(
        jira=jira,
        xray=xray,
        patterns=patterns,
        pipeline_url=data.get("pipeline_url", ""),
        key_map_path=data.get("key_map_path"),
    )
    logger.debug(f"Resolved settings: {settings.redacted()}")
    return settings
