"""User-level configuration (~/.trak/config.json) and environment loading."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .errors import NotFoundError
from .store import _atomic_write, _now_iso, _safe_read_json
from .validation import (
    MAX_DEVELOPER_ID,
    MAX_DEVELOPER_NAME,
    validate_endpoint,
    validate_org_token,
    validate_string_length,
)
from .watcher import DEFAULT_EXCLUDES, DEFAULT_EXTENSIONS, WatcherConfig

CONFIG_DIR = Path.home() / ".trak"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_ORG_ENDPOINT = "https://api.trak.dev"


@dataclass
class OrgCredentials:
    """Written by `trak login`; enables organization reporting."""

    org_token: str
    org_endpoint: str
    developer_id: str
    developer_name: str
    last_login: str = ""


@dataclass
class TrakSettings:
    include_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    debounce_ms: int = 300
    poll_interval_ms: int = 100
    ai_model: str = "gpt-4o-mini"
    max_prompt_files: int = 5
    prompt_char_budget: int = 2000
    dashboard_port: int = 3000
    report_sessions: bool = True

    def watcher_config(self) -> WatcherConfig:
        return WatcherConfig(
            include_extensions=tuple(self.include_extensions),
            exclude_patterns=tuple(self.exclude_patterns),
            debounce_ms=self.debounce_ms,
            poll_interval_ms=self.poll_interval_ms,
        )


@dataclass
class TrakConfig:
    version: int = 1
    org: OrgCredentials | None = None
    settings: TrakSettings = field(default_factory=TrakSettings)


def load_environment() -> None:
    """Load a .env file from the current directory upwards, if any."""
    load_dotenv(find_dotenv(usecwd=True))


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def load_config() -> TrakConfig:
    """Load the user config, creating the default file when missing.

    Raises:
        ParseError: the file exists but is corrupt.
    """
    try:
        data = _safe_read_json(CONFIG_PATH)
    except NotFoundError:
        data = None
    if data is None:
        config = TrakConfig()
        save_config(config)
        return config

    org_data = data.get("org")
    return TrakConfig(
        version=data.get("version", 1),
        org=OrgCredentials(**_known(OrgCredentials, org_data)) if org_data else None,
        settings=TrakSettings(**_known(TrakSettings, data.get("settings", {}))),
    )


def save_config(config: TrakConfig) -> None:
    """Atomically write the config, readable by the owner only."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _atomic_write(CONFIG_PATH, asdict(config))
    os.chmod(CONFIG_PATH, 0o600)


def login(
    org_token: str,
    developer_name: str,
    developer_id: str,
    org_endpoint: str | None = None,
) -> OrgCredentials:
    credentials = OrgCredentials(
        org_token=validate_org_token(org_token),
        org_endpoint=validate_endpoint(
            org_endpoint or os.environ.get("TRAK_ORG_ENDPOINT", DEFAULT_ORG_ENDPOINT)
        ),
        developer_id=validate_string_length(developer_id, "developer ID", MAX_DEVELOPER_ID),
        developer_name=validate_string_length(developer_name, "developer name", MAX_DEVELOPER_NAME),
        last_login=_now_iso(),
    )
    config = load_config()
    config.org = credentials
    save_config(config)
    return credentials


def logout() -> bool:
    """Forget organization credentials. Returns False if none were stored."""
    config = load_config()
    if config.org is None:
        return False
    config.org = None
    save_config(config)
    return True
