"""Configuration for syncing editor keymaps into a Notion database.

Settings come from a JSON file (``notio.json`` in the working directory,
or the path named by ``NOTIO_CONFIG``) layered over the defaults below.
The Notion token is never stored in the file; it is read from
``NOTION_API_KEY``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Set

from notio_errors import AuthError, ConfigError

CONFIG_ENV = "NOTIO_CONFIG"
TOKEN_ENV = "NOTION_API_KEY"
DEFAULT_CONFIG_NAME = "notio.json"

DEBUG_ENABLED = os.getenv("NOTIO_DEBUG") == "1"


def debug_log(*parts: object) -> None:
    if DEBUG_ENABLED:
        print("[DEBUG]", *parts)


DEFAULT_PROPERTIES: Dict[str, str] = {
    "Name": "Name",
    "Action": "Action",
    "Application": "Application",
    "Status": "Status",
    "Type": "Type",
    "Plugin": "Plugin",
    "Tier": "Tier",
    "Platform": "Platform",
    "Scope": "Scope",
    "Mode": "Mode",
    "Date": "Date",
    "Category": "Category",
    "Command": "Command",
    "Description": "Description",
    "Docs": "Docs",
    "Prefix": "Prefix",
    "UID": "UID",
}

ALL_MODES = ["n", "v", "x", "s", "i", "c", "t", "o"]


@dataclass
class Config:
    database_id: str = ""
    app_page_id: str = ""
    plugin_pages: Dict[str, str] = field(default_factory=dict)

    skip_builtins: bool = True
    skip_plug_mappings: bool = True
    include_modes: List[str] = field(default_factory=lambda: list(ALL_MODES))

    # Guardrails
    update_only: bool = True
    skip_prefixes: List[str] = field(default_factory=lambda: ["[", "]", "g", "z"])

    platform: List[str] = field(default_factory=lambda: ["Linux", "Windows", "macOS"])
    status: str = "Active"
    dry_run: bool = False
    rate_limit_ms: int = 350

    cover_url: str = (
        "https://res.cloudinary.com/dicttuyma/image/upload/w_1500,h_600,c_fill,g_auto/"
        "v1742094822/banner/notion_33.jpg"
    )
    icon_url: str = "https://www.notion.so/icons/keyboard-alternate_lightgray.svg"

    project_plugins: Set[str] = field(default_factory=lambda: {"yazi.nvim", "telescope.nvim"})
    properties: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PROPERTIES))

    notion_version: str = "2022-06-28"
    touch_date_on_create: bool = True
    touch_date_on_update: bool = False

    built_in_marker_value: str = "Built in"
    require_confirm: bool = True

    timeout_ms: int = 60000
    retries: int = 2
    retry_base_ms: int = 500

    leader: str = " "

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Config":
        known = {f.name for f in fields(cls)}
        config = cls()
        for key, value in data.items():
            if key not in known:
                debug_log("ignoring unknown config key", key)
                continue
            if key == "properties":
                merged = dict(DEFAULT_PROPERTIES)
                merged.update(value or {})
                value = merged
            elif key == "project_plugins":
                # Accept a list of slugs or a {slug: true} table.
                if isinstance(value, dict):
                    value = {slug for slug, enabled in value.items() if enabled}
                else:
                    value = set(value or [])
            setattr(config, key, value)
        return config

    def prop(self, logical: str) -> Optional[str]:
        """Return the remote column label for a logical field, if mapped."""
        label = self.properties.get(logical)
        return label or None

    def validate(self) -> None:
        missing = [name for name in ("database_id", "app_page_id") if not getattr(self, name)]
        if missing:
            raise ConfigError(f"notio: please set {' and '.join(missing)} in the config")

    def describe(self) -> List[str]:
        return [
            "# notio effective config",
            "",
            f"database_id = {self.database_id or '(unset)'}",
            f"update_only = {str(self.update_only).lower()}",
            f"skip_builtins = {str(self.skip_builtins).lower()}",
            f"skip_plug_mappings = {str(self.skip_plug_mappings).lower()}",
            f"skip_prefixes = [{', '.join(self.skip_prefixes)}]",
            f"include_modes = [{', '.join(self.include_modes)}]",
            f"rate_limit_ms = {self.rate_limit_ms}",
            f"retries = {self.retries}",
        ]


def config_path(path: Optional[str] = None) -> Path:
    if path:
        return Path(path)
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_NAME


def load_config(path: Optional[str] = None) -> Config:
    """Load the JSON config file if present and merge it over the defaults."""
    target = config_path(path)
    if not target.exists():
        if path:
            raise ConfigError(f"notio: config file not found: {target}")
        debug_log("no config file at", target)
        return Config()
    try:
        with target.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"notio: invalid JSON in {target}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"notio: {target} must hold a JSON object")
    return Config.from_dict(data)


def api_token() -> str:
    token = os.getenv(TOKEN_ENV, "").strip()
    if not token:
        raise AuthError(f"notio: {TOKEN_ENV} not set; aborting.")
    return token
