"""Config loader: reads YAML, applies LENDING_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from lending_core.config.schema import AppConfig

# env var -> (section, key)
_ENV_OVERRIDES = {
    "LENDING_DATABASE_URL": ("database", "url"),
    "LENDING_LOG_LEVEL": ("logging", "level"),
    "LENDING_LOG_FORMAT": ("logging", "format"),
    "LENDING_GRAPH_API_KEY": ("upstream", "graph_api_key"),
    "LENDING_AAVEKIT_URL": ("upstream", "aavekit_url"),
    "LENDING_CRON_SECRET": ("api", "cron_secret"),
}


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        LENDING_DATABASE_URL   -> database.url
        LENDING_LOG_LEVEL      -> logging.level
        LENDING_LOG_FORMAT     -> logging.format
        LENDING_GRAPH_API_KEY  -> upstream.graph_api_key
        LENDING_AAVEKIT_URL    -> upstream.aavekit_url
        LENDING_RPC_URLS       -> upstream.rpc_urls (comma-separated)
        LENDING_CRON_SECRET    -> api.cron_secret
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value

    rpc_urls = os.environ.get("LENDING_RPC_URLS")
    if rpc_urls:
        urls = [u.strip() for u in rpc_urls.split(",") if u.strip()]
        data.setdefault("upstream", {})["rpc_urls"] = urls

    return AppConfig.model_validate(data)
