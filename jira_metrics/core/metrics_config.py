"""Load metrics settings overrides from YAML (with fallbacks to the defaults in ``config``).

Example ``metrics.yaml``::

    timezone: America/Santiago
    kanban:
      active_work_ratio: 0.5
      wip_limits:
        - keywords: [progress, development]
          limit: 4
        - keywords: [review]
          limit: 2
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import pytz
import yaml

from .config import SETTINGS, AppSettings, KanbanSettings

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "metrics.yaml"
# Path to a settings file; needed when the package is installed outside a checkout
CONFIG_ENV_VAR = "JIRA_METRICS_CONFIG"

_CACHE: dict[Path, AppSettings] = {}


def _wip_rules(raw: Any, default):
    if not raw:
        return default
    rules = []
    for item in raw:
        keywords = tuple(str(k).lower() for k in (item.get("keywords") or []))
        limit = int(item["limit"])
        if keywords and limit > 0:
            rules.append((keywords, limit))
    return tuple(rules) or default


def settings_from_mapping(data: dict[str, Any]) -> AppSettings:
    defaults = SETTINGS
    kanban_raw = data.get("kanban") or {}
    timezone = str(data.get("timezone") or defaults.timezone)
    pytz.timezone(timezone)  # unknown names raise UnknownTimeZoneError
    ratio = float(kanban_raw.get("active_work_ratio", defaults.kanban.active_work_ratio))
    if not 0 <= ratio <= 1:
        raise ValueError(f"active_work_ratio must be within [0, 1], got {ratio}")
    kanban = KanbanSettings(
        wip_limit_rules=_wip_rules(kanban_raw.get("wip_limits"), defaults.kanban.wip_limit_rules),
        active_work_ratio=ratio,
    )
    return AppSettings(timezone=timezone, kanban=kanban)


def settings_path(base_path: str | Path | None = None) -> Path:
    """``base_path/metrics.yaml``, else ``$JIRA_METRICS_CONFIG``, else the checkout root's file."""
    if base_path is not None:
        return Path(base_path) / SETTINGS_FILENAME
    configured = os.getenv(CONFIG_ENV_VAR)
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent.parent.parent / SETTINGS_FILENAME


def load_settings(base_path: str | Path | None = None) -> AppSettings:
    yaml_path = settings_path(base_path)
    if yaml_path in _CACHE:
        return _CACHE[yaml_path]
    if not yaml_path.exists():
        _CACHE[yaml_path] = SETTINGS
        return SETTINGS
    try:
        data = yaml.safe_load(yaml_path.read_text()) or {}
        settings = settings_from_mapping(data)
    except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError, AttributeError, pytz.UnknownTimeZoneError) as exc:
        logger.warning("Invalid metrics settings in %s, using defaults: %s", yaml_path, exc)
        settings = SETTINGS
    _CACHE[yaml_path] = settings
    return settings
