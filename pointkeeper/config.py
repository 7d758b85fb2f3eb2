"""
pointkeeper.config — YAML Configuration Loader
===============================================

This module reads ``config.yaml`` for **infrastructure-only** settings
(batch bounds, API port, display name).  Point values (honor award,
attendance, badges) are per-organization and live in the
``organization_settings`` table.

Usage::

    from pointkeeper.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.max_batch_size)    # 500
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from pointkeeper.constants import DEFAULT_LEADERBOARD_LIMIT, MAX_BATCH_SIZE


# ---------------------------------------------------------------------------
# Typed settings object: infrastructure only.
# Point rules live in the DB ``organization_settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PointkeeperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    platform_name: str = "Pointkeeper"

    # Upper bound on mutation / honor list length per call
    max_batch_size: int = MAX_BATCH_SIZE

    default_leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT

    api_port: int = 8000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PointkeeperConfig:
    """Read *path* and return a :class:`PointkeeperConfig` instance.

    Every key is optional; missing keys keep their defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If ``max_batch_size`` is not a positive integer.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = PointkeeperConfig()
    max_batch_size = int(raw.get("max_batch_size", defaults.max_batch_size))
    if max_batch_size < 1:
        raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")

    return PointkeeperConfig(
        platform_name=raw.get("platform_name", defaults.platform_name),
        max_batch_size=max_batch_size,
        default_leaderboard_limit=int(
            raw.get("default_leaderboard_limit", defaults.default_leaderboard_limit)
        ),
        api_port=int(raw.get("api_port", defaults.api_port)),
    )
