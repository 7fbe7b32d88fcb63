from __future__ import annotations

"""Backend configuration and logging setup.

Purpose: Load settings from a single JSON file (`settings/config.json` by
default). Environment variables are not used. Configure root logging with a
concise format.

"""

import logging
import json
from pathlib import Path
from dataclasses import dataclass
from typing import Union


DEFAULT_CONFIG_PATH = Path("settings/config.json")


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    log_level: str
    password: str
    feedback_prefix: str
    # Dispatcher pacing
    default_action_spacing_ms: int
    action_timeout_ms: int
    # Goal manager tuning
    backoff_delay_ms: int
    move_away_distance: int
    goal_poll_interval_ms: int
    max_goal_steps: int
    cycle_policy: str
    item_catalog_path: str


def load_settings(path: Union[Path, str] = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings strictly from a JSON file.

    Connection keys are required; tuning keys fall back to defaults.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"{cfg_path} not found")
    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except Exception as e:
        raise RuntimeError(f"failed to parse {cfg_path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"{cfg_path} must contain a JSON object")

    def gv(key: str, default):
        return data.get(key, default)

    required_keys = ["host", "port", "log_level", "password"]
    missing = [k for k in required_keys if k not in data]
    if missing:
        raise KeyError(f"{cfg_path} missing required keys: {', '.join(missing)}")

    cycle_policy = str(gv("cycle_policy", "reject")).strip().lower()
    if cycle_policy not in {"reject", "ignore"}:
        raise ValueError(f"cycle_policy must be 'reject' or 'ignore', got {cycle_policy!r}")

    settings = Settings(
        host=str(data["host"]),
        port=int(data["port"]),
        log_level=str(data["log_level"]).upper(),
        password=str(data["password"]),
        feedback_prefix=str(gv("feedback_prefix", "")),
        default_action_spacing_ms=int(gv("default_action_spacing_ms", 0)),
        action_timeout_ms=int(gv("action_timeout_ms", 60000)),
        backoff_delay_ms=int(gv("backoff_delay_ms", 500)),
        move_away_distance=int(gv("move_away_distance", 8)),
        goal_poll_interval_ms=int(gv("goal_poll_interval_ms", 250)),
        max_goal_steps=max(int(gv("max_goal_steps", 0)), 0),
        cycle_policy=cycle_policy,
        item_catalog_path=str(gv("item_catalog_path", "settings/item_catalog.json")),
    )
    return settings


def configure_logging(log_level: str) -> None:
    """Configure root logger with a concise, structured-ish format."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
