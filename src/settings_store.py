import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from constants import APP_NAME, CLI_BINARY, SETTINGS_DIR, SOURCE

logger = logging.getLogger(__name__)

SETTINGS_PATH = SETTINGS_DIR / "settings.json"

_POSITIVE_FIELDS = ("idle_timeout_seconds", "heartbeat_period_seconds")
_NON_NEGATIVE_FIELDS = (
    "min_activity_interval_seconds",
    "flush_debounce_seconds",
    "notebook_edit_debounce_seconds",
)


@dataclass
class TrackerSettings:
    idle_timeout_seconds: float = 60.0
    min_activity_interval_seconds: float = 2.0
    flush_debounce_seconds: float = 0.15
    heartbeat_period_seconds: float = 2.0
    notebook_edit_debounce_seconds: float = 3.0
    app_name: str = APP_NAME
    source: str = SOURCE
    cli_path: str = CLI_BINARY
    db_path: str = ""


def load_settings(path: Optional[Path] = None) -> TrackerSettings:
    """Read persisted tracker settings, falling back to defaults for anything invalid."""
    path = path or SETTINGS_PATH
    if not path.exists():
        return TrackerSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return TrackerSettings()
    if not isinstance(data, dict):
        return TrackerSettings()
    return _from_dict(data)


def save_settings(settings: TrackerSettings, path: Optional[Path] = None) -> None:
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")


def _from_dict(data: Dict[str, Any]) -> TrackerSettings:
    defaults = TrackerSettings()
    values: Dict[str, Any] = {}
    for item in fields(TrackerSettings):
        if item.name not in data or data[item.name] is None:
            continue
        default = getattr(defaults, item.name)
        raw = data[item.name]
        if isinstance(default, float):
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Invalid %s=%r; using %s", item.name, raw, default)
                continue
            if item.name in _POSITIVE_FIELDS and value <= 0:
                logger.warning("%s must be positive; using %s", item.name, default)
                continue
            if item.name in _NON_NEGATIVE_FIELDS and value < 0:
                logger.warning("%s must be non-negative; using %s", item.name, default)
                continue
            values[item.name] = value
        else:
            values[item.name] = str(raw).strip() or default
    return TrackerSettings(**values)
