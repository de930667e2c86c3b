from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from jsonschema import Draft202012Validator

from hiddenapi_audit.errors import ConfigError

SETTINGS_SCHEMA = Path(__file__).resolve().parent.parent / "schemas" / "settings.schema.json"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "analysis": {
        "api_flags": None,
        "app_class_filter": [],
        "exclude_api_lists": ["sdk"],
        "dump_reflection": True,
        "max_reflection_candidates": None,
        "artifacts_dir": "artifacts",
    },
    "observability": {"enabled": True, "log_level": "INFO"},
    "telemetry": {"enabled": False},
}


def default_settings() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_SETTINGS)


def load_settings(path: str | Path | None = None) -> Dict[str, Any]:
    settings = default_settings()
    if path is not None:
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except OSError as exc:
            raise ConfigError(f"Cannot read settings {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings {path} must be a mapping")
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(settings.get(section), dict):
                settings[section].update(values)
            else:
                settings[section] = values
    flags = os.environ.get("HIDDENAPI_FLAGS")
    if flags:
        settings["analysis"]["api_flags"] = flags
    artifacts_dir = os.environ.get("HIDDENAPI_ARTIFACTS_DIR")
    if artifacts_dir:
        settings["analysis"]["artifacts_dir"] = artifacts_dir
    validate_settings(settings)
    return settings


def validate_settings(settings: Dict[str, Any], schema_path: str | Path = SETTINGS_SCHEMA) -> None:
    schema_path = Path(schema_path)
    with schema_path.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(settings), key=lambda e: [str(p) for p in e.path])
    if errors:
        messages = []
        for err in errors:
            loc = ".".join([str(p) for p in err.path]) or "<root>"
            messages.append(f"{loc}: {err.message}")
        raise ConfigError("Invalid settings: " + "; ".join(messages))
