"""
Admin-tunable site settings stored as key/value strings.

Only keys listed in SETTINGS_SCHEMA are accepted; each maps to the set of
values it may hold.
"""
import logging
from typing import Dict

import errors
from database import utcnow

log = logging.getLogger(__name__)

SETTINGS_SCHEMA = {
    "cod_enabled": {"true", "false"},
}


def _normalize(key: str, value) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    value = str(value).strip().lower()
    if value not in SETTINGS_SCHEMA[key]:
        allowed = ", ".join(sorted(SETTINGS_SCHEMA[key]))
        raise errors.ValidationError(f"Invalid value for {key}: expected one of {allowed}")
    return value


def get_settings(db) -> Dict[str, str]:
    return {s["key"]: s["value"] for s in db["site_setting"].find()}


def get_setting(db, key: str, default: str = None):
    doc = db["site_setting"].find_one({"key": key})
    return doc["value"] if doc else default


def update_settings(db, updates: dict) -> Dict[str, str]:
    unknown = sorted(set(updates) - set(SETTINGS_SCHEMA))
    if unknown:
        raise errors.ValidationError(f"Unknown setting(s): {', '.join(unknown)}")
    normalized = {key: _normalize(key, value) for key, value in updates.items()}
    for key, value in normalized.items():
        db["site_setting"].update_one(
            {"key": key},
            {"$set": {"value": value, "updated_at": utcnow()}},
            upsert=True,
        )
        log.info("Setting %s set to %s", key, value)
    return get_settings(db)


def cod_enabled(db) -> bool:
    return get_setting(db, "cod_enabled") == "true"
