# -*- coding: utf-8 -*-
"""Shared settings, display parameters and logging setup for the chart page."""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import pandas as pd

from position_engine import DEFAULT_MA_WINDOW, UNMATCHED_POLICIES


# ---------------------- Constants ----------------------

CONFIG_DIR = Path("config")
SETTINGS_PATH = CONFIG_DIR / "chart_settings.json"
SETTINGS_EXAMPLE = CONFIG_DIR / "chart_settings.example.json"

DEFAULT_SETTINGS = {
    "ticker": "TSLA",
    "start_date": "2020-01-01",
    "end_date": None,
    "window": DEFAULT_MA_WINDOW,
    "anonymize": False,
    "unmatched": "drop",
    "transactions": [],
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ---------------------- Display parameters ----------------------

@dataclass(frozen=True)
class DisplayParams:
    """Filter and format options decoded from the page URL or sidebar."""

    after: date | None = None
    before: date | None = None
    debug: bool = False
    anonymize: bool = False
    window: int = DEFAULT_MA_WINDOW
    unmatched: str = "drop"


def parse_cutoff(value: Any) -> date | None:
    """Parse a loose date string; anything unparsable means no cutoff."""
    if value is None or value == "":
        return None
    try:
        parsed = pd.to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def decode_display_params(fragment: str | None) -> DisplayParams:
    """Decode a URL-encoded JSON object such as ``#{"after":"2021-01-01","anon":true}``."""
    if not fragment:
        return DisplayParams()
    try:
        raw = json.loads(unquote(fragment.lstrip("#")))
    except (json.JSONDecodeError, TypeError):
        return DisplayParams()
    if not isinstance(raw, dict):
        return DisplayParams()
    return display_params_from_mapping(raw)


def display_params_from_mapping(raw: dict) -> DisplayParams:
    window = raw.get("window", DEFAULT_MA_WINDOW)
    try:
        window = max(0, int(window))
    except (TypeError, ValueError):
        window = DEFAULT_MA_WINDOW
    unmatched = raw.get("unmatched", "drop")
    if unmatched not in UNMATCHED_POLICIES:
        unmatched = "drop"
    return DisplayParams(
        after=parse_cutoff(raw.get("after")),
        before=parse_cutoff(raw.get("before")),
        debug=bool(raw.get("debug", False)),
        anonymize=bool(raw.get("anon", raw.get("anonymize", False))),
        window=window,
        unmatched=unmatched,
    )


# ---------------------- Logging ----------------------

def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


# ---------------------- Settings I/O ----------------------

def _read_json(path: Path) -> dict:
    """Read a JSON file and return its contents as a dict."""
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if isinstance(data, dict):
                return data
        except (json.JSONDecodeError, OSError):
            logging.getLogger(__name__).warning("Ignoring unreadable settings file %s", path)
    return {}


def _write_json(path: Path, data: dict) -> None:
    """Write a dict to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, ensure_ascii=False, indent=2)


def load_settings(config_path: Path | None = None) -> dict:
    """Load chart settings, falling back to the example file and then defaults.

    If the settings file doesn't exist, the matching ``.example.json`` is
    copied into place first.
    """
    path = config_path if config_path else SETTINGS_PATH
    example = path.with_name(path.stem + ".example.json")

    if not path.exists() and example.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(example, path)

    result = dict(DEFAULT_SETTINGS)
    result.update(_read_json(path))
    return result


def save_settings(payload: dict, config_path: Path | None = None) -> None:
    """Save the known chart settings keys to the settings JSON file."""
    path = config_path if config_path else SETTINGS_PATH
    _write_json(path, {k: v for k, v in payload.items() if k in DEFAULT_SETTINGS})
