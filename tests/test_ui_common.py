import json
import logging
from datetime import date
from urllib.parse import quote

import ui_common
from position_engine import DEFAULT_MA_WINDOW


def test_decode_display_params_reads_fragment_flags():
    fragment = "#" + quote(json.dumps({"after": "2021-01-04", "before": "2022-03-01T10:00", "debug": 1, "anon": True}))
    params = ui_common.decode_display_params(fragment)
    assert params.after == date(2021, 1, 4)
    assert params.before == date(2022, 3, 1)
    assert params.debug is True
    assert params.anonymize is True
    assert params.window == DEFAULT_MA_WINDOW
    assert params.unmatched == "drop"


def test_decode_display_params_falls_back_to_defaults():
    assert ui_common.decode_display_params(None) == ui_common.DisplayParams()
    assert ui_common.decode_display_params("#not-json") == ui_common.DisplayParams()
    assert ui_common.decode_display_params(quote("[1, 2]")) == ui_common.DisplayParams()


def test_display_params_ignore_bad_values():
    params = ui_common.display_params_from_mapping(
        {"after": "yesterday-ish", "window": "wide", "unmatched": "teleport"}
    )
    assert params.after is None
    assert params.window == DEFAULT_MA_WINDOW
    assert params.unmatched == "drop"

    snapped = ui_common.display_params_from_mapping({"window": 9, "unmatched": "snap"})
    assert snapped.window == 9
    assert snapped.unmatched == "snap"


def test_load_settings_copies_example(tmp_path):
    example = tmp_path / "chart_settings.example.json"
    example.write_text(json.dumps({"ticker": "SOXL", "window": 19}), encoding="utf-8")
    path = tmp_path / "chart_settings.json"

    settings = ui_common.load_settings(path)

    assert path.exists()
    assert settings["ticker"] == "SOXL"
    assert settings["window"] == 19
    assert settings["unmatched"] == "drop"


def test_save_settings_round_trip_drops_unknown_keys(tmp_path):
    path = tmp_path / "nested" / "chart_settings.json"
    ui_common.save_settings(
        {"ticker": "TSLA", "transactions": [["b", "2021-01-05", 10, 95.0]], "junk": 1},
        path,
    )
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "junk" not in saved
    assert ui_common.load_settings(path)["transactions"] == [["b", "2021-01-05", 10, 95.0]]


def test_load_settings_ignores_corrupt_file(tmp_path):
    path = tmp_path / "chart_settings.json"
    path.write_text("{oops", encoding="utf-8")
    assert ui_common.load_settings(path) == ui_common.DEFAULT_SETTINGS


def test_configure_logging_sets_root_level():
    root = logging.getLogger()
    previous = root.level
    try:
        ui_common.configure_logging(debug=True)
        assert root.level == logging.DEBUG
        ui_common.configure_logging(debug=False)
        assert root.level == logging.WARNING
    finally:
        root.setLevel(previous)
