from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from wxconditions.conditions import ConditionsResult, build_conditions_url, parse_conditions
from wxconditions.errors import ConditionsParseError


def test_parse_returns_all_six_fields(conditions_payload):
    result = parse_conditions(json.dumps(conditions_payload).encode("utf-8"))
    assert result == ConditionsResult(
        temp_c=19.0,
        temp_f=66.2,
        weather="Partly Cloudy",
        icon="partlycloudy",
        local_tz_short="PDT",
        local_tz_offset="-0700",
    )


def test_parse_accepts_integer_temperatures(conditions_payload):
    conditions_payload["current_observation"]["temp_c"] = 19
    result = parse_conditions(json.dumps(conditions_payload))
    assert result.temp_c == 19.0
    assert isinstance(result.temp_c, float)


def test_parse_keeps_offset_as_string(conditions_payload):
    result = parse_conditions(json.dumps(conditions_payload))
    assert result.local_tz_offset == "-0700"


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"",
        b"[1, 2, 3]",
        b'"current_observation"',
        b'{"current_observation": []}',
        b'{"other": {}}',
    ],
)
def test_parse_rejects_bad_shapes(payload):
    try:
        parse_conditions(payload)
        assert False, "ConditionsParseError should have been raised"
    except ConditionsParseError:
        pass


def test_parse_rejects_missing_data():
    try:
        parse_conditions(None)
        assert False, "ConditionsParseError should have been raised"
    except ConditionsParseError as e:
        assert "No data" in str(e)


@pytest.mark.parametrize(
    "field, value",
    [
        ("temp_f", "66.2"),
        ("temp_c", True),
        ("weather", 3),
        ("icon", None),
        ("local_tz_short", ["PDT"]),
        ("local_tz_offset", -700),
    ],
)
def test_parse_rejects_mistyped_field(conditions_payload, field, value):
    conditions_payload["current_observation"][field] = value
    try:
        parse_conditions(json.dumps(conditions_payload))
        assert False, "ConditionsParseError should have been raised"
    except ConditionsParseError as e:
        assert field in str(e)


def test_build_url_interpolates_key_and_coordinates():
    url = build_conditions_url("abc123", 47.6, -122.3, host="api.example.test")
    assert url == "https://api.example.test/api/abc123/conditions/q/47.6,-122.3.json"


def test_build_url_percent_encodes_path():
    url = build_conditions_url("a b#c", 1.5, 2.0, host="api.example.test")
    assert url == "https://api.example.test/api/a%20b%23c/conditions/q/1.5,2.0.json"


def test_build_url_uses_configured_host():
    with patch("wxconditions.conditions.settings") as mock_settings:
        mock_settings.wunderground_host = "wx.internal"
        url = build_conditions_url("k", 0.0, 0.0)
    assert url.startswith("https://wx.internal/api/k/")


@pytest.mark.parametrize(
    "secret, lat, lon",
    [
        ("", 1.0, 1.0),
        ("k", float("nan"), 1.0),
        ("k", 1.0, float("inf")),
    ],
)
def test_build_url_rejects_unusable_input(secret, lat, lon):
    try:
        build_conditions_url(secret, lat, lon, host="api.example.test")
        assert False, "ValueError should have been raised"
    except ValueError:
        pass


@pytest.mark.parametrize(
    "field, raw",
    [
        ("temp_c", "1" + "0" * 400),
        ("temp_f", "-1" + "0" * 400),
        ("temp_c", "1e400"),
        ("temp_f", "NaN"),
        ("temp_c", "Infinity"),
    ],
)
def test_parse_rejects_temperatures_outside_float_range(conditions_payload, field, raw):
    conditions_payload["current_observation"][field] = "__placeholder__"
    text = json.dumps(conditions_payload).replace('"__placeholder__"', raw)
    try:
        parse_conditions(text)
        assert False, "ConditionsParseError should have been raised"
    except ConditionsParseError as e:
        assert field in str(e)


def test_parse_rejects_deeply_nested_payload():
    try:
        parse_conditions("[" * 200000 + "]" * 200000)
        assert False, "ConditionsParseError should have been raised"
    except ConditionsParseError as e:
        assert "not valid JSON" in str(e)
