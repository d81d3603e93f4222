"""Tests for one-line value previews."""

from datetime import datetime

import pytest
from dateutil import tz

from recordlens.core.config import DisplayConfig
from recordlens.crypto.envelope import seal
from recordlens.services.normalizer import ValueNormalizer
from recordlens.services.preview import (
    PreviewFormatter,
    format_key_label,
    parse_timestamp,
)
from tests.conftest import TEST_SECRET

LOGIN_ISO = "2025-10-25T14:07:45.867Z"


class TestPreviewFormatter:
    """Preview rules for maps, text and scalars."""

    def setup_method(self):
        self.formatter = PreviewFormatter(DisplayConfig(timezone="UTC"))

    def test_login_time(self):
        assert self.formatter.preview({"login_time": LOGIN_ISO}) == "Login Time 2025-10-25 14:07:45"

    def test_logout_time(self):
        assert self.formatter.preview({"logout_time": LOGIN_ISO, "ip": "10.0.0.1"}) == (
            "Logout Time 2025-10-25 14:07:45"
        )

    def test_login_time_in_display_timezone(self):
        formatter = PreviewFormatter(DisplayConfig(timezone="Asia/Manila"))
        assert formatter.preview({"login_time": LOGIN_ISO}) == "Login Time 2025-10-25 22:07:45"

    def test_login_time_as_epoch_millis(self):
        assert self.formatter.preview({"login_time": 1761401265867}) == "Login Time 2025-10-25 14:07:45"

    def test_unparseable_login_time_falls_back_to_fields(self):
        assert self.formatter.preview({"login_time": "not a date"}) == "Login Time not a date"

    def test_first_three_non_empty_fields(self):
        value = {
            "status": "Active",
            "notes": None,
            "remarks": "",
            "updated_at": LOGIN_ISO,
            "city": "Manila",
            "barangay": "Tondo",
        }
        assert self.formatter.preview(value) == "Status Active, Updated At 2025-10-25, City Manila"

    def test_zero_and_false_are_not_empty(self):
        assert self.formatter.preview({"visits": 0, "active": False}) == "Visits 0, Active false"

    def test_nested_values_render_as_compact_json(self):
        value = {"address": {"city": "Manila"}, "tags": ["a", "b"]}
        assert self.formatter.preview(value) == 'Address {"city":"Manila"}, Tags ["a","b"]'

    def test_json_text_is_parsed(self):
        assert self.formatter.preview('{"first_name": "Ana"}') == "First Name Ana"

    def test_invalid_json_text_is_shown_verbatim(self):
        assert self.formatter.preview('{"first_name": ') == '{"first_name":'

    def test_plain_text_is_trimmed(self):
        assert self.formatter.preview("  hello  ") == "hello"

    @pytest.mark.parametrize(
        "value, expected",
        [(None, ""), (5, "5"), (2.0, "2"), (True, "true"), ([1, 2], "[1,2]"), ({}, "")],
    )
    def test_scalars_and_lists(self, value, expected):
        assert self.formatter.preview(value) == expected

    def test_envelope_text_is_decoded_with_normalizer(self, decoder):
        formatter = PreviewFormatter(DisplayConfig(timezone="UTC"), ValueNormalizer(decoder))
        envelope = seal({"login_time": LOGIN_ISO}, TEST_SECRET)
        assert formatter.preview(envelope) == "Login Time 2025-10-25 14:07:45"

    def test_preview_limit_is_configurable(self):
        formatter = PreviewFormatter(DisplayConfig(timezone="UTC", preview_max_fields=1))
        assert formatter.preview({"a": 1, "b": 2}) == "A 1"

    def test_never_raises(self):
        class Exploding(dict):
            def items(self):
                raise RuntimeError("boom")

        result = self.formatter.preview(Exploding(a=1))
        assert isinstance(result, str)

    def test_degraded_map_preview_is_compact_json(self, monkeypatch):
        def fail(obj):
            raise RuntimeError("boom")

        monkeypatch.setattr(self.formatter, "_render_fields", fail)
        assert self.formatter.preview({"a": 1, "b": [True, None]}) == '{"a":1,"b":[true,null]}'

    def test_degraded_scalar_preview_uses_text_form(self, monkeypatch):
        def fail(value):
            raise RuntimeError("boom")

        monkeypatch.setattr(self.formatter, "_render", fail)
        assert self.formatter.preview(False) == "false"
        assert self.formatter.preview(None) == ""


class TestHelpers:
    def test_format_key_label(self):
        assert format_key_label("login_time") == "Login Time"
        assert format_key_label("user_id") == "User Id"
        assert format_key_label("status") == "Status"

    def test_parse_timestamp_naive_is_utc(self):
        dt = parse_timestamp("2025-10-25 14:07:45")
        assert dt == datetime(2025, 10, 25, 14, 7, 45, tzinfo=tz.UTC)

    def test_parse_timestamp_rejects_non_timestamps(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None
        assert parse_timestamp("   ") is None
        assert parse_timestamp("nonsense") is None
