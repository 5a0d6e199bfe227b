"""Tests for permission name translation."""

import pytest

from cdpcontext.browser.permissions import PERMISSIONS_TO_PROTOCOL, translate_permissions
from cdpcontext.exceptions import InvalidPermissionError


class TestTranslatePermissions:
    """Tests for translate_permissions."""

    def test_known_names(self):
        """Names map to their protocol permission types."""
        assert translate_permissions(["camera", "microphone", "clipboard-read"]) == [
            "videoCapture",
            "audioCapture",
            "clipboardReadWrite",
        ]

    def test_sensors_collapse(self):
        """The sensor names share one protocol type, listed once."""
        assert translate_permissions(["accelerometer", "gyroscope", "geolocation", "magnetometer"]) == [
            "sensors",
            "geolocation",
        ]

    def test_duplicates_removed(self):
        assert translate_permissions(["midi", "midi", "midi-sysex"]) == ["midi", "midiSysex"]

    def test_empty(self):
        assert translate_permissions([]) == []

    def test_unknown_name_fails(self):
        """The first unknown name fails the whole translation."""
        with pytest.raises(InvalidPermissionError) as exc_info:
            translate_permissions(["geolocation", "teleport", "also-bogus"])
        assert exc_info.value.permission == "teleport"
        assert "'teleport' is an invalid permission" in str(exc_info.value)

    def test_every_entry_translates(self):
        """Every documented name is accepted."""
        result = translate_permissions(list(PERMISSIONS_TO_PROTOCOL))
        assert set(result) == set(PERMISSIONS_TO_PROTOCOL.values())
