"""
Tests for player snapshot values.

Tests duration formatting and playback status parsing.
"""

import pytest

from mpriscell.core.player_info import PlaybackStatus, PlayerInfo, format_length


class TestFormatLength:
    """Tests for format_length()."""

    def test_zero_is_omitted(self) -> None:
        """A zero length yields no length field."""
        assert format_length(0) is None

    def test_negative_is_omitted(self) -> None:
        """Negative lengths are treated as unknown."""
        assert format_length(-5_000_000) is None

    def test_none_is_omitted(self) -> None:
        """A missing length yields no length field."""
        assert format_length(None) is None

    def test_minutes_and_seconds(self) -> None:
        """Lengths under an hour use MM:SS."""
        assert format_length(125_000_000) == "02:05"

    def test_hours(self) -> None:
        """Lengths of an hour or more use HH:MM:SS."""
        assert format_length(3_661_000_000) == "01:01:01"

    def test_sub_second_remainder_is_truncated(self) -> None:
        """Microseconds below a full second are dropped."""
        assert format_length(59_999_999) == "00:59"

    def test_string_value(self) -> None:
        """Some players send the length as a string."""
        assert format_length("125000000") == "02:05"

    def test_unparsable_string(self) -> None:
        """Unparsable values are omitted instead of failing."""
        assert format_length("unknown") is None

    def test_double_value(self) -> None:
        """Some players send the length as a double."""
        assert format_length(201_000_000.0) == "03:21"

    def test_bool_is_rejected(self) -> None:
        """Booleans are not lengths."""
        assert format_length(True) is None


class TestPlaybackStatus:
    """Tests for PlaybackStatus parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Playing", PlaybackStatus.PLAYING),
            ("Paused", PlaybackStatus.PAUSED),
            ("Stopped", PlaybackStatus.STOPPED),
            ("PLAYING", PlaybackStatus.PLAYING),
        ],
    )
    def test_from_mpris(self, raw: str, expected: PlaybackStatus) -> None:
        """MPRIS status strings are parsed case-insensitively."""
        assert PlaybackStatus.from_mpris(raw) is expected

    def test_unknown_is_stopped(self) -> None:
        """Unrecognised status strings map to stopped."""
        assert PlaybackStatus.from_mpris("Buffering") is PlaybackStatus.STOPPED
        assert PlaybackStatus.from_mpris(None) is PlaybackStatus.STOPPED


class TestPlayerInfo:
    """Tests for the PlayerInfo value."""

    def test_status_string_is_lowercase_token(self) -> None:
        """status_string is always one of the three lowercase tokens."""
        for status in PlaybackStatus:
            info = PlayerInfo(name="spotify", status=status)
            assert info.status_string in {"playing", "paused", "stopped"}
            assert info.status_string == info.status_string.lower()

    def test_optional_fields_default_to_absent(self) -> None:
        """Metadata fields are absent unless given."""
        info = PlayerInfo(name="mpv", status=PlaybackStatus.PLAYING)
        assert info.artist is None
        assert info.album is None
        assert info.title is None
        assert info.length is None

    def test_is_immutable(self) -> None:
        """Snapshots cannot be modified after creation."""
        info = PlayerInfo(name="mpv", status=PlaybackStatus.PLAYING)
        with pytest.raises(AttributeError):
            info.name = "vlc"  # type: ignore[misc]
