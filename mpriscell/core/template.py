"""
Template rendering for the status cell.

Templates use brace placeholders with optional format specs, e.g.
"{status_icon} {artist} - {title:.30}". The recognised placeholders are:

    player, status, artist, title, album, length,
    player_icon, status_icon, dynamic

`dynamic` is built here from whatever metadata the player provided and never
fails. The direct metadata placeholders (artist, title, album, length) are
only available when the player actually provided them; referencing one that
is missing raises TemplateError so the caller can keep the previous output.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Mapping
from xml.sax.saxutils import escape

from mpriscell.core import TemplateError
from mpriscell.core.player_info import PlaybackStatus, PlayerInfo

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "{player} ({status}): {dynamic}"

DYNAMIC_SEPARATOR = " - "

OPTIONAL_FIELDS = ("artist", "album", "title", "length")

_FORMATTER = string.Formatter()

# GLib.markup_escape_text escapes quotes too
_MARKUP_ENTITIES = {"'": "&apos;", '"': "&quot;"}


def escape_markup(text: str) -> str:
    """Escape text for embedding in Pango markup."""
    return escape(text, _MARKUP_ENTITIES)


def get_icon(icons: Mapping[str, str] | None, key: str) -> str:
    """
    Look up an icon by key, falling back to the "default" entry.

    Returns an empty string when neither the key nor a default exists.
    """
    if not icons:
        return ""
    if key in icons:
        return icons[key]
    return icons.get("default", "")


def build_dynamic(
    artist: str | None,
    album: str | None,
    title: str | None,
    length: str | None,
) -> str:
    """Join the present metadata fields into the "dynamic" placeholder."""
    parts = [part for part in (artist, album, title) if part]
    dynamic = DYNAMIC_SEPARATOR.join(parts)
    if length:
        dynamic += f" [{length}]"
    return dynamic


def check_fields(template: str) -> None:
    """
    Reject fields that are not a plain placeholder name.

    Attribute and index lookups ("{player.__class__}", "{player[0]}") and
    positional fields ("{}", "{0}") are not placeholders.

    Raises:
        TemplateError: For such a field.
        ValueError: If the template is malformed.
    """
    for _, field_name, format_spec, _ in _FORMATTER.parse(template):
        if field_name is not None and not field_name.isidentifier():
            raise TemplateError(f"unsupported placeholder '{{{field_name}}}'")
        # Nested fields in a format spec, e.g. "{title:.{width}}"
        if format_spec and "{" in format_spec:
            check_fields(format_spec)


class _Placeholders(dict[str, str]):
    """Format mapping that reports which placeholder could not be filled."""

    def __missing__(self, key: str) -> str:
        if key in OPTIONAL_FIELDS:
            raise TemplateError(f"'{key}' is not available for the current track")
        raise TemplateError(f"unknown placeholder '{key}'")


class TemplateRenderer:
    """
    Selects the template for a snapshot and substitutes its placeholders.

    Attributes:
        format: Default template used when no status specific one is set.
        status_formats: Optional per-status overrides.
        player_icons: Icon table keyed by player name.
        status_icons: Icon table keyed by status string.
    """

    def __init__(
        self,
        format: str = DEFAULT_FORMAT,
        *,
        status_formats: Mapping[PlaybackStatus, str | None] | None = None,
        player_icons: Mapping[str, str] | None = None,
        status_icons: Mapping[str, str] | None = None,
    ) -> None:
        self.format = format
        self.status_formats = dict(status_formats or {})
        self.player_icons = dict(player_icons or {})
        self.status_icons = dict(status_icons or {})

    def select_template(self, status: PlaybackStatus) -> str:
        """Return the status specific template if set and non-empty."""
        template = self.status_formats.get(status)
        if template:
            return template
        return self.format

    def placeholders(self, info: PlayerInfo) -> dict[str, str]:
        """Build the substitution values for a snapshot."""
        artist = escape_markup(info.artist) if info.artist else None
        album = escape_markup(info.album) if info.album else None
        title = escape_markup(info.title) if info.title else None

        values = _Placeholders(
            player=info.name,
            status=info.status_string,
            dynamic=build_dynamic(artist, album, title, info.length),
            player_icon=get_icon(self.player_icons, info.name),
            status_icon=get_icon(self.status_icons, info.status_string),
        )
        for key, value in (
            ("artist", artist),
            ("album", album),
            ("title", title),
            ("length", info.length),
        ):
            if value is not None:
                values[key] = value
        return values

    def render(self, info: PlayerInfo) -> str:
        """
        Render the cell text for a snapshot.

        Raises:
            TemplateError: If the template references a missing or unknown
                field, or is not a valid template.
        """
        template = self.select_template(info.status)
        try:
            check_fields(template)
            return template.format_map(self.placeholders(info))
        except TemplateError:
            raise
        except (ValueError, IndexError, KeyError, AttributeError) as e:
            raise TemplateError(f"invalid template {template!r}: {e}") from e
