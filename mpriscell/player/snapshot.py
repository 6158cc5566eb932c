"""
Snapshot fetch for mpriscell.

Turns the connected player into a PlayerInfo. The query sequence is:

1. playback status
2. display name (re-resolved through the directory for the aggregate alias)
3. ignored-players check
4. artist, album, title, in that order
5. track length

The first failing query aborts the whole snapshot. The result is either a
complete PlayerInfo or None, never something half filled in.
"""

import logging

from mpriscell.config import ModuleConfig
from mpriscell.core import QueryError
from mpriscell.core.player_info import PlaybackStatus, PlayerInfo, format_length
from mpriscell.player.session import PlayerSession
from mpriscell.protocol.discovery import PlayerDirectory

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    ("artist", "xesam:artist"),
    ("album", "xesam:album"),
    ("title", "xesam:title"),
)

LENGTH_KEY = "mpris:length"


async def fetch_player_info(
    session: PlayerSession,
    directory: PlayerDirectory,
    config: ModuleConfig,
) -> PlayerInfo | None:
    """
    Build a snapshot of the connected player.

    Args:
        session: Session whose connection is queried.
        directory: Used to find the active player for the aggregate alias.
        config: Supplies the target and the ignored players.

    Returns:
        The snapshot, or None when there is no player, the player is
        ignored, or one of the queries failed.

    Raises:
        DirectoryError: If the aggregate alias cannot be re-resolved.
    """
    connection = session.connection
    if connection is None:
        logger.debug("mpris[%s]: no player", config.player)
        return None

    player_name = connection.player_name.name

    try:
        raw_status = await connection.get_playback_status()
    except QueryError as e:
        logger.error("mpris[%s]: %s", player_name, e)
        return None

    if config.is_aggregate:
        players = await directory.list_players()
        if players:
            player_name = players[0].name

    if config.is_ignored(player_name):
        logger.debug("mpris[%s]: ignoring player update", player_name)
        return None

    status = PlaybackStatus.from_mpris(raw_status)
    fields: dict[str, str | None] = {}

    try:
        for field_name, key in TEXT_FIELDS:
            value = (await connection.get_metadata_text(key)).strip()
            fields[field_name] = value or None
            if value:
                logger.debug("mpris[%s]: %s = %s", player_name, field_name, value)

        length = format_length(await connection.get_metadata_value(LENGTH_KEY))
    except QueryError as e:
        logger.error("mpris[%s]: %s", player_name, e)
        return None

    if length is not None:
        logger.debug("mpris[%s]: %s = %s", player_name, LENGTH_KEY, length)

    return PlayerInfo(name=player_name, status=status, length=length, **fields)
