"""
Player management for mpriscell.

This package handles the connection to the displayed player and turning
its state into snapshots.
"""

from mpriscell.player.session import PlayerSession, SessionState
from mpriscell.player.snapshot import fetch_player_info

__all__ = [
    "PlayerSession",
    "SessionState",
    "fetch_player_info",
]
