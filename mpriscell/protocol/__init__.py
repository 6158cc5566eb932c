"""
Bus protocol implementations for mpriscell.

This package contains the D-Bus handlers:
- mpris: The session bus connection and per-player MPRIS access
- discovery: Listing running players and watching names come and go
"""

from mpriscell.protocol.discovery import NameWatcher, PlayerDirectory
from mpriscell.protocol.mpris import MprisBus, MprisConnection, PlayerName

__all__ = [
    "MprisBus",
    "MprisConnection",
    "NameWatcher",
    "PlayerDirectory",
    "PlayerName",
]
