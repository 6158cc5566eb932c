"""
mpriscell - MPRIS now-playing cell for status bars.

mpriscell follows the active media player on the D-Bus session bus and
renders its state into a short markup string, while turning clicks on the
cell into transport commands for that player.
"""

__version__ = "0.1.0"
__author__ = "mpriscell Contributors"
__license__ = "GPL-2.0"

from mpriscell.module import MprisModule

__all__ = ["MprisModule", "__version__"]
