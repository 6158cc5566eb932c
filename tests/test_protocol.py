"""
Tests for the D-Bus protocol layer.

The bus is replaced by mocks of the dbus-fast proxy interfaces, so these
tests exercise name parsing, player ordering, signal translation and error
wrapping without a session bus.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from dbus_fast import Variant
from dbus_fast.errors import DBusError

from mpriscell.core import CommandError, DirectoryError, PlayerConnectionError, QueryError
from mpriscell.core.events import PlayerAppeared, PlayerSignal, PlayerVanished, SignalKind
from mpriscell.protocol.discovery import (
    DBUS_INTERFACE,
    PLAYERCTLD,
    PLAYERCTLD_INTERFACE,
    NameWatcher,
    PlayerDirectory,
    PlayerName,
)
from mpriscell.protocol.mpris import (
    PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    MprisConnection,
)

SERVICE_UNKNOWN = "org.freedesktop.DBus.Error.ServiceUnknown"


async def never_answers(*args: object) -> None:
    """Stand-in for a peer that stops replying."""
    await asyncio.Event().wait()


def make_bus(bus_names: list[str], playerctld_order: list[str] | None = None) -> MagicMock:
    """Mock MprisBus whose daemon lists `bus_names`."""
    daemon = MagicMock()
    daemon.call_list_names = AsyncMock(return_value=bus_names)
    playerctld = MagicMock()
    playerctld.get_player_names = AsyncMock(return_value=playerctld_order or [])

    async def get_interface(bus_name: str, path: str, interface: str) -> MagicMock:
        if interface == DBUS_INTERFACE:
            return daemon
        if interface == PLAYERCTLD_INTERFACE:
            return playerctld
        raise AssertionError(f"unexpected interface {interface}")

    bus = MagicMock()
    bus.get_interface = AsyncMock(side_effect=get_interface)
    bus.daemon = daemon
    return bus


def make_connection(metadata: dict | None = None, status: str = "Playing") -> tuple:
    """Real MprisConnection over mocked proxy interfaces."""
    player = MagicMock()
    player.get_playback_status = AsyncMock(return_value=status)
    player.get_metadata = AsyncMock(return_value=metadata or {})
    player.call_play_pause = AsyncMock()
    player.call_previous = AsyncMock()
    player.call_next = AsyncMock()
    properties = MagicMock()
    posted: list = []
    connection = MprisConnection(
        PlayerName.from_instance("spotify"), player, properties, posted.append, timeout=0.05
    )
    return connection, player, properties, posted


class TestPlayerName:
    """Tests for PlayerName parsing."""

    def test_from_bus_name(self) -> None:
        """Plain MPRIS names parse into instance and name."""
        player = PlayerName.from_bus_name("org.mpris.MediaPlayer2.spotify")
        assert player is not None
        assert player.instance == "spotify"
        assert player.name == "spotify"

    def test_instance_suffix(self) -> None:
        """Instance suffixes are stripped from the name only."""
        player = PlayerName.from_bus_name("org.mpris.MediaPlayer2.firefox.instance_1_23")
        assert player is not None
        assert player.instance == "firefox.instance_1_23"
        assert player.name == "firefox"

    def test_non_mpris_name(self) -> None:
        """Other bus names are not players."""
        assert PlayerName.from_bus_name("org.freedesktop.Notifications") is None
        assert PlayerName.from_bus_name(":1.42") is None
        assert PlayerName.from_bus_name("org.mpris.MediaPlayer2.") is None

    def test_from_instance(self) -> None:
        """Names can be built from an instance."""
        assert PlayerName.from_instance("mpv").bus_name == "org.mpris.MediaPlayer2.mpv"


class TestPlayerDirectory:
    """Tests for PlayerDirectory."""

    @pytest.mark.asyncio
    async def test_list_without_playerctld(self) -> None:
        """Without playerctld, MPRIS names are listed sorted."""
        bus = make_bus(
            [
                "org.freedesktop.DBus",
                "org.mpris.MediaPlayer2.spotify",
                ":1.7",
                "org.mpris.MediaPlayer2.mpv",
            ]
        )
        players = await PlayerDirectory(bus).list_players()
        assert [p.instance for p in players] == ["mpv", "spotify"]

    @pytest.mark.asyncio
    async def test_list_with_playerctld_order(self) -> None:
        """playerctld supplies the activity order and is not listed itself."""
        bus = make_bus(
            [
                "org.mpris.MediaPlayer2.mpv",
                "org.mpris.MediaPlayer2.spotify",
                PLAYERCTLD.bus_name,
            ],
            playerctld_order=["org.mpris.MediaPlayer2.spotify", "org.mpris.MediaPlayer2.mpv"],
        )
        players = await PlayerDirectory(bus).list_players()
        assert [p.name for p in players] == ["spotify", "mpv"]

    @pytest.mark.asyncio
    async def test_list_failure(self) -> None:
        """Bus errors while listing raise DirectoryError."""
        bus = make_bus([])
        bus.daemon.call_list_names.side_effect = DBusError(SERVICE_UNKNOWN, "gone")
        with pytest.raises(DirectoryError):
            await PlayerDirectory(bus).list_players()

    @pytest.mark.asyncio
    async def test_resolve_alias_prefers_playerctld(self) -> None:
        """The alias binds to playerctld when it runs."""
        bus = make_bus(["org.mpris.MediaPlayer2.mpv", PLAYERCTLD.bus_name])
        assert await PlayerDirectory(bus).resolve("playerctld") == PLAYERCTLD

    @pytest.mark.asyncio
    async def test_resolve_alias_without_playerctld(self) -> None:
        """Without playerctld the alias binds to the first listed player."""
        bus = make_bus(["org.mpris.MediaPlayer2.vlc", "org.mpris.MediaPlayer2.mpv"])
        player = await PlayerDirectory(bus).resolve("playerctld")
        assert player.instance == "mpv"

    @pytest.mark.asyncio
    async def test_resolve_alias_nothing_running(self) -> None:
        """The alias cannot resolve when no player runs."""
        bus = make_bus(["org.freedesktop.DBus"])
        with pytest.raises(PlayerConnectionError, match="no players"):
            await PlayerDirectory(bus).resolve("playerctld")

    @pytest.mark.asyncio
    async def test_resolve_exact_instance_first(self) -> None:
        """An exact instance match wins over a name match."""
        bus = make_bus(
            [
                "org.mpris.MediaPlayer2.firefox.instance_1_2",
                "org.mpris.MediaPlayer2.firefox",
            ]
        )
        player = await PlayerDirectory(bus).resolve("firefox")
        assert player.instance == "firefox"

    @pytest.mark.asyncio
    async def test_resolve_by_name(self) -> None:
        """A target can match the name of an instanced player."""
        bus = make_bus(["org.mpris.MediaPlayer2.firefox.instance_1_2"])
        player = await PlayerDirectory(bus).resolve("firefox")
        assert player.instance == "firefox.instance_1_2"

    @pytest.mark.asyncio
    async def test_resolve_not_running(self) -> None:
        """A target that is not running cannot be resolved."""
        bus = make_bus(["org.mpris.MediaPlayer2.mpv"])
        with pytest.raises(PlayerConnectionError, match="spotify"):
            await PlayerDirectory(bus).resolve("spotify")

    @pytest.mark.asyncio
    async def test_list_timeout(self) -> None:
        """A bus daemon that does not reply raises DirectoryError."""
        bus = make_bus([])
        bus.daemon.call_list_names.side_effect = never_answers
        with pytest.raises(DirectoryError, match="timed out"):
            await PlayerDirectory(bus, timeout=0.05).list_players()

    @pytest.mark.asyncio
    async def test_playerctld_timeout(self) -> None:
        """playerctld not replying with its order raises DirectoryError."""
        bus = make_bus([PLAYERCTLD.bus_name])
        playerctld = await bus.get_interface(PLAYERCTLD.bus_name, "/", PLAYERCTLD_INTERFACE)
        playerctld.get_player_names.side_effect = never_answers
        with pytest.raises(DirectoryError):
            await PlayerDirectory(bus, timeout=0.05).list_players()


class TestNameWatcher:
    """Tests for NameWatcher."""

    @pytest.mark.asyncio
    async def test_appear_and_vanish(self) -> None:
        """Owner changes of MPRIS names become events."""
        bus = make_bus([])
        posted: list = []
        watcher = NameWatcher(bus, posted.append)
        await watcher.start()

        handler = bus.daemon.on_name_owner_changed.call_args[0][0]
        handler("org.mpris.MediaPlayer2.spotify", "", ":1.50")
        handler("org.mpris.MediaPlayer2.spotify", ":1.50", "")

        assert isinstance(posted[0], PlayerAppeared)
        assert posted[0].instance == "spotify"
        assert isinstance(posted[1], PlayerVanished)
        assert posted[1].instance == "spotify"

    @pytest.mark.asyncio
    async def test_other_names_ignored(self) -> None:
        """Non-MPRIS names do not produce events."""
        bus = make_bus([])
        posted: list = []
        watcher = NameWatcher(bus, posted.append)
        await watcher.start()

        handler = bus.daemon.on_name_owner_changed.call_args[0][0]
        handler("org.freedesktop.Notifications", "", ":1.3")
        handler(":1.3", ":1.3", "")
        assert posted == []

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self) -> None:
        """After stop() no events are posted."""
        bus = make_bus([])
        posted: list = []
        watcher = NameWatcher(bus, posted.append)
        await watcher.start()
        handler = bus.daemon.on_name_owner_changed.call_args[0][0]

        watcher.stop()
        bus.daemon.off_name_owner_changed.assert_called_once_with(handler)
        handler("org.mpris.MediaPlayer2.spotify", "", ":1.50")
        assert posted == []
        assert watcher.is_running is False

    @pytest.mark.asyncio
    async def test_start_failure(self) -> None:
        """A bus failure while subscribing raises DirectoryError."""
        bus = MagicMock()
        bus.get_interface = AsyncMock(side_effect=DBusError(SERVICE_UNKNOWN, "no bus"))
        watcher = NameWatcher(bus, lambda event: None)
        with pytest.raises(DirectoryError):
            await watcher.start()


class TestMprisConnection:
    """Tests for MprisConnection."""

    @pytest.mark.asyncio
    async def test_open_subscribes(self) -> None:
        """Opening a connection subscribes to property changes."""
        player = MagicMock()
        properties = MagicMock()

        async def get_interface(bus_name: str, path: str, interface: str) -> MagicMock:
            assert bus_name == "org.mpris.MediaPlayer2.mpv"
            return {PLAYER_INTERFACE: player, PROPERTIES_INTERFACE: properties}[interface]

        bus = MagicMock()
        bus.get_interface = AsyncMock(side_effect=get_interface)

        connection = await MprisConnection.open(bus, PlayerName.from_instance("mpv"), print)
        properties.on_properties_changed.assert_called_once()
        assert connection.player_name.instance == "mpv"

    @pytest.mark.asyncio
    async def test_open_failure(self) -> None:
        """An unreachable player raises PlayerConnectionError."""
        bus = MagicMock()
        bus.get_interface = AsyncMock(side_effect=DBusError(SERVICE_UNKNOWN, "gone"))
        with pytest.raises(PlayerConnectionError, match="mpv"):
            await MprisConnection.open(bus, PlayerName.from_instance("mpv"), print)

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            ("Playing", SignalKind.PLAY),
            ("Paused", SignalKind.PAUSE),
            ("Stopped", SignalKind.STOP),
        ],
    )
    def test_status_signals(self, status: str, kind: SignalKind) -> None:
        """PlaybackStatus changes become play/pause/stop signals."""
        connection, _, _, posted = make_connection()
        connection._on_properties_changed(
            PLAYER_INTERFACE, {"PlaybackStatus": Variant("s", status)}, []
        )
        assert len(posted) == 1
        assert isinstance(posted[0], PlayerSignal)
        assert posted[0].kind is kind

    def test_metadata_signal(self) -> None:
        """Metadata changes become metadata signals."""
        connection, _, _, posted = make_connection()
        connection._on_properties_changed(
            PLAYER_INTERFACE, {"Metadata": Variant("a{sv}", {})}, []
        )
        assert [event.kind for event in posted] == [SignalKind.METADATA]

    def test_other_interfaces_ignored(self) -> None:
        """Changes on other interfaces are ignored."""
        connection, _, _, posted = make_connection()
        connection._on_properties_changed(
            "org.mpris.MediaPlayer2", {"Identity": Variant("s", "Spotify")}, []
        )
        assert posted == []

    def test_close_unsubscribes(self) -> None:
        """A closed connection stops posting and unsubscribes once."""
        connection, _, properties, posted = make_connection()
        connection.close()
        connection.close()
        properties.off_properties_changed.assert_called_once()
        connection._on_properties_changed(
            PLAYER_INTERFACE, {"PlaybackStatus": Variant("s", "Playing")}, []
        )
        assert posted == []
        assert connection.closed is True

    @pytest.mark.asyncio
    async def test_metadata_text(self) -> None:
        """Metadata values are unwrapped; lists are joined."""
        connection, _, _, _ = make_connection(
            {
                "xesam:artist": Variant("as", ["A", "B"]),
                "xesam:title": Variant("s", "C"),
                "mpris:length": Variant("x", 125_000_000),
            }
        )
        assert await connection.get_metadata_text("xesam:artist") == "A, B"
        assert await connection.get_metadata_text("xesam:title") == "C"
        assert await connection.get_metadata_text("xesam:album") == ""
        assert await connection.get_metadata_value("mpris:length") == 125_000_000

    @pytest.mark.asyncio
    async def test_query_failure(self) -> None:
        """Bus errors during queries raise QueryError."""
        connection, player, _, _ = make_connection()
        player.get_metadata.side_effect = DBusError(SERVICE_UNKNOWN, "gone")
        player.get_playback_status.side_effect = DBusError(SERVICE_UNKNOWN, "gone")
        with pytest.raises(QueryError):
            await connection.get_metadata_text("xesam:title")
        with pytest.raises(QueryError):
            await connection.get_playback_status()

    @pytest.mark.asyncio
    async def test_commands(self) -> None:
        """Transport commands call the player methods."""
        connection, player, _, _ = make_connection()
        await connection.play_pause()
        await connection.previous()
        await connection.next()
        player.call_play_pause.assert_awaited_once()
        player.call_previous.assert_awaited_once()
        player.call_next.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_command_failure(self) -> None:
        """Failed commands raise CommandError."""
        connection, player, _, _ = make_connection()
        player.call_next.side_effect = DBusError("org.mpris.MediaPlayer2.Error", "nope")
        with pytest.raises(CommandError, match="Next"):
            await connection.next()

    @pytest.mark.asyncio
    async def test_query_timeout(self) -> None:
        """A player that stops answering raises QueryError instead of hanging."""
        connection, player, _, _ = make_connection()
        player.get_playback_status.side_effect = never_answers
        player.get_metadata.side_effect = never_answers
        with pytest.raises(QueryError, match="timed out"):
            await asyncio.wait_for(connection.get_playback_status(), 2.0)
        with pytest.raises(QueryError, match="timed out"):
            await asyncio.wait_for(connection.get_metadata_text("xesam:title"), 2.0)

    @pytest.mark.asyncio
    async def test_command_timeout(self) -> None:
        """A command the player never answers raises CommandError."""
        connection, player, _, _ = make_connection()
        player.call_play_pause.side_effect = never_answers
        with pytest.raises(CommandError, match="PlayPause"):
            await asyncio.wait_for(connection.play_pause(), 2.0)
