"""Tests for NetworkManager wiring and the command-line helpers."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from core.bus import EventBus
from main import parse_args, parse_command
from Managers.Network_Manager import ROLE_CLIENT, ROLE_SERVER, NetworkManager
from utils.config import Config


@pytest.fixture
def config(tmp_path: Path) -> Config:
    config = Config(str(tmp_path), environ={})
    config.set("network.default_subscriptions", ["cmd.btn.1", "cmd.chk"])
    config.set("network.namespace", "/UT")
    return config


class TestServerRole:

    def test_new_peer_is_asked_for_default_subscriptions(self, config: Config, bus: EventBus) -> None:
        manager = NetworkManager(config, bus, role=ROLE_SERVER)
        manager.server_socket.sio = MagicMock()

        manager.tracker.on_connect("sid1")

        calls = manager.server_socket.sio.emit.call_args_list
        assert [(c.args[0], c.args[1]["eventID"], c.kwargs["to"]) for c in calls] == [
            ("PubSubSubscribe", "cmd.btn.1", "sid1"),
            ("PubSubSubscribe", "cmd.chk", "sid1"),
        ]

    def test_new_peer_also_gets_names_subscribed_before_it_connected(self, config: Config, bus: EventBus) -> None:
        manager = NetworkManager(config, bus, role=ROLE_SERVER)
        manager.server_socket.sio = MagicMock()
        manager.bridge.subscribe("status", lambda args: None)
        manager.bridge.subscribe("cmd.chk")

        manager.tracker.on_connect("sid1")

        calls = manager.server_socket.sio.emit.call_args_list
        assert [(c.args[1]["eventID"], c.kwargs["to"]) for c in calls if c.kwargs.get("to")] == [
            ("status", "sid1"),
            ("cmd.chk", "sid1"),
            ("cmd.btn.1", "sid1"),
        ]

    def test_stop_unhooks_bus(self, config: Config, bus: EventBus) -> None:
        manager = NetworkManager(config, bus, role=ROLE_SERVER)
        assert bus.subscriber_count("pubsub.peer.connect") == 1
        manager.stop()
        assert bus.subscriber_count("pubsub.peer.connect") == 0


class TestClientRole:

    def test_failed_connect_reports_false(self, config: Config, bus: EventBus) -> None:
        manager = NetworkManager(config, bus, role=ROLE_CLIENT)
        manager.socket.connect = MagicMock(return_value=False)
        assert manager.start() is False
        assert bus.failures.count("NetworkError") == 1

    def test_remote_events_flow_to_socket(self, config: Config, bus: EventBus) -> None:
        manager = NetworkManager(config, bus, role=ROLE_CLIENT)
        manager.socket.sio = MagicMock()
        manager.socket.connected = True

        bus.subscribe_remote("cmd.btn")
        bus.publish("cmd.btn.1", {"btn": 1})

        manager.socket.sio.emit.assert_called_once_with(
            "PubSubPublish", {"eventID": "cmd.btn.1", "args": {"btn": 1}}, namespace="/UT"
        )

    def test_unknown_role_rejected(self, config: Config, bus: EventBus) -> None:
        with pytest.raises(ValueError):
            NetworkManager(config, bus, role="peer")


class TestCommandLine:

    def test_parse_command(self) -> None:
        assert parse_command('cmd.btn.1 {"btn": 1}') == ("cmd.btn.1", {"btn": 1})
        assert parse_command("cmd.chk") == ("cmd.chk", {})
        assert parse_command("   ") is None

    def test_parse_command_rejects_non_object_args(self) -> None:
        with pytest.raises(ValueError):
            parse_command("cmd [1, 2]")
        with pytest.raises(ValueError):
            parse_command("cmd {broken")

    def test_parse_args(self) -> None:
        args = parse_args(["--server", "--port", "9000", "--subscribe", "a", "--subscribe", "b"])
        assert args.server is True
        assert args.port == 9000
        assert args.subscribe == ["a", "b"]
