"""Tests for RemoteBridge: forwarding once, no echo, subscribe requests, reconnect."""

from typing import Any, Dict, List

from core.bridge import RemoteBridge, connect_ack
from core.bus import EventBus
from core.events import ChannelMessage, MessageKind
from core.sessions import SessionTracker
from utils.constants import EVENT_CONNECTED, VETOED


class TestForwarding:

    def test_forward_once_for_remote_ancestor(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd.btn")
        bus.subscribe_remote("cmd.btn.1")

        bus.publish("cmd.btn.1", {"btn": 1})

        sent = channel.published()
        assert len(sent) == 1
        assert sent[0].event_name == "cmd.btn.1"
        assert sent[0].args == {"btn": 1}
        assert sent[0].routes == ("cmd.btn", "cmd.btn.1")

    def test_remote_only_event_counts_no_local_deliveries(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd")
        assert bus.publish("cmd.save") == 0
        assert len(channel.published()) == 1

    def test_local_only_fields_are_stripped(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe_remote("chat")

        def mark(args: Dict[str, Any]) -> None:
            args["processed"] = True

        bus.subscribe("chat", mark)
        payload = {"text": "hi", "peer_id": "p9"}
        bus.publish("chat.msg", payload)

        assert channel.published()[0].args == {"text": "hi"}
        assert payload["processed"] is True

    def test_vetoed_event_is_not_forwarded(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd")
        bus.add_veto_check("cmd.btn", lambda name, args, checking: True)
        assert bus.publish("cmd.btn.1") == VETOED
        assert channel.published() == []

    def test_not_remote_is_not_forwarded(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe("local", lambda args: None)
        bus.publish("local.only")
        assert channel.sent == []

    def test_unsubscribe_remote_stops_forwarding(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd")
        bus.unsubscribe_remote("cmd")
        bus.publish("cmd.x")
        assert channel.sent == []

    def test_remote_category_forwards_original_name(self, bus: EventBus, channel) -> None:
        RemoteBridge(bus, channel)
        bus.attach_category("cmd.edit", "undoable")
        bus.subscribe_remote(":undoable")
        bus.publish("cmd.edit.cut")
        sent = channel.published()
        assert [m.event_name for m in sent] == ["cmd.edit.cut"]
        assert sent[0].routes == (":undoable",)

    def test_detached_bridge_stops_forwarding(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd")
        bridge.detach()
        bus.publish("cmd")
        assert channel.sent == []

    def test_failing_channel_is_recorded_not_raised(self, bus: EventBus) -> None:
        class BrokenChannel:
            def send(self, message: ChannelMessage) -> None:
                raise ConnectionError("wire cut")

        RemoteBridge(bus, BrokenChannel())
        bus.subscribe_remote("cmd")
        bus.subscribe("cmd", lambda args: None)
        assert bus.publish("cmd") == 1
        assert bus.failures.count("NetworkError") == 1


class TestInbound:

    def test_inbound_publish_is_delivered_but_not_echoed(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bus.subscribe_remote("cmd.btn")
        calls: List[Dict[str, Any]] = []
        bus.subscribe("cmd.btn", calls.append)

        bridge.handle_message(ChannelMessage(MessageKind.PUBLISH, "cmd.btn.1", {"btn": 1}))

        assert len(calls) == 1
        assert calls[0]["btn"] == 1
        assert calls[0]["event_id"] == "cmd.btn.1"
        assert channel.sent == []

    def test_inbound_subscribe_marks_remote(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bridge.handle_message(ChannelMessage(MessageKind.SUBSCRIBE, "cmd.btn.1"))
        assert bus.is_remote("cmd.btn.1")
        bus.publish("cmd.btn.1")
        assert len(channel.published()) == 1

    def test_inbound_messages_without_name_are_protocol_errors(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bridge.handle_message(ChannelMessage(MessageKind.SUBSCRIBE))
        bridge.handle_message(ChannelMessage(MessageKind.PUBLISH, args={"x": 1}))
        assert bus.failures.count("ProtocolError") == 2

    def test_inbound_publish_from_peer_carries_peer_id(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel, tracker=SessionTracker(bus))
        calls: List[Dict[str, Any]] = []
        bus.subscribe("chat", calls.append)
        bridge.handle_message(ChannelMessage(MessageKind.PUBLISH, "chat", {"text": "hi"}), peer_id="p1")
        assert calls[0]["peer_id"] == "p1"

    def test_subscribe_from_unknown_peer_is_ignored(self, bus: EventBus, channel) -> None:
        tracker = SessionTracker(bus)
        bridge = RemoteBridge(bus, channel, tracker=tracker)
        bridge.handle_message(ChannelMessage(MessageKind.SUBSCRIBE, "secret"), peer_id="ghost")
        assert not bus.is_remote("secret")

        tracker.on_connect("p1")
        bridge.handle_message(ChannelMessage(MessageKind.SUBSCRIBE, "news"), peer_id="p1")
        assert bus.is_remote("news")
        assert tracker.get("p1").attached_event_names == {"news"}


class TestClientSubscribe:

    def test_subscribe_requests_remote_and_subscribes_locally(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        calls: List[str] = []
        handle = bridge.subscribe("cmd.btn.1", lambda args: calls.append("local"))

        assert handle is not None
        assert [(m.kind, m.event_name) for m in channel.sent] == [(MessageKind.SUBSCRIBE, "cmd.btn.1")]
        bus.publish("cmd.btn.1")
        assert calls == ["local"]

    def test_subscribe_client_server_switches(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)

        bridge.set_subscribe_client_server(on_client=False, on_server=True)
        assert bridge.subscribe("a", lambda args: None) is None
        assert bus.subscriber_count("a") == 0

        bridge.set_subscribe_client_server(on_client=True, on_server=False)
        assert bridge.subscribe("b", lambda args: None) is not None
        assert [m.event_name for m in channel.sent] == ["a"]

        bridge.set_subscribe_client_server()
        bridge.subscribe("c")
        assert [m.event_name for m in channel.sent] == ["a", "c"]

    def test_connect_ack_is_announced_locally(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bridge.subscribe("cmd.btn.1")
        channel.sent.clear()
        connected: List[Dict[str, Any]] = []
        bus.subscribe(EVENT_CONNECTED, connected.append)

        bridge.handle_message(ChannelMessage.from_wire("PubSubConnect", connect_ack("sid-1").to_wire()))

        assert connected[0]["peerID"] == "sid-1"
        assert channel.sent == []

    def test_resubscribe_replays_remembered_requests(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bridge.subscribe("cmd.btn.1")
        bridge.subscribe("cmd.btn.2")
        bridge.subscribe("cmd.btn.1")
        channel.sent.clear()

        bridge.resubscribe()
        bridge.resubscribe(peer_id="p7")

        assert [(m.event_name, m.target) for m in channel.sent] == [
            ("cmd.btn.1", None),
            ("cmd.btn.2", None),
            ("cmd.btn.1", "p7"),
            ("cmd.btn.2", "p7"),
        ]

    def test_targeted_requests_are_not_replayed(self, bus: EventBus, channel) -> None:
        bridge = RemoteBridge(bus, channel)
        bridge.request_subscription("cmd.btn.1", peer_id="p1")
        assert channel.sent[0].target == "p1"
        assert bridge.requested_subscriptions() == []


class TestLinkedBuses:

    def test_event_crosses_once_and_never_echoes(self, linked_buses) -> None:
        bus_a, bridge_a, bus_b, bridge_b = linked_buses
        received_a: List[str] = []
        received_b: List[str] = []
        bus_a.subscribe("cmd.btn", lambda args: received_a.append(args["event_id"]))

        # b wants cmd.btn events from a; a also wants them from b
        bridge_b.subscribe("cmd.btn", lambda args: received_b.append(args["event_id"]))
        bridge_a.subscribe("cmd.btn")

        bus_a.publish("cmd.btn.1", {"btn": 1})

        assert received_a == ["cmd.btn.1"]
        assert received_b == ["cmd.btn.1"]
        assert len(bridge_a.channel.sent) == 2  # subscribe request + one publish
        assert [m.kind for m in bridge_b.channel.sent] == [MessageKind.SUBSCRIBE]

    def test_payload_survives_the_round_trip(self, linked_buses) -> None:
        bus_a, bridge_a, bus_b, bridge_b = linked_buses
        received: List[Dict[str, Any]] = []
        bridge_b.subscribe("cmd.chk", received.append)

        bus_a.publish("cmd.chk", {"chk": 3, "checked": True})

        assert received[0]["chk"] == 3
        assert received[0]["checked"] is True
        assert received[0]["event_id"] == "cmd.chk"
