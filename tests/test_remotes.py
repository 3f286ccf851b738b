"""
Tests for bound remotes and service bindings.

Uses shared fixtures from conftest.py:
- hub: CommHub with a mock publisher
- binding: ServiceBinding named "TestService"
- published: Reads back (client_id, LoomMessage) pairs sent to the publisher
"""

import asyncio

import pytest

from loom.comm.protocol import EVENT_PROPERTY, EVENT_SIGNAL
from loom.comm.remotes import RemoteMethod, RemoteProperty, RemoteSignal
from loom.exceptions import CommError, MiddlewareRejected


def reject_all(client_id, args):
    return False


def params_of(published):
    return [(client_id, message.params) for client_id, message in published()]


# =============================================================================
# Methods
# =============================================================================

class TestRemoteMethod:
    """Client-invokable methods."""

    def test_invoke_passes_client_id(self, binding):
        method = binding.wrap_method({"add": lambda client_id, a, b: (client_id, a + b)}, "add")

        assert asyncio.run(method.invoke("c1", [2, 3])) == ("c1", 5)

    def test_invoke_awaits_coroutine_handlers(self, binding):
        async def fetch(client_id, key):
            await asyncio.sleep(0)
            return key.upper()

        method = binding.wrap_method({"fetch": fetch}, "fetch")

        assert asyncio.run(method.invoke("c1", ["k"])) == "K"

    def test_direct_call_skips_middleware(self, binding):
        method = binding.wrap_method({"say": lambda client_id, msg: msg}, "say", inbound=reject_all)

        assert method("server", "hi") == "hi"

    def test_inbound_rejection(self, binding):
        calls = []
        method = binding.wrap_method({"say": lambda *a: calls.append(a)}, "say", inbound=reject_all)

        with pytest.raises(MiddlewareRejected) as exc_info:
            asyncio.run(method.invoke("c1", ["hi"]))

        assert exc_info.value.name == "TestService.say"
        assert exc_info.value.client_id == "c1"
        assert calls == []

    def test_inbound_rewrites_args(self, binding):
        method = binding.wrap_method(
            {"say": lambda client_id, msg: msg},
            "say",
            inbound=lambda client_id, args: (True, (args[0].strip(),)),
        )

        assert asyncio.run(method.invoke("c1", ["  hi  "])) == "hi"

    def test_outbound_rewrites_result(self, binding):
        method = binding.wrap_method(
            {"say": lambda client_id, msg: msg},
            "say",
            outbound=lambda client_id, args: (True, (f"<{args[0]}>",)),
        )

        assert asyncio.run(method.invoke("c1", ["hi"])) == "<hi>"

    def test_outbound_stop_returns_none(self, binding):
        method = binding.wrap_method({"secret": lambda client_id: 42}, "secret", outbound=reject_all)

        assert asyncio.run(method.invoke("c1")) is None

    def test_wrap_rejects_non_callable(self, binding):
        with pytest.raises(CommError, match="not callable"):
            binding.wrap_method({"x": 3}, "x")

    def test_handler_errors_propagate(self, binding):
        def broken(client_id):
            raise KeyError("missing")

        method = binding.wrap_method({"broken": broken}, "broken")

        with pytest.raises(KeyError):
            asyncio.run(method.invoke("c1"))


# =============================================================================
# Signals
# =============================================================================

class TestRemoteSignal:
    """Fires towards clients and handlers for fires from clients."""

    def test_fire_to_one_client(self, binding, published):
        signal = binding.create_signal("ping")

        assert signal.fire("c1", 1, "two")

        client_id, message = published()[0]
        assert client_id == "c1"
        assert message.type == "event"
        assert message.method == EVENT_SIGNAL
        assert message.params == {"service": "TestService", "name": "ping", "args": [1, "two"]}

    def test_fire_all_broadcasts_once(self, binding, published):
        signal = binding.create_signal("ping")

        signal.fire_all("hello")

        assert params_of(published) == [
            (None, {"service": "TestService", "name": "ping", "args": ["hello"]}),
        ]

    def test_fire_for(self, binding, published):
        signal = binding.create_signal("ping")

        assert signal.fire_for(["a", "b"], 7) == 2
        assert [c for c, _ in published()] == ["a", "b"]

    def test_fire_except(self, hub, binding, published):
        for client_id in ("a", "b", "c"):
            hub.add_client(client_id)
        signal = binding.create_signal("ping")

        assert signal.fire_except("b") == 2
        assert sorted(c for c, _ in published()) == ["a", "c"]

    def test_fire_filter(self, hub, binding, published):
        for client_id in ("p1", "p2", "spectator"):
            hub.add_client(client_id)
        signal = binding.create_signal("ping")

        delivered = signal.fire_filter(lambda client_id, score: client_id.startswith("p"), 10)

        assert delivered == 2
        assert sorted(c for c, _ in published()) == ["p1", "p2"]

    def test_outbound_middleware_per_client(self, binding, published):
        signal = binding.create_signal("ping", outbound=lambda client_id, args: client_id != "muted")

        assert signal.fire_for(["loud", "muted"], "x") == 1
        assert [c for c, _ in published()] == ["loud"]
        assert not signal.fire("muted", "x")

    def test_receive_calls_connected_handlers(self, binding):
        received = []
        signal = binding.create_signal("chat")
        signal.connect(lambda client_id, text: received.append(("sync", client_id, text)))

        async def handler(client_id, text):
            received.append(("async", client_id, text))

        signal.connect(handler)

        assert asyncio.run(signal.receive("c1", ["hey"])) == 2
        assert received == [("sync", "c1", "hey"), ("async", "c1", "hey")]

    def test_receive_respects_inbound_middleware(self, binding):
        received = []
        signal = binding.create_signal("chat", inbound=reject_all)
        signal.connect(lambda client_id, text: received.append(text))

        with pytest.raises(MiddlewareRejected):
            asyncio.run(signal.receive("c1", ["hey"]))

        assert received == []

    def test_disconnect(self, binding):
        received = []
        signal = binding.create_signal("chat")
        connection = signal.connect(lambda client_id: received.append(client_id))

        connection.disconnect()
        connection.disconnect()

        assert asyncio.run(signal.receive("c1")) == 0
        assert signal.connection_count == 0
        assert received == []

    def test_disconnect_all(self, binding):
        signal = binding.create_signal("chat")
        signal.connect(lambda client_id: None)
        signal.connect(lambda client_id: None)

        signal.disconnect_all()

        assert signal.connection_count == 0

    def test_connect_rejects_non_callable(self, binding):
        signal = binding.create_signal("chat")

        with pytest.raises(TypeError):
            signal.connect("handler")


# =============================================================================
# Properties
# =============================================================================

class TestRemoteProperty:
    """Replicated values with per-client overrides."""

    def test_initial_value(self, binding, published):
        prop = binding.create_property("score", 7)

        assert prop.get() == 7
        assert prop.get_for("anyone") == 7
        assert published() == []

    def test_set_replicates_to_everyone(self, binding, published):
        prop = binding.create_property("score", 0)

        prop.set(3)

        client_id, message = published()[0]
        assert client_id is None
        assert message.method == EVENT_PROPERTY
        assert message.params == {"service": "TestService", "name": "score", "value": 3}

    def test_set_for_overrides_one_client(self, binding, published):
        prop = binding.create_property("score", 0)

        prop.set_for("c1", 99)

        assert prop.get_for("c1") == 99
        assert prop.get_for("c2") == 0
        assert prop.has_override("c1")
        assert params_of(published)[-1] == ("c1", {"service": "TestService", "name": "score", "value": 99})

    def test_set_clears_overrides(self, binding):
        prop = binding.create_property("score", 0)
        prop.set_for("c1", 99)

        prop.set(5)

        assert prop.get_for("c1") == 5
        assert not prop.has_override("c1")

    def test_set_top_keeps_overrides(self, hub, binding, published):
        hub.add_client("c1")
        hub.add_client("c2")
        prop = binding.create_property("score", 0)
        prop.set_for("c1", 99)
        sent_before = len(published())

        prop.set_top(5)

        assert prop.get() == 5
        assert prop.get_for("c1") == 99
        assert prop.get_for("c2") == 5
        assert [c for c, _ in published()[sent_before:]] == ["c2"]

    def test_set_filter(self, hub, binding):
        for client_id in ("red-1", "red-2", "blue-1"):
            hub.add_client(client_id)
        prop = binding.create_property("team_bonus", 0)

        prop.set_filter(lambda client_id, value: client_id.startswith("red"), 10)

        assert prop.get_for("red-1") == 10
        assert prop.get_for("red-2") == 10
        assert prop.get_for("blue-1") == 0

    def test_clear_for_restores_top_value(self, binding, published):
        prop = binding.create_property("score", 1)
        prop.set_for("c1", 50)

        prop.clear_for("c1")

        assert prop.get_for("c1") == 1
        assert params_of(published)[-1][1]["value"] == 1

    def test_forget_client_on_disconnect(self, hub, binding):
        hub.add_client("c1")
        prop = binding.create_property("score", 1)
        prop.set_for("c1", 50)

        hub.remove_client("c1")

        assert not prop.has_override("c1")
        assert "c1" not in hub.clients

    def test_read_uses_client_view(self, binding):
        prop = binding.create_property("score", 1)
        prop.set_for("c1", 50)

        assert prop.read("c1") == 50
        assert prop.read("c2") == 1

    def test_read_rejected_inbound(self, binding):
        prop = binding.create_property("score", 1, inbound=reject_all)

        with pytest.raises(MiddlewareRejected):
            prop.read("c1")

    def test_read_withheld_outbound(self, binding):
        prop = binding.create_property(
            "secret", "s3cr3t", outbound=lambda client_id, args: client_id == "owner"
        )

        assert prop.read("owner") == "s3cr3t"
        with pytest.raises(MiddlewareRejected):
            prop.read("intruder")

    def test_outbound_stops_replication(self, binding, published):
        prop = binding.create_property("score", 0, outbound=reject_all)

        prop.set(1)

        assert prop.get() == 1
        assert published() == []


# =============================================================================
# Bindings
# =============================================================================

class TestServiceBinding:
    """Per-service remote registry."""

    def test_duplicate_names_rejected(self, binding):
        binding.create_signal("ping")

        with pytest.raises(CommError, match="already bound"):
            binding.create_property("ping")

    def test_get_remote_by_kind(self, binding):
        signal = binding.create_signal("ping")

        assert binding.get_remote("ping") is signal
        assert binding.get_remote("ping", RemoteSignal) is signal
        assert binding.get_remote("ping", RemoteMethod) is None
        assert binding.get_remote("missing") is None

    def test_qualified_name(self, binding):
        assert binding.create_signal("ping").qualified_name == "TestService.ping"

    def test_describe(self, binding):
        binding.wrap_method({"say": lambda client_id, msg: msg}, "say")
        binding.create_signal("ping")
        binding.create_property("volume", 5)
        hidden = binding.create_property("secret", 1, outbound=reject_all)

        manifest = binding.describe("c1")

        assert manifest == {
            "methods": ["say"],
            "signals": ["ping"],
            "properties": {"volume": 5},
        }
        assert isinstance(hidden, RemoteProperty)

    def test_describe_shows_client_override(self, binding):
        prop = binding.create_property("volume", 5)
        prop.set_for("c1", 11)

        assert binding.describe("c1")["properties"] == {"volume": 11}
        assert binding.describe("c2")["properties"] == {"volume": 5}

    def test_clients_follow_hub(self, hub, binding):
        hub.add_client("c1")

        assert binding.clients == frozenset({"c1"})

    def test_publish_without_publisher_is_dropped(self, hub, binding):
        hub.publisher = None
        signal = binding.create_signal("ping")

        assert signal.fire_all("lost")
