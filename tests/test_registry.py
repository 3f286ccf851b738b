"""
Tests for service registration.

Uses shared fixtures from conftest.py:
- hub: CommHub with a mock publisher
- runtime: Runtime backed by that hub
"""

import copy

import pytest

from loom import (
    ClientSurface,
    DuplicateServiceError,
    Service,
    ServiceNotFoundError,
    ServiceValidationError,
    create_signal,
)
from loom.comm.binding import ServiceBinding
from loom.registry import ServiceRegistry


@pytest.fixture
def registry(hub):
    return ServiceRegistry(hub)


class TestCreateServiceValidation:
    """Malformed definitions are rejected at declaration time."""

    @pytest.mark.parametrize("definition", [None, 42, "EchoService", ["EchoService"]])
    def test_rejects_non_mapping(self, registry, definition):
        with pytest.raises(ServiceValidationError, match="must be a Service or a mapping"):
            registry.create_service(definition)

    def test_rejects_missing_name(self, registry):
        with pytest.raises(ServiceValidationError, match="non-empty"):
            registry.create_service({"client": {}})

    def test_rejects_empty_name(self, registry):
        with pytest.raises(ServiceValidationError, match="non-empty"):
            registry.create_service({"name": ""})

    def test_rejects_non_string_name(self, registry):
        with pytest.raises(ServiceValidationError, match="must be a string"):
            registry.create_service({"name": 7})

    def test_rejects_non_mapping_client(self, registry):
        with pytest.raises(ServiceValidationError, match="client must be a mapping"):
            registry.create_service({"name": "Bad", "client": [1, 2]})

    def test_rejects_non_callable_hook(self, registry):
        with pytest.raises(ServiceValidationError, match="on_init must be callable"):
            registry.create_service({"name": "Bad", "on_init": "soon"})

    def test_rejects_non_callable_hook_attribute(self, registry):
        class Broken(Service):
            name = "Broken"
            on_start = 5

        with pytest.raises(ServiceValidationError, match="on_start must be callable"):
            registry.create_service(Broken())

    def test_validation_error_is_value_error(self, registry):
        with pytest.raises(ValueError):
            registry.create_service({"name": ""})

    def test_failed_definition_is_not_registered(self, registry, hub):
        with pytest.raises(ServiceValidationError):
            registry.create_service({"name": "Bad", "client": 3})

        assert "Bad" not in registry
        assert hub.get_binding("Bad") is None


class TestUniqueness:
    """Names are unique across the registry."""

    def test_duplicate_name_fails(self, registry):
        registry.create_service({"name": "EchoService"})

        with pytest.raises(DuplicateServiceError) as exc_info:
            registry.create_service({"name": "EchoService"})

        assert exc_info.value.service_name == "EchoService"
        assert 'Service "EchoService" already exists' in str(exc_info.value)

    def test_same_instance_cannot_register_twice(self, registry):
        service = Service(name="Once")
        registry.create_service(service)

        with pytest.raises(DuplicateServiceError):
            registry.create_service(service)

    def test_same_name_implies_same_service(self, registry):
        created = [registry.create_service({"name": n}) for n in ("A", "B", "C")]

        for service in created:
            assert registry.get(service.name) is service


class TestClientSurface:
    """Every service ends up with a ClientSurface pointing back at it."""

    def test_synthesizes_empty_surface(self, registry):
        service = registry.create_service({"name": "Plain"})

        assert isinstance(service.client, ClientSurface)
        assert len(service.client) == 0
        assert service.client.server is service

    def test_wraps_mapping_surface(self, registry):
        say = lambda client_id, msg: msg
        service = registry.create_service({"name": "Echo", "client": {"say": say}})

        assert service.client["say"] is say
        assert service.client.say is say
        assert service.client.server is service

    def test_overwrites_stale_back_reference(self, registry):
        stale = Service(name="Old")
        surface = ClientSurface({"ping": create_signal()}, server=stale)

        service = registry.create_service({"name": "New", "client": surface})

        assert service.client is surface
        assert surface.server is service

    def test_class_level_client_is_not_mutated(self, registry):
        class Chat(Service):
            name = "Chat"
            client = {"posted": create_signal()}

        service = registry.create_service(Chat())
        service.client["extra"] = 1

        assert Chat.client == {"posted": create_signal()}

    def test_server_is_not_an_entry(self, registry):
        service = registry.create_service({"name": "Echo", "client": {"a": 1}})

        assert list(service.client) == ["a"]
        assert "server" not in service.client

    def test_attribute_assignment_adds_entry(self, registry):
        service = registry.create_service({"name": "Echo"})
        service.client.shout = lambda client_id, msg: msg.upper()

        assert "shout" in service.client


class TestRegistration:
    """Registered services carry a binding and hook capabilities."""

    def test_allocates_fresh_binding(self, registry, hub):
        service = registry.create_service({"name": "Echo"})

        assert isinstance(service.comm, ServiceBinding)
        assert service.comm.service_name == "Echo"
        assert not service.comm.is_bound
        assert hub.get_binding("Echo") is service.comm

    def test_detects_subclass_hooks(self, registry):
        class Both(Service):
            name = "Both"

            def on_init(self):
                pass

            async def on_start(self):
                pass

        service = registry.create_service(Both())

        assert service.has_init
        assert service.has_start

    def test_no_hooks(self, registry):
        service = registry.create_service({"name": "Plain"})

        assert not service.has_init
        assert not service.has_start

    def test_mapping_hooks_receive_service(self, registry):
        seen = []
        service = registry.create_service({
            "name": "Hooked",
            "on_init": lambda svc: seen.append(svc),
        })

        service.on_init()

        assert seen == [service]
        assert service.has_init
        assert not service.has_start

    def test_extra_fields_become_attributes(self, registry):
        service = registry.create_service({"name": "Shop", "prices": {"apple": 3}})

        assert service.prices == {"apple": 3}

    def test_get_unknown_service(self, registry):
        with pytest.raises(ServiceNotFoundError, match='Could not find service "Nope"'):
            registry.get("Nope")

    def test_get_rejects_non_string(self, registry):
        with pytest.raises(ServiceValidationError):
            registry.get(None)

    def test_names_sorted(self, registry):
        for name in ("Zeta", "Alpha", "Mid"):
            registry.create_service({"name": name})

        assert registry.names == ["Alpha", "Mid", "Zeta"]
        assert len(registry) == 3


class TestReservedFields:
    """Mapping keys may not shadow Service internals."""

    @pytest.mark.parametrize("key", [
        "self", "comm", "has_init", "has_start", "detect_hooks", "from_mapping", "_hook", "_private",
    ])
    def test_rejects_shadowing_key(self, registry, key):
        with pytest.raises(ServiceValidationError, match="shadow Service internals") as exc_info:
            registry.create_service({"name": "Odd", key: 1})

        assert key in str(exc_info.value)
        assert "Odd" not in registry

    def test_lists_every_shadowing_key(self, registry):
        with pytest.raises(ServiceValidationError, match="comm, self"):
            registry.create_service({"name": "Odd", "self": 1, "comm": "mine"})

    def test_hooks_and_surface_still_allowed(self, registry):
        service = registry.create_service({
            "name": "Fine",
            "client": {},
            "on_init": lambda svc: None,
            "on_start": None,
        })

        assert service.has_init
        assert not service.has_start


class TestClientSurfaceCopy:
    """Private lookups never fall through to the entries."""

    def test_copy(self, registry):
        service = registry.create_service({"name": "Echo", "client": {"a": 1}})

        duplicate = copy.copy(service.client)

        assert duplicate["a"] == 1
        assert duplicate.server is service

    def test_missing_private_attribute(self):
        surface = ClientSurface({"_hidden": 1})

        with pytest.raises(AttributeError):
            surface._hidden
        assert surface["_hidden"] == 1

    def test_missing_entry(self):
        with pytest.raises(AttributeError, match="no entry 'nope'"):
            ClientSurface().nope
