import pytest

from interactions_client.core.factory import ClientFactory, load
from interactions_client.functions.time_function import CurrentTimeFunction
from interactions_client.protocol.diagnostics import LoggingWireTap, NullWireTap
from interactions_client.transport.httpx_transport import HttpxTransport


def make_config(**overrides):
    cfg = {
        "api": {"base_url": "https://api.example.test", "version": "v1beta", "api_key": "k"},
        "limits": {"max_function_loops": 4, "function_timeout_sec": 3, "max_record_bytes": 1024},
        "content": {"strict_unknown": True},
        "diagnostics": {"wire_log": False},
        "logging": {"level": "WARNING"},
        "functions": {
            "enabled": ["get_current_time"],
            "registry": [
                {"name": "get_current_time", "impl": "interactions_client.functions.time_function.CurrentTimeFunction"}
            ],
        },
    }
    cfg.update(overrides)
    return cfg


def test_load_filters_constructor_kwargs():
    fn = load("interactions_client.functions.time_function.CurrentTimeFunction", unused="x")
    assert isinstance(fn, CurrentTimeFunction)
    assert load("interactions_client.core.config.deep_merge") is not None


@pytest.mark.asyncio
async def test_factory_builds_components_from_config():
    factory = ClientFactory(make_config())
    transport = factory.get_transport()
    assert isinstance(transport, HttpxTransport)
    assert transport is factory.get_transport()
    assert transport.base_url == "https://api.example.test"
    assert isinstance(factory.get_wire_tap(), NullWireTap)

    service = factory.get_interaction_service()
    assert service.strict is True
    assert service.max_record_bytes == 1024

    orchestrator = factory.get_orchestrator()
    assert orchestrator.max_iterations == 4
    assert factory.get_orchestrator(max_iterations=2).max_iterations == 2
    assert factory.get_registry().names() == ["get_current_time"]
    await factory.aclose()


def test_wire_log_enables_logging_tap():
    factory = ClientFactory(make_config(diagnostics={"wire_log": True}))
    assert isinstance(factory.get_wire_tap(), LoggingWireTap)
