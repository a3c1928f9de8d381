from node_agent.executor.runtime_context import AgentContext, CapabilityState
from node_agent.tests.fakes import FakeNode, FakeProvider, make_settings


def _context(provider):
    return AgentContext(provider, settings=make_settings())


def test_context_starts_unavailable():
    context = _context(FakeProvider())

    assert context.capability_state == CapabilityState.UNAVAILABLE
    assert not context.is_ready()


def test_provider_lifecycle_flips_capability_state():
    provider = FakeProvider()
    context = _context(provider)

    context.start_provider()
    assert context.is_ready()
    assert provider.listener is not None

    context.stop_provider()
    assert not context.is_ready()
    assert provider.stopped
    assert context.shutdown_event.is_set()


def test_window_change_refreshes_cache():
    root = FakeNode("root")
    provider = FakeProvider(root=root)
    context = _context(provider)
    context.start_provider()

    provider.listener()

    assert context.node_cache.get() is root


def test_window_change_without_root_keeps_previous_entry():
    previous = FakeNode("previous")
    provider = FakeProvider(root=None)
    context = _context(provider)
    context.node_cache.update(previous)

    context.on_window_changed()

    assert context.node_cache.get() is previous


def test_device_info_wire_keys():
    context = _context(FakeProvider(level=33))

    info = context.device_info().to_wire()

    assert info["type"] == "device_info"
    assert info["manufacturer"] == "Google"
    assert info["sdkVersion"] == 33
    assert info["apiLevel"] == 33
    assert info["packageName"] == "com.openclaw.node"
