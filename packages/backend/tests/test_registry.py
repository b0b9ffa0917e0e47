"""Subscription registry tests."""

from farmsync.realtime.registry import SubscriptionRegistry


def test_notify_in_registration_order():
    registry = SubscriptionRegistry()
    calls = []
    registry.add("farm_alert", lambda p: calls.append(("first", p)))
    registry.add("farm_alert", lambda p: calls.append(("second", p)))

    assert registry.notify("farm_alert", 1) == 2
    assert calls == [("first", 1), ("second", 1)]


def test_same_callback_registers_once():
    registry = SubscriptionRegistry()
    calls = []
    registry.add("sensor_data", calls.append)
    registry.add("sensor_data", calls.append)

    registry.notify("sensor_data", "x")
    assert calls == ["x"]
    assert registry.count("sensor_data") == 1


def test_unsubscribe_is_idempotent_and_drops_empty_event():
    registry = SubscriptionRegistry()
    unsubscribe = registry.add("farm_alert", lambda p: None)
    keep = registry.add("notification", lambda p: None)

    unsubscribe()
    unsubscribe()

    assert registry.events() == ["notification"]
    assert len(registry) == 1
    keep()
    assert len(registry) == 0


def test_unsubscribe_leaves_other_callbacks():
    registry = SubscriptionRegistry()
    calls = []
    registry.add("farm_alert", lambda p: calls.append("a"))
    drop = registry.add("farm_alert", lambda p: calls.append("b"))

    drop()
    registry.notify("farm_alert", None)
    assert calls == ["a"]


def test_failing_callback_does_not_stop_delivery():
    registry = SubscriptionRegistry()
    calls = []

    def broken(payload):
        raise RuntimeError("boom")

    registry.add("farm_alert", broken)
    registry.add("farm_alert", calls.append)

    assert registry.notify("farm_alert", "alert") == 2
    assert calls == ["alert"]


def test_callback_may_unsubscribe_during_dispatch():
    registry = SubscriptionRegistry()
    calls = []
    holder = {}

    def once(payload):
        calls.append("once")
        holder["unsubscribe"]()

    holder["unsubscribe"] = registry.add("farm_alert", once)
    registry.add("farm_alert", lambda p: calls.append("always"))

    registry.notify("farm_alert", None)
    registry.notify("farm_alert", None)
    assert calls == ["once", "always", "always"]


def test_notify_without_listeners():
    registry = SubscriptionRegistry()
    assert registry.notify("farm_alert", None) == 0


def test_clear():
    registry = SubscriptionRegistry()
    registry.add("farm_alert", lambda p: None)
    registry.add("sensor_data", lambda p: None)
    registry.clear()
    assert registry.events() == []
    assert len(registry) == 0
