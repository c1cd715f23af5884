"""
事件总线测试（使用内存中的假 Redis）
"""
import json

import pytest

from wf_core.event_bus import EventBus, EventPayload


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.streams = {}
        self.maxlen = {}

    async def xadd(self, stream, data, maxlen=None, approximate=True):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.streams.setdefault(stream, []).append(data)
        self.maxlen[stream] = maxlen
        return f"{len(self.streams[stream])}-0"

    async def aclose(self):
        pass


@pytest.fixture
def bus():
    bus = EventBus()
    bus.settings = bus.settings.model_copy(update={"events_enabled": True})
    bus.redis_client = FakeRedis()
    return bus


async def test_publish_writes_to_stream(bus):
    event_id = await bus.publish("wf.stock.adjusted", {"warehouse_id": 3, "product_id": 9})

    [entry] = bus.redis_client.streams["wf:events:wf.stock.adjusted"]
    event = json.loads(entry["data"])
    assert event["event_id"] == event_id
    assert event["warehouse_id"] == 3
    assert event["payload"]["product_id"] == 9
    assert bus.redis_client.maxlen["wf:events:wf.stock.adjusted"] == 10000


async def test_unsubscribed_handler_is_not_called(bus):
    received = []

    async def handler(payload):
        received.append(payload)

    await bus.subscribe("wf.stock.received", handler)
    bus.unsubscribe("wf.stock.received", handler)
    await bus.publish("wf.stock.received", {"warehouse_id": 1})

    assert received == []


async def test_publish_failure_is_not_raised(bus):
    bus.redis_client = FakeRedis(fail=True)
    received = []

    async def handler(payload):
        received.append(payload)

    await bus.subscribe("wf.shipment.created", handler)
    event_id = await bus.publish("wf.shipment.created", {"shipment_id": 1})

    assert event_id is not None
    assert received == [{"shipment_id": 1}]


async def test_handler_errors_do_not_stop_other_handlers(bus):
    received = []

    async def broken(payload):
        raise RuntimeError("boom")

    async def working(payload):
        received.append(payload["transfer_id"])

    await bus.subscribe("wf.transfer.completed", broken)
    await bus.subscribe("wf.transfer.completed", working)
    await bus.publish("wf.transfer.completed", {"transfer_id": 5})

    assert received == [5]


async def test_disabled_bus_publishes_nothing():
    bus = EventBus()
    bus.redis_client = FakeRedis()

    assert bus.enabled is False
    assert await bus.publish("wf.stock.sold", {"sale_id": 1}) is None
    assert bus.redis_client.streams == {}


async def test_topic_prefix_is_enforced(bus):
    with pytest.raises(ValueError):
        await bus.publish("stock.sold", {})

    async def handler(payload):
        pass

    with pytest.raises(ValueError):
        await bus.subscribe("shipments", handler)


def test_payload_round_trip():
    original = EventPayload(topic="wf.stock.sold", warehouse_id=2, payload={"sale_id": 4})

    restored = EventPayload.from_dict(original.to_dict())

    assert restored.event_id == original.event_id
    assert restored.timestamp == original.timestamp
    assert restored.payload == {"sale_id": 4}
