"""
WareFlow 事件总线

台账、发运、调拨完成后广播领域事件：
- 每个主题写入一条 Redis Stream（wf:events:<topic>），按 events_stream_maxlen 近似裁剪
- 同进程内的订阅者在发布时直接回调

Redis 不可用时只记录警告，业务事务已经提交，不回滚也不重试。
"""
import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from wf_core.config import get_settings
from wf_core.utils.logger import get_logger

logger = get_logger(__name__)

TOPIC_PREFIX = "wf."
STREAM_PREFIX = "wf:events:"

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_topic(topic: str) -> str:
    if not topic.startswith(TOPIC_PREFIX):
        raise ValueError(f"Event topic must start with '{TOPIC_PREFIX}': {topic}")
    return topic


@dataclass
class EventPayload:
    """写入 Stream 的事件信封"""
    topic: str = ""
    warehouse_id: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventPayload":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)


class EventBus:
    """Redis Stream + 进程内回调"""

    def __init__(self):
        self.settings = get_settings()
        self.redis_client: Optional[redis.Redis] = None
        self.subscriptions: Dict[str, List[EventHandler]] = {}

    @property
    def enabled(self) -> bool:
        return self.settings.events_enabled

    def _client(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.settings.redis_url, decode_responses=True)
        return self.redis_client

    async def initialize(self) -> None:
        if not self.enabled:
            logger.info("Event bus disabled")
            return
        await self._client().ping()
        logger.info("Event bus connected", redis_db=self.settings.redis_db)

    async def shutdown(self) -> None:
        self.subscriptions.clear()
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
        logger.info("Event bus closed")

    async def publish(self, topic: str, payload: Dict[str, Any]) -> Optional[str]:
        """
        发布领域事件

        Returns:
            事件ID；总线禁用时返回 None
        """
        check_topic(topic)
        if not self.enabled:
            return None

        event = EventPayload(topic=topic, warehouse_id=payload.get("warehouse_id"), payload=payload)
        try:
            message_id = await self._client().xadd(
                STREAM_PREFIX + topic,
                {"data": json.dumps(event.to_dict(), default=str)},
                maxlen=self.settings.events_stream_maxlen,
                approximate=True,
            )
            logger.debug("Event published", topic=topic, event_id=event.event_id, message_id=message_id)
        except Exception as e:
            logger.warning("Event stream write failed", topic=topic, event_id=event.event_id, error=str(e))

        for handler in list(self.subscriptions.get(topic, [])):
            try:
                await handler(event.payload)
            except Exception:
                logger.error("Event handler failed", topic=topic, handler=handler.__name__, exc_info=True)

        return event.event_id

    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        """注册进程内处理器"""
        self.subscriptions.setdefault(check_topic(topic), []).append(handler)
        logger.info("Event handler registered", topic=topic, handler=handler.__name__)

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        handlers = self.subscriptions.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """丢弃单例（配置变更后使用）"""
    global _event_bus
    _event_bus = None
