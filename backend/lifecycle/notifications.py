"""
Lifecycle event publishing — hands transitions to the notification collaborator.

Events go out on Redis pub/sub after the transition has committed.
Delivery is fire-and-forget: a Redis outage is logged and never fails
the transition that triggered it.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from core.config import get_settings
from lifecycle.shipment import ShipmentRecord

logger = structlog.get_logger()


class EventPublisher(Protocol):
    async def publish(
        self,
        shipment: ShipmentRecord,
        event_type: str,
        from_phase: str | None,
    ) -> int: ...


def build_event_payload(shipment: ShipmentRecord, event_type: str, from_phase: str | None) -> str:
    return json.dumps(
        {
            "type": "shipment_lifecycle",
            "payload": {
                "shipment_id": shipment.shipment_id,
                "container_no": shipment.container_no,
                "event_type": event_type,
                "from_phase": from_phase,
                "to_phase": shipment.current_phase,
                "phase_progress": shipment.phase_progress,
                "compliance_status": shipment.compliance_status,
                "compliance_issues": shipment.compliance_issues,
                "monitoring_status": shipment.monitoring_status,
                "published_at": datetime.now(timezone.utc).isoformat(),
            },
        }
    )


class RedisEventPublisher:
    """Publish lifecycle events to the configured Redis channel."""

    def __init__(self, redis_url: str | None = None, channel: str | None = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.channel = channel or settings.lifecycle_events_channel

    async def publish(self, shipment: ShipmentRecord, event_type: str, from_phase: str | None) -> int:
        redis = aioredis.from_url(self.redis_url)
        try:
            return await redis.publish(self.channel, build_event_payload(shipment, event_type, from_phase))
        except (RedisError, OSError) as exc:
            logger.warning(
                "lifecycle.publish_failed",
                shipment_id=shipment.shipment_id,
                event_type=event_type,
                error=str(exc),
            )
            return 0
        finally:
            await redis.aclose()
