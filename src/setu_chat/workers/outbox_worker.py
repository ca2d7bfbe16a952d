"""Outbox worker: publishes committed message changes on their conversation topic."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from setu_chat.application.ports.bus import EventPublisher
from setu_chat.application.uow import UnitOfWork
from setu_chat.config import settings
from setu_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from setu_chat.infrastructure.db.session import AsyncSessionLocal
from setu_chat.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def _calc_backoff(attempts: int) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return datetime.now(timezone.utc) + timedelta(seconds=delay)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                await _process_batch(publisher)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def _process_batch(publisher: EventPublisher) -> None:
    async with AsyncSessionLocal() as session:
        await publish_pending(publisher, SqlAlchemyUoW(session))


async def publish_pending(publisher: EventPublisher, uow: UnitOfWork) -> int:
    """Publish one batch of due outbox records; returns how many were sent.

    Changes on one topic go out in commit order: once a record fails, later
    records on the same topic wait for the next batch.
    """
    batch = await uow.outbox.fetch_pending(settings.OUTBOX_BATCH_SIZE)
    if not batch:
        return 0

    sent_ids: list[int] = []
    held: set[str] = set()
    for record in batch:
        if record.topic in held:
            continue
        if record.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
            logger.warning("Outbox record %d exceeded max attempts, giving up", record.id)
            await uow.outbox.mark_dead(record.id)
            continue
        try:
            await publisher.publish(record.topic, record.frame())
        except Exception:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(record.id, _calc_backoff(record.attempts))
            held.add(record.topic)
            continue
        sent_ids.append(record.id)

    await uow.outbox.mark_sent(sent_ids)
    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
