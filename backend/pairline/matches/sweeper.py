# pairline/matches/sweeper.py
import asyncio
import logging

from asgiref.sync import sync_to_async
from channels.layers import get_channel_layer
from django.conf import settings

from pairline.matches.services import get_broker

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SEC = 30

_task = None


async def sweep_once():
    # 순환 import 피하려고 여기서
    from pairline.signaling.consumers import dispatch

    outbound = await sync_to_async(get_broker().sweep, thread_sensitive=False)()
    await dispatch(get_channel_layer(), outbound)
    return outbound


async def _run(interval: int):
    while True:
        await asyncio.sleep(interval)
        try:
            await sweep_once()
        except Exception:
            logger.exception("queue sweep failed")


def ensure_sweeper():
    """
    첫 WS 연결 때 한 번 띄움. interval 0이면 안 띄움.
    """
    global _task
    interval = int(
        getattr(settings, "BROKER_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SEC)
    )
    if interval <= 0:
        return None
    if _task is not None and not _task.done():
        return _task
    _task = asyncio.get_running_loop().create_task(_run(interval))
    logger.info("queue sweeper started (every %ss)", interval)
    return _task
