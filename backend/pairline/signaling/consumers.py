# pairline/signaling/consumers.py
import json
import logging

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from pairline.calls.models import EndReason
from pairline.common import events
from pairline.common.exceptions import BrokerError, InvalidInput
from pairline.matches.services import get_broker
from pairline.matches.sweeper import ensure_sweeper

logger = logging.getLogger(__name__)

# 다른 기기에서 같은 userId로 다시 들어오면 이전 연결은 이 코드로 닫힘
CLOSE_CODE_REPLACED = 4409


async def dispatch(channel_layer, outbound):
    """브로커가 돌려준 Outbound들을 channel layer로 뿌림 (fire-and-forget)."""
    for item in outbound:
        if item.close:
            message = {"type": "session.evict"}
        else:
            message = {"type": "broker.event", "envelope": item.envelope()}
        await channel_layer.send(item.connection_id, message)


class BrokerConsumer(AsyncJsonWebsocketConsumer):
    """
    WS Broker Protocol
      - URL: ws://<host>/ws/broker/
      - Envelope (in/out 동일):
        {
          "type": "register" | "find-partner" | "signal" | ...,
          "payload": {...}
        }
      - connectionId = self.channel_name
    """

    async def connect(self):
        self.evicted = False
        await self.accept()
        ensure_sweeper()

    async def disconnect(self, close_code):
        # eviction으로 닫힌 경우 registry엔 이미 없음 -> 브로커 쪽에서 no-op
        outbound = await self._call(get_broker().disconnect, self.channel_name)
        await dispatch(self.channel_layer, outbound)

    async def receive(self, text_data=None, bytes_data=None):
        if self.evicted or not text_data:
            return

        try:
            data = json.loads(text_data)
        except ValueError:
            await self._send_error(InvalidInput("malformed JSON"))
            return

        if not isinstance(data, dict):
            await self._send_error(InvalidInput("envelope must be an object"))
            return

        msg_type = data.get("type")
        payload = data.get("payload")
        if payload is None:
            payload = {}

        handler = self._handlers().get(msg_type)
        if handler is None:
            await self._send_error(InvalidInput(f"unknown event type: {msg_type}"))
            return

        try:
            outbound = await self._call(handler, payload)
        except BrokerError as exc:
            await self._send_error(exc)
            return

        await dispatch(self.channel_layer, outbound)

    # ---- channel layer handlers ----

    async def broker_event(self, event):
        if self.evicted:
            return
        await self.send_json(event.get("envelope") or {})

    async def session_evict(self, event):
        # 이후 이벤트는 전부 무시
        self.evicted = True
        await self.close(code=CLOSE_CODE_REPLACED)

    # ---- helpers ----

    def _handlers(self):
        broker = get_broker()
        conn = self.channel_name
        return {
            events.REGISTER: lambda p: broker.register(conn, p),
            events.FIND_PARTNER: lambda p: broker.find_partner(conn, p),
            events.CANCEL_SEARCH: lambda p: broker.cancel_search(conn),
            events.SIGNAL: lambda p: broker.signal(conn, p),
            events.CHAT: lambda p: broker.chat(conn, p),
            events.END_CALL: lambda p: broker.end_call(conn, p, EndReason.EXPLICIT),
            events.NEXT_PARTNER: lambda p: broker.next_partner(conn, p),
            events.HEARTBEAT: lambda p: broker.heartbeat(conn),
        }

    async def _call(self, func, *args):
        # 브로커는 threading 락을 쓰니까 이벤트 루프 밖에서 돌림
        return await sync_to_async(func, thread_sensitive=False)(*args)

    async def _send_error(self, exc: BrokerError):
        logger.debug("error to %s: %s", self.channel_name, exc.code)
        await self.send_json({"type": events.ERROR, "payload": exc.as_payload()})
