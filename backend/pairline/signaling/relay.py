# pairline/signaling/relay.py
import logging
from typing import Optional

from pairline.calls.table import CallTable
from pairline.common.events import SIGNAL, Outbound
from pairline.users.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class SignalRelay:
    """
    offer/answer/ice 같은 payload는 열어보지 않고 그대로 상대에게 넘김.
    상대 connection은 매번 registry에서 새로 찾는다 (재접속 대비).
    """

    def __init__(self, calls: CallTable, registry: SessionRegistry):
        self._calls = calls
        self._registry = registry

    def relay(
        self,
        call_id: str,
        from_user_id: str,
        payload,
        *,
        event: str = SIGNAL,
        field_name: str = "payload",
        extra: Optional[dict] = None,
    ) -> Optional[Outbound]:
        call = self._calls.get(call_id)  # CallNotFound
        partner_id = call.partner_of(from_user_id)  # NotParticipant

        connection_id = self._registry.connection_of(partner_id)
        if connection_id is None:
            # 상대 연결 없음 -> 조용히 버림
            logger.debug(
                "drop %s on %s: partner %s has no live connection",
                event,
                call_id,
                partner_id,
            )
            return None

        self._calls.mark_active(call)
        body = {"callId": call.call_id, "from": from_user_id, field_name: payload}
        if extra:
            body.update(extra)
        return Outbound(connection_id, event, body)
