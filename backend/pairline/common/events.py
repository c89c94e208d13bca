# pairline/common/events.py
from dataclasses import dataclass, field
from typing import Optional

# in
REGISTER = "register"
FIND_PARTNER = "find-partner"
CANCEL_SEARCH = "cancel-search"
SIGNAL = "signal"
CHAT = "chat"
NEXT_PARTNER = "next-partner"
END_CALL = "end-call"
HEARTBEAT = "heartbeat"

# out
REGISTERED = "registered"
PARTNER_FOUND = "partner-found"
WAITING = "waiting"
SEARCH_CANCELLED = "search-cancelled"
CALL_ENDED = "call-ended"
PARTNER_LEFT = "partner-left"
PARTNER_DISCONNECTED = "partner-disconnected"
ONLINE_COUNT = "online-count"
HEARTBEAT_ACK = "heartbeat-ack"
ERROR = "error"


@dataclass
class Outbound:
    """
    브로커가 만들어내는 "보낼 것" 한 건.
    실제 전송은 consumer가 락 밖에서 channel_layer.send로 한다.
    close=True면 payload 대신 해당 연결을 강제 종료.
    """

    connection_id: str
    type: Optional[str] = None
    payload: dict = field(default_factory=dict)
    close: bool = False

    def envelope(self):
        return {"type": self.type, "payload": self.payload}


def evict(connection_id: str) -> Outbound:
    return Outbound(connection_id=connection_id, close=True)
