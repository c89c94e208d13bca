# pairline/calls/models.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from django.utils import timezone

from pairline.common.exceptions import NotParticipant


class CallState(str, Enum):
    PAIRED = "PAIRED"
    ACTIVE = "ACTIVE"  # 첫 시그널 오가면 (표시용)
    ENDED = "ENDED"


class Role(str, Enum):
    # offer를 누가 먼저 만드느냐만 결정함
    INITIATOR = "initiator"
    RESPONDER = "responder"


class EndReason(str, Enum):
    EXPLICIT = "explicit"
    SKIPPED = "skipped"
    DISCONNECTED = "disconnected"


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex}"


@dataclass
class Call:
    call_id: str
    participants: Dict[str, Role]
    state: CallState = CallState.PAIRED
    created_at: datetime = field(default_factory=timezone.now)
    ended_at: Optional[datetime] = None

    @property
    def initiator(self) -> str:
        return self._with_role(Role.INITIATOR)

    @property
    def responder(self) -> str:
        return self._with_role(Role.RESPONDER)

    def role_of(self, user_id: str) -> Role:
        if user_id not in self.participants:
            raise NotParticipant(f"{user_id} is not in call {self.call_id}")
        return self.participants[user_id]

    def partner_of(self, user_id: str) -> str:
        if user_id not in self.participants:
            raise NotParticipant(f"{user_id} is not in call {self.call_id}")
        for other in self.participants:
            if other != user_id:
                return other
        raise NotParticipant(f"call {self.call_id} has no partner")

    def _with_role(self, role: Role) -> str:
        for user_id, r in self.participants.items():
            if r == role:
                return user_id
        raise LookupError(role)
