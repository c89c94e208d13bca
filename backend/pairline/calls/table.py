# pairline/calls/table.py
import logging
from typing import Dict, Optional

from django.utils import timezone

from pairline.calls.models import Call, CallState, EndReason, Role, new_call_id
from pairline.common.exceptions import (
    AlreadyInCall,
    CallNotFound,
    InvalidInput,
    NotRegistered,
)
from pairline.users.models import UserStatus
from pairline.users.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class CallTable:
    """
    살아있는 콜만 들고 있음. ENDED 되면 바로 빠진다.
    유저 상태(IN_CALL / current_call_id)도 여기서 같이 바꾼다.
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry
        self._calls: Dict[str, Call] = {}
        self._by_user: Dict[str, str] = {}

    def __len__(self):
        return len(self._calls)

    def create(self, initiator_id: str, responder_id: str) -> Call:
        if initiator_id == responder_id:
            raise InvalidInput("cannot pair a user with themselves")

        sessions = []
        for user_id in (initiator_id, responder_id):
            session = self._registry.get(user_id)
            if session is None:
                raise NotRegistered(f"user {user_id} is not online")
            if session.status == UserStatus.IN_CALL or user_id in self._by_user:
                raise AlreadyInCall(f"user {user_id} is already in a call")
            sessions.append(session)

        call = Call(
            call_id=new_call_id(),
            participants={initiator_id: Role.INITIATOR, responder_id: Role.RESPONDER},
        )
        self._calls[call.call_id] = call
        for session in sessions:
            self._by_user[session.user_id] = call.call_id
            session.status = UserStatus.IN_CALL
            session.current_call_id = call.call_id

        logger.info(
            "call %s created initiator=%s responder=%s",
            call.call_id,
            initiator_id,
            responder_id,
        )
        return call

    def get(self, call_id: str) -> Call:
        call = self._calls.get(call_id) if call_id else None
        if call is None or call.state == CallState.ENDED:
            raise CallNotFound(f"call {call_id} not found")
        return call

    def find_by_participant(self, user_id: str) -> Optional[Call]:
        call_id = self._by_user.get(user_id)
        return self._calls.get(call_id) if call_id else None

    def partner(self, call_id: str, user_id: str) -> str:
        return self.get(call_id).partner_of(user_id)

    def mark_active(self, call: Call):
        if call.state == CallState.PAIRED:
            call.state = CallState.ACTIVE

    def end(self, call_id: str, reason: EndReason) -> Optional[Call]:
        """
        이미 끝났거나 없는 콜이면 None (no-op).
        알림 보내는 건 Broker 쪽.
        """
        call = self._calls.pop(call_id, None)
        if call is None or call.state == CallState.ENDED:
            return None

        call.state = CallState.ENDED
        call.ended_at = timezone.now()
        for user_id in call.participants:
            if self._by_user.get(user_id) == call_id:
                del self._by_user[user_id]
            session = self._registry.get(user_id)
            if session is not None and session.current_call_id == call_id:
                session.status = UserStatus.ONLINE
                session.current_call_id = None

        logger.info("call %s ended reason=%s", call_id, reason.value)
        return call
