# pairline/matches/services.py
import logging
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import List, Optional, Union

from django.conf import settings
from django.utils import timezone

from pairline.calls.models import Call, EndReason
from pairline.calls.table import CallTable
from pairline.common import events
from pairline.common.events import Outbound, evict
from pairline.common.exceptions import (
    AlreadyInCall,
    AlreadyQueued,
    CallNotFound,
    InvalidInput,
    NotRegistered,
    StaleConnection,
)
from pairline.matches.filters import ANY, FILTER_FIELDS, MatchFilter
from pairline.matches.models import QueueEntry, WaitTicket
from pairline.matches.queue import MatchmakingQueue
from pairline.signaling.relay import SignalRelay
from pairline.users.models import UserSession, UserStatus
from pairline.users.presence import broadcast_online_count
from pairline.users.sessions import (
    SessionRegistry,
    normalize_profile,
    normalize_user_id,
    normalize_username,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_WAIT_SEC = 5
DEFAULT_PER_USER_WAIT_SEC = 3
DEFAULT_QUEUE_STALE_SEC = 90

MAX_CHAT_LEN = 2000


class Broker:
    """
    registry / queue / call table 세 개를 한 락(RLock) 아래에서만 건드린다.
    모든 public 메서드는 List[Outbound]를 돌려주고, 실제 전송은 호출한 쪽이 락 밖에서 함.

    user 단위 연산(_enqueue, _try_match, _end, _teardown ...)은 락 잡힌 상태에서만 호출.
    """

    def __init__(
        self,
        *,
        min_wait_seconds: int = DEFAULT_MIN_WAIT_SEC,
        per_user_wait_seconds: int = DEFAULT_PER_USER_WAIT_SEC,
        queue_stale_seconds: int = DEFAULT_QUEUE_STALE_SEC,
    ):
        self._lock = threading.RLock()
        self.registry = SessionRegistry()
        self.queue = MatchmakingQueue()
        self.calls = CallTable(self.registry)
        self.relay = SignalRelay(self.calls, self.registry)

        self.min_wait_seconds = int(min_wait_seconds)
        self.per_user_wait_seconds = int(per_user_wait_seconds)
        self.queue_stale_seconds = int(queue_stale_seconds)

    @classmethod
    def from_settings(cls) -> "Broker":
        return cls(
            min_wait_seconds=getattr(
                settings, "BROKER_MIN_WAIT_SECONDS", DEFAULT_MIN_WAIT_SEC
            ),
            per_user_wait_seconds=getattr(
                settings, "BROKER_PER_USER_WAIT_SECONDS", DEFAULT_PER_USER_WAIT_SEC
            ),
            queue_stale_seconds=getattr(
                settings, "BROKER_QUEUE_STALE_SECONDS", DEFAULT_QUEUE_STALE_SEC
            ),
        )

    @contextmanager
    def _locked(self):
        with self._lock:
            out: List[Outbound] = []
            yield out

    # ---- connection events ----

    def register(self, connection_id: str, data) -> List[Outbound]:
        if not isinstance(data, dict):
            raise InvalidInput("register payload must be an object")

        # 검증은 전부 락 밖에서. 락 안에서는 실패하지 않음
        if not isinstance(connection_id, str) or not connection_id:
            raise InvalidInput("connectionId is required")
        user_id = normalize_user_id(data.get("userId", data.get("id")))
        username = normalize_username(data.get("username"))
        profile = data.get("profile")
        if profile is None:
            # 예전 클라는 gender/country를 최상위에 보냄
            profile = {k: data[k] for k in FILTER_FIELDS if k in data}
        profile = normalize_profile(profile)

        with self._locked() as out:
            existing = self.registry.get(user_id)
            if existing is not None and existing.connection_id != connection_id:
                # 같은 userId가 다른 연결에 살아있음 -> 이전 연결 정리 후 강제 종료
                self._teardown(existing, EndReason.DISCONNECTED, out)
                out.append(evict(existing.connection_id))

            previous = self.registry.lookup_by_connection(connection_id)
            if previous is not None and previous.user_id != user_id:
                self._teardown(previous, EndReason.DISCONNECTED, out)

            session, _ = self.registry.register(
                connection_id, user_id, username, profile
            )
            logger.info("registered userId=%s conn=%s", user_id, connection_id)

            out.append(
                Outbound(connection_id, events.REGISTERED, {"user": session.to_public()})
            )
            out.extend(broadcast_online_count(self.registry))
        return out

    def find_partner(self, connection_id: str, data) -> List[Outbound]:
        match_filter = _filter_from(data)
        with self._locked() as out:
            session = self._session_for(connection_id)
            if session.user_id in self.queue:
                raise AlreadyQueued("already waiting for a partner")
            self._try_match(session, match_filter, out)
        return out

    def cancel_search(self, connection_id: str) -> List[Outbound]:
        with self._locked() as out:
            session = self._session_for(connection_id)
            if session.status == UserStatus.IN_CALL:
                # 매칭이 먼저 이김. partner-found는 이미 나갔음
                return out
            self._dequeue(session.user_id)
            out.append(Outbound(connection_id, events.SEARCH_CANCELLED, {}))
        return out

    def signal(self, connection_id: str, data) -> List[Outbound]:
        if not isinstance(data, dict):
            raise InvalidInput("signal payload must be an object")
        with self._locked() as out:
            session = self._session_for(connection_id)
            call_id = _call_id_from(data, session)
            relayed = self.relay.relay(call_id, session.user_id, data.get("payload"))
            if relayed is not None:
                out.append(relayed)
        return out

    def chat(self, connection_id: str, data) -> List[Outbound]:
        if not isinstance(data, dict):
            raise InvalidInput("chat payload must be an object")
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            raise InvalidInput("message is required")
        if len(message) > MAX_CHAT_LEN:
            raise InvalidInput("message is too long")

        with self._locked() as out:
            session = self._session_for(connection_id)
            call_id = _call_id_from(data, session)
            relayed = self.relay.relay(
                call_id,
                session.user_id,
                message,
                event=events.CHAT,
                field_name="message",
                extra={"timestamp": timezone.now().isoformat()},
            )
            if relayed is not None:
                out.append(relayed)
        return out

    def end_call(
        self, connection_id: str, data, reason: EndReason = EndReason.EXPLICIT
    ) -> List[Outbound]:
        data = data if isinstance(data, dict) else {}
        with self._locked() as out:
            session = self._session_for(connection_id)
            self._end_own_call(session, data.get("callId"), reason, out)
        return out

    def next_partner(self, connection_id: str, data) -> List[Outbound]:
        """
        지금 콜 끝내고(skipped), filter가 같이 오면 바로 다시 매칭 시도.
        """
        data = data if isinstance(data, dict) else {}
        requeue = "filter" in data
        match_filter = MatchFilter.from_payload(data.get("filter")) if requeue else None

        with self._locked() as out:
            session = self._session_for(connection_id)
            self._end_own_call(session, data.get("callId"), EndReason.SKIPPED, out)
            if requeue and session.user_id not in self.queue:
                self._try_match(session, match_filter, out)
        return out

    def heartbeat(self, connection_id: str) -> List[Outbound]:
        with self._locked() as out:
            self._session_for(connection_id)
            out.append(Outbound(connection_id, events.HEARTBEAT_ACK, {}))
        return out

    def disconnect(self, connection_id: str) -> List[Outbound]:
        with self._locked() as out:
            self._disconnect(connection_id, out)
        return out

    def sweep(self, now=None) -> List[Outbound]:
        """
        대기열에서 죽은 연결 정리 (heartbeat 끊긴 WAITING 유저).
        대상 연결은 disconnect 처리 후 강제 close.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(seconds=self.queue_stale_seconds)
        evicted = 0

        with self._locked() as out:
            for entry in self.queue:
                session = self.registry.get(entry.user_id)
                if session is None or session.status != UserStatus.WAITING:
                    self.queue.remove(entry.user_id)
                    continue
                try:
                    _ensure_live(session, cutoff)
                except StaleConnection:
                    self._disconnect(session.connection_id, out)
                    out.append(evict(session.connection_id))
                    evicted += 1

        if evicted:
            logger.info("queue sweep evicted %d stale connection(s)", evicted)
        return out

    # ---- read-only ----

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "onlineUsers": len(self.registry),
                "waitingUsers": len(self.queue),
                "activeCalls": len(self.calls),
            }

    def user_status(self, user_id: str) -> dict:
        with self._lock:
            session = self.registry.lookup(user_id)
            return {
                "userId": session.user_id,
                "username": session.username,
                "status": session.status.value,
                "callId": session.current_call_id,
            }

    # ---- user-level ops (락 잡힌 상태에서만) ----

    def _session_for(self, connection_id: str) -> UserSession:
        session = self.registry.lookup_by_connection(connection_id)
        if session is None:
            raise NotRegistered("register first")
        # 이벤트가 들어왔다는 건 연결이 살아있다는 뜻
        session.touch()
        return session

    def _enqueue(self, session: UserSession, match_filter: MatchFilter) -> WaitTicket:
        if session.status == UserStatus.IN_CALL:
            raise AlreadyInCall("already in a call")
        if session.user_id in self.queue:
            raise AlreadyQueued("already waiting for a partner")

        self.queue.push(QueueEntry(user_id=session.user_id, filter=match_filter))
        session.status = UserStatus.WAITING
        session.touch()
        return self._ticket(session.user_id)

    def _dequeue(self, user_id: str) -> bool:
        removed = self.queue.remove(user_id) is not None
        session = self.registry.get(user_id)
        if removed and session is not None and session.status == UserStatus.WAITING:
            session.status = UserStatus.ONLINE
        return removed

    def _try_match(
        self, session: UserSession, match_filter: MatchFilter, out: List[Outbound]
    ) -> Union[Call, WaitTicket]:
        if session.status == UserStatus.IN_CALL:
            raise AlreadyInCall("already in a call")

        candidate = self.queue.find_candidate(
            session.user_id, match_filter, session.profile, self._waiting_profile
        )

        if candidate is None:
            existing = self.queue.get(session.user_id)
            if existing is not None:
                # 이미 줄 서 있으면 자리(enqueued_at)는 유지, 필터만 교체
                existing.filter = match_filter
                ticket = self._ticket(session.user_id)
            else:
                ticket = self._enqueue(session, match_filter)
            out.append(
                Outbound(session.connection_id, events.WAITING, ticket.to_payload())
            )
            return ticket

        # 후보/나 둘 다 큐에서 빼고 콜 생성 (같은 락 안)
        self.queue.remove(candidate.user_id)
        self.queue.remove(session.user_id)
        partner = self.registry.get(candidate.user_id)

        call = self.calls.create(session.user_id, partner.user_id)
        for me, other in ((session, partner), (partner, session)):
            out.append(
                Outbound(
                    me.connection_id,
                    events.PARTNER_FOUND,
                    {
                        "callId": call.call_id,
                        "partner": other.to_public(),
                        "role": call.role_of(me.user_id).value,
                    },
                )
            )
        return call

    def _end(
        self, call: Call, by_user_id: str, reason: EndReason, out: List[Outbound]
    ) -> bool:
        ended = self.calls.end(call.call_id, reason)
        if ended is None:
            return False

        survivor_conn = self.registry.connection_of(ended.partner_of(by_user_id))
        if survivor_conn is not None:
            event = (
                events.PARTNER_DISCONNECTED
                if reason == EndReason.DISCONNECTED
                else events.PARTNER_LEFT
            )
            out.append(
                Outbound(
                    survivor_conn, event, {"callId": ended.call_id, "reason": reason.value}
                )
            )
        return True

    def _end_own_call(
        self,
        session: UserSession,
        call_id,
        reason: EndReason,
        out: List[Outbound],
    ):
        if call_id is not None and not isinstance(call_id, str):
            raise InvalidInput("callId must be a string")

        call = self.calls.find_by_participant(session.user_id)
        if call_id and (call is None or call.call_id != call_id):
            try:
                other = self.calls.get(call_id)
            except CallNotFound:
                # 이미 끝난 콜 -> no-op
                return
            other.role_of(session.user_id)  # 남의 콜이면 NotParticipant
            call = other
        if call is None:
            return

        if self._end(call, session.user_id, reason, out):
            out.append(
                Outbound(
                    session.connection_id,
                    events.CALL_ENDED,
                    {"callId": call.call_id, "reason": reason.value},
                )
            )

    def _teardown(self, session: UserSession, reason: EndReason, out: List[Outbound]):
        # 큐에서 빼고, 콜 있으면 끝냄. registry에서는 안 지움
        self._dequeue(session.user_id)
        call = self.calls.find_by_participant(session.user_id)
        if call is not None:
            self._end(call, session.user_id, reason, out)

    def _disconnect(self, connection_id: str, out: List[Outbound]):
        session = self.registry.lookup_by_connection(connection_id)
        if session is None:
            return
        self._teardown(session, EndReason.DISCONNECTED, out)
        self.registry.remove(connection_id)
        logger.info("disconnected userId=%s conn=%s", session.user_id, connection_id)
        out.extend(broadcast_online_count(self.registry))

    def _waiting_profile(self, user_id: str) -> Optional[dict]:
        session = self.registry.get(user_id)
        if session is None or session.status != UserStatus.WAITING:
            return None
        return session.profile

    def _ticket(self, user_id: str) -> WaitTicket:
        position = self.queue.position(user_id) or len(self.queue)
        return WaitTicket(
            position=position,
            estimated_wait_seconds=max(
                self.min_wait_seconds, position * self.per_user_wait_seconds
            ),
        )


def _filter_from(data) -> MatchFilter:
    if data is None:
        return ANY
    if not isinstance(data, dict):
        raise InvalidInput("find-partner payload must be an object")
    # {filter: {...}} 가 정식. 예전 클라는 필드를 바로 보냄
    return MatchFilter.from_payload(data["filter"] if "filter" in data else data)


def _ensure_live(session: UserSession, cutoff):
    if session.last_seen < cutoff:
        raise StaleConnection(
            f"{session.connection_id} silent since {session.last_seen}"
        )


def _call_id_from(data: dict, session: UserSession) -> str:
    call_id = data.get("callId") or session.current_call_id
    if not isinstance(call_id, str) or not call_id:
        raise CallNotFound("no call to relay to")
    return call_id


_broker: Optional[Broker] = None
_broker_guard = threading.Lock()


def get_broker() -> Broker:
    global _broker
    if _broker is None:
        with _broker_guard:
            if _broker is None:
                _broker = Broker.from_settings()
    return _broker


def reset_broker() -> Broker:
    global _broker
    with _broker_guard:
        _broker = Broker.from_settings()
    return _broker
