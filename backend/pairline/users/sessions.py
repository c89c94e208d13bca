# pairline/users/sessions.py
import logging
from typing import Dict, Iterator, Optional, Tuple

from pairline.common.exceptions import InvalidInput, UserNotFound
from pairline.users.models import UserSession

logger = logging.getLogger(__name__)

MAX_USER_ID_LEN = 128


def normalize_user_id(raw) -> str:
    if isinstance(raw, int) and not isinstance(raw, bool):
        raw = str(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidInput("userId is required")
    user_id = raw.strip()
    if len(user_id) > MAX_USER_ID_LEN:
        raise InvalidInput("userId is too long")
    return user_id


def normalize_profile(raw) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidInput("profile must be an object")
    return dict(raw)


def normalize_username(raw) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise InvalidInput("username must be a string")
    return raw.strip()[:64]


class SessionRegistry:
    """
    userId <-> connectionId 양방향 맵.
    락은 Broker가 잡는다. 여기서는 잡지 않음.
    """

    def __init__(self):
        self._by_user: Dict[str, UserSession] = {}
        self._by_connection: Dict[str, str] = {}

    def __len__(self):
        return len(self._by_user)

    def __iter__(self) -> Iterator[UserSession]:
        return iter(list(self._by_user.values()))

    def register(
        self, connection_id: str, user_id, username: str = "", profile=None
    ) -> Tuple[UserSession, Optional[UserSession]]:
        """
        return: (새 세션, 밀려난 이전 세션 or None)

        같은 userId가 다른 connection에 살아있으면 그 세션을 먼저 지우고 돌려준다
        (last-writer-wins). 강제 close는 호출한 쪽 몫.
        """
        user_id = normalize_user_id(user_id)
        if not connection_id:
            raise InvalidInput("connectionId is required")
        profile = normalize_profile(profile)
        username = normalize_username(username)

        displaced = None
        existing = self._by_user.get(user_id)
        if existing is not None and existing.connection_id != connection_id:
            displaced = self._pop(existing.connection_id)
            logger.info(
                "userId=%s taken over: %s -> %s",
                user_id,
                existing.connection_id,
                connection_id,
            )

        # 같은 connection에 다른 userId가 붙어 있었으면 그 매핑은 버림
        previous_user_id = self._by_connection.get(connection_id)
        if previous_user_id is not None and previous_user_id != user_id:
            self._pop(connection_id)

        session = self._by_user.get(user_id)
        if session is None:
            session = UserSession(user_id=user_id, connection_id=connection_id)
            self._by_user[user_id] = session
        self._by_connection[connection_id] = user_id

        session.username = username
        session.profile = dict(profile)
        session.touch()
        return session, displaced

    def lookup(self, user_id: str) -> UserSession:
        session = self._by_user.get(user_id)
        if session is None:
            raise UserNotFound(f"user {user_id} is not online")
        return session

    def get(self, user_id: str) -> Optional[UserSession]:
        return self._by_user.get(user_id)

    def lookup_by_connection(self, connection_id: str) -> Optional[UserSession]:
        user_id = self._by_connection.get(connection_id)
        if user_id is None:
            return None
        return self._by_user.get(user_id)

    def connection_of(self, user_id: str) -> Optional[str]:
        # relay할 때마다 새로 조회 (재접속하면 바뀜)
        session = self._by_user.get(user_id)
        return session.connection_id if session else None

    def remove(self, connection_id: str) -> Optional[UserSession]:
        return self._pop(connection_id)

    def _pop(self, connection_id: str) -> Optional[UserSession]:
        user_id = self._by_connection.pop(connection_id, None)
        if user_id is None:
            return None
        session = self._by_user.get(user_id)
        if session is not None and session.connection_id == connection_id:
            del self._by_user[user_id]
            return session
        return None
