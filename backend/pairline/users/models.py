# pairline/users/models.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from django.utils import timezone


class UserStatus(str, Enum):
    ONLINE = "ONLINE"
    WAITING = "WAITING"
    IN_CALL = "IN_CALL"


@dataclass
class UserSession:
    """
    연결 하나 = 세션 하나.
    user_id는 클라가 주는 고정값, connection_id는 Channels channel_name이라 재접속하면 바뀜.
    """

    user_id: str
    connection_id: str
    username: str = ""
    profile: dict = field(default_factory=dict)
    status: UserStatus = UserStatus.ONLINE
    current_call_id: Optional[str] = None
    connected_at: datetime = field(default_factory=timezone.now)
    last_seen: datetime = field(default_factory=timezone.now)

    def touch(self, now: Optional[datetime] = None):
        self.last_seen = now or timezone.now()

    def to_public(self):
        return {
            "userId": self.user_id,
            "username": self.username,
            "profile": dict(self.profile),
            "status": self.status.value,
        }
