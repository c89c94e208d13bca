# pairline/matches/models.py
from dataclasses import dataclass, field
from datetime import datetime

from django.utils import timezone

from pairline.matches.filters import MatchFilter


@dataclass
class QueueEntry:
    user_id: str
    filter: MatchFilter = field(default_factory=MatchFilter)
    enqueued_at: datetime = field(default_factory=timezone.now)


@dataclass
class WaitTicket:
    """TryMatch가 NoMatch일 때 돌려주는 대기 정보."""

    position: int
    estimated_wait_seconds: int

    def to_payload(self):
        return {
            "position": self.position,
            "estimatedWaitSeconds": self.estimated_wait_seconds,
        }
