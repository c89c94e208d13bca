# pairline/matches/queue.py
from collections import OrderedDict
from typing import Callable, Iterator, Optional

from pairline.matches.filters import MatchFilter, mutually_compatible
from pairline.matches.models import QueueEntry


class MatchmakingQueue:
    """
    대기열. 들어온 순서(oldest first) 유지.
    userId당 엔트리 하나. 락은 Broker 쪽.
    """

    def __init__(self):
        self._entries: "OrderedDict[str, QueueEntry]" = OrderedDict()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, user_id):
        return user_id in self._entries

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries.values()))

    def push(self, entry: QueueEntry):
        self._entries[entry.user_id] = entry

    def get(self, user_id: str) -> Optional[QueueEntry]:
        return self._entries.get(user_id)

    def remove(self, user_id: str) -> Optional[QueueEntry]:
        return self._entries.pop(user_id, None)

    def position(self, user_id: str) -> Optional[int]:
        # 1부터
        for idx, key in enumerate(self._entries, start=1):
            if key == user_id:
                return idx
        return None

    def find_candidate(
        self,
        user_id: str,
        my_filter: MatchFilter,
        my_profile: dict,
        profile_of: Callable[[str], Optional[dict]],
    ) -> Optional[QueueEntry]:
        """
        가장 오래 기다린 사람부터 보고, 서로 필터가 맞는 첫 엔트리를 돌려준다.
        profile_of가 None을 주면(이미 나간 유저) 건너뜀.
        """
        for entry in self._entries.values():
            if entry.user_id == user_id:
                continue
            their_profile = profile_of(entry.user_id)
            if their_profile is None:
                continue
            if mutually_compatible(my_profile, my_filter, their_profile, entry.filter):
                return entry
        return None
