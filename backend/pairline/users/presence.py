# pairline/users/presence.py
from typing import List

from pairline.common.events import ONLINE_COUNT, Outbound
from pairline.users.sessions import SessionRegistry


def broadcast_online_count(registry: SessionRegistry) -> List[Outbound]:
    # 등록된 모든 연결에 현재 접속자 수
    count = len(registry)
    return [
        Outbound(s.connection_id, ONLINE_COUNT, {"count": count}) for s in registry
    ]
