# pairline/matches/filters.py
from dataclasses import dataclass
from typing import Optional

from pairline.common.exceptions import InvalidInput

FILTER_FIELDS = ("gender", "country", "language")

# 이 값들은 전부 "상관없음"
ANY_VALUES = ("", "any", "both", "all")


def _norm(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise InvalidInput("filter values must be strings")
    value = str(value).strip().lower()
    return None if value in ANY_VALUES else value


@dataclass(frozen=True)
class MatchFilter:
    gender: Optional[str] = None
    country: Optional[str] = None
    language: Optional[str] = None

    @classmethod
    def from_payload(cls, data) -> "MatchFilter":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise InvalidInput("filter must be an object")
        return cls(**{name: _norm(data.get(name)) for name in FILTER_FIELDS})

    def accepts(self, profile: dict) -> bool:
        for name in FILTER_FIELDS:
            wanted = getattr(self, name)
            if wanted is None:
                continue
            try:
                actual = _norm(profile.get(name))
            except InvalidInput:
                return False
            if actual != wanted:
                return False
        return True


ANY = MatchFilter()


def mutually_compatible(
    a_profile: dict, a_filter: MatchFilter, b_profile: dict, b_filter: MatchFilter
) -> bool:
    # 양쪽 다 만족해야 매칭 (대칭)
    return a_filter.accepts(b_profile) and b_filter.accepts(a_profile)
