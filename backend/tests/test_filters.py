import pytest

from pairline.common.exceptions import InvalidInput
from pairline.matches.filters import ANY, MatchFilter, mutually_compatible


def test_any_values_match_everything():
    for raw in (None, {}, {"gender": "any"}, {"gender": "both"}, {"gender": ""}):
        f = MatchFilter.from_payload(raw)
        assert f == ANY
        assert f.accepts({"gender": "male", "country": "KR"})
        assert f.accepts({})


def test_field_comparison_is_case_insensitive():
    f = MatchFilter.from_payload({"gender": " Female ", "country": "kr"})
    assert f.accepts({"gender": "female", "country": "KR"})
    assert not f.accepts({"gender": "male", "country": "KR"})
    assert not f.accepts({"country": "KR"})


def test_unknown_profile_tags_are_ignored():
    f = MatchFilter.from_payload({"language": "ko"})
    assert f.accepts({"language": "ko", "hobby": ["go", "chess"]})


def test_compatibility_is_symmetric():
    a_profile, a_filter = {"gender": "female"}, ANY
    b_profile, b_filter = {"gender": "male"}, MatchFilter(gender="female")
    assert mutually_compatible(a_profile, a_filter, b_profile, b_filter)
    assert mutually_compatible(b_profile, b_filter, a_profile, a_filter)

    # B wants female, C is male -> no match either way
    c_profile = {"gender": "male"}
    assert not mutually_compatible(b_profile, b_filter, c_profile, ANY)
    assert not mutually_compatible(c_profile, ANY, b_profile, b_filter)


@pytest.mark.parametrize("bad", ["female", 3, ["gender"]])
def test_filter_must_be_object(bad):
    with pytest.raises(InvalidInput):
        MatchFilter.from_payload(bad)


def test_non_string_filter_value_rejected():
    with pytest.raises(InvalidInput):
        MatchFilter.from_payload({"gender": {"$ne": "x"}})


def test_non_string_profile_value_never_matches():
    assert not MatchFilter(gender="female").accepts({"gender": {"x": 1}})
