import pytest

from pairline.common.exceptions import InvalidInput, UserNotFound
from pairline.users.models import UserStatus
from pairline.users.sessions import SessionRegistry


def test_register_and_lookup():
    registry = SessionRegistry()
    session, displaced = registry.register("c1", "u1", "alice", {"gender": "female"})

    assert displaced is None
    assert session.status == UserStatus.ONLINE
    assert registry.lookup("u1") is session
    assert registry.lookup_by_connection("c1") is session
    assert len(registry) == 1


@pytest.mark.parametrize("user_id", [None, "", "   ", {"id": 1}])
def test_register_rejects_empty_user_id(user_id):
    with pytest.raises(InvalidInput):
        SessionRegistry().register("c1", user_id)


def test_register_rejects_non_object_profile():
    with pytest.raises(InvalidInput):
        SessionRegistry().register("c1", "u1", profile=["female"])


def test_same_user_new_connection_displaces_old():
    registry = SessionRegistry()
    old, _ = registry.register("c1", "u1")
    new, displaced = registry.register("c2", "u1")

    assert displaced is old
    assert new is not old
    assert registry.lookup_by_connection("c1") is None
    assert registry.connection_of("u1") == "c2"
    assert len(registry) == 1


def test_reregister_same_connection_keeps_status():
    registry = SessionRegistry()
    session, _ = registry.register("c1", "u1", profile={"gender": "male"})
    session.status = UserStatus.WAITING

    again, displaced = registry.register("c1", "u1", profile={"gender": "female"})
    assert displaced is None
    assert again is session
    assert again.status == UserStatus.WAITING
    assert again.profile == {"gender": "female"}


def test_connection_rebound_to_another_user():
    registry = SessionRegistry()
    registry.register("c1", "u1")
    registry.register("c1", "u2")

    assert registry.get("u1") is None
    assert registry.lookup_by_connection("c1").user_id == "u2"


def test_remove_is_idempotent():
    registry = SessionRegistry()
    registry.register("c1", "u1")
    assert registry.remove("c1").user_id == "u1"
    assert registry.remove("c1") is None
    with pytest.raises(UserNotFound):
        registry.lookup("u1")


def test_removing_stale_connection_keeps_new_session():
    registry = SessionRegistry()
    registry.register("c1", "u1")
    registry.register("c2", "u1")
    assert registry.remove("c1") is None
    assert registry.connection_of("u1") == "c2"
