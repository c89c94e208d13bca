import pytest

from pairline.calls.models import CallState, EndReason
from pairline.calls.table import CallTable
from pairline.common.exceptions import (
    AlreadyInCall,
    CallNotFound,
    InvalidInput,
    NotParticipant,
)
from pairline.users.models import UserStatus
from pairline.users.sessions import SessionRegistry

from .conftest import assert_consistent, join, sent_to


@pytest.fixture
def table():
    registry = SessionRegistry()
    for user_id in ("A", "B", "C"):
        registry.register(f"c-{user_id}", user_id)
    return CallTable(registry)


def test_create_assigns_roles_and_status(table):
    call = table.create("A", "B")

    assert call.state == CallState.PAIRED
    assert call.role_of("A").value == "initiator"
    assert call.role_of("B").value == "responder"
    assert table.find_by_participant("B") is call
    assert table.partner(call.call_id, "A") == "B"


def test_create_rejects_busy_user(table):
    table.create("A", "B")
    with pytest.raises(AlreadyInCall):
        table.create("C", "A")


def test_create_rejects_self_pairing(table):
    with pytest.raises(InvalidInput):
        table.create("A", "A")


def test_partner_of_outsider(table):
    call = table.create("A", "B")
    with pytest.raises(NotParticipant):
        table.partner(call.call_id, "C")


def test_end_is_idempotent(table):
    call = table.create("A", "B")
    ended = table.end(call.call_id, EndReason.EXPLICIT)

    assert ended.state == CallState.ENDED
    assert ended.ended_at is not None
    assert table.end(call.call_id, EndReason.EXPLICIT) is None
    assert len(table) == 0
    with pytest.raises(CallNotFound):
        table.get(call.call_id)


def test_end_call_notifies_partner(broker):
    join(broker, "ca", "A")
    join(broker, "cb", "B")
    broker.find_partner("ca", {})
    out = broker.find_partner("cb", {})
    call_id = sent_to(out, "ca", "partner-found")[0].payload["callId"]

    out = broker.end_call("ca", {"callId": call_id})

    [left] = sent_to(out, "cb", "partner-left")
    assert left.payload == {"callId": call_id, "reason": "explicit"}
    [ack] = sent_to(out, "ca", "call-ended")
    assert ack.payload["reason"] == "explicit"
    assert broker.registry.get("A").status == UserStatus.ONLINE
    assert broker.registry.get("B").status == UserStatus.ONLINE

    # 다시 끝내도 no-op
    assert broker.end_call("cb", {"callId": call_id}) == []
    assert_consistent(broker)


def test_next_partner_skips_and_allows_requeue(broker):
    join(broker, "ca", "A")
    join(broker, "cb", "B")
    broker.find_partner("ca", {})
    out = broker.find_partner("cb", {})
    call_id = sent_to(out, "cb", "partner-found")[0].payload["callId"]

    out = broker.next_partner("cb", {"callId": call_id})

    [left] = sent_to(out, "ca", "partner-left")
    assert left.payload["reason"] == "skipped"
    assert len(broker.calls) == 0
    assert broker.registry.get("B").status == UserStatus.ONLINE

    out = broker.find_partner("cb", {})
    assert sent_to(out, "cb", "waiting")
    assert_consistent(broker)


def test_next_partner_with_filter_requeues_in_one_step(broker):
    join(broker, "ca", "A")
    join(broker, "cb", "B")
    join(broker, "cc", "C")
    broker.find_partner("ca", {})
    broker.find_partner("cb", {})
    broker.find_partner("cc", {})  # C waits

    out = broker.next_partner("cb", {"filter": {}})

    [found] = sent_to(out, "cb", "partner-found")
    assert found.payload["partner"]["userId"] == "C"
    assert sent_to(out, "ca", "partner-left")
    assert_consistent(broker)


def test_end_someone_elses_call(broker):
    for conn, user in (("ca", "A"), ("cb", "B"), ("cc", "C"), ("cd", "D")):
        join(broker, conn, user)
        broker.find_partner(conn, {})
    call_ab = broker.calls.find_by_participant("A")

    with pytest.raises(NotParticipant):
        broker.end_call("cc", {"callId": call_ab.call_id})
    assert broker.calls.get(call_ab.call_id) is call_ab


def test_end_unknown_call_is_noop(broker):
    join(broker, "ca", "A")
    assert broker.end_call("ca", {"callId": "call_nope"}) == []
    assert broker.end_call("ca", {}) == []
