import pytest

from pairline.matches import services


@pytest.fixture(autouse=True)
def broker_settings(settings):
    settings.CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}
    }
    settings.BROKER_SWEEP_INTERVAL_SECONDS = 0
    settings.BROKER_MIN_WAIT_SECONDS = 5
    settings.BROKER_PER_USER_WAIT_SECONDS = 3
    settings.BROKER_QUEUE_STALE_SECONDS = 90
    return settings


@pytest.fixture
def broker(broker_settings):
    return services.reset_broker()


def join(broker, conn, user_id, **profile):
    return broker.register(conn, {"userId": user_id, "username": user_id, "profile": profile})


def sent_to(outbound, conn, event_type=None):
    return [
        o
        for o in outbound
        if o.connection_id == conn and (event_type is None or o.type == event_type)
    ]


def assert_consistent(broker):
    """큐에 있는 유저가 콜에 묶여있으면 안 됨."""
    for entry in broker.queue:
        assert broker.calls.find_by_participant(entry.user_id) is None
        assert broker.registry.get(entry.user_id).status.value == "WAITING"
    for session in broker.registry:
        call = broker.calls.find_by_participant(session.user_id)
        if session.status.value == "IN_CALL":
            assert call is not None and call.call_id == session.current_call_id
        else:
            assert call is None and session.current_call_id is None
