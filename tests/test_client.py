from datetime import timedelta

import pytest

from chronon.vsr.client import ChrClient, ClientSession, PendingRequest, SessionMap
from chronon.vsr.message import ClientResponse, Failure, NotThePrimary, Success


def test_session_map_duplicate_detection():
    session_map = SessionMap()
    assert session_map.check_duplicate(1, 1) is None

    session_map.record_response(1, ClientResponse(1, Success(log_index=0)))

    dup = session_map.check_duplicate(1, 1)
    assert dup is not None
    assert dup.result == Success(log_index=0)

    assert session_map.check_duplicate(1, 2) is None

    old = session_map.check_duplicate(1, 0)
    assert old is not None
    assert isinstance(old.result, Failure)
    assert "Stale request" in old.result.message
    assert old.sequence_number == 0


def test_record_response_ignores_older_sequence():
    session_map = SessionMap()
    session_map.record_response(7, ClientResponse(3, Success(log_index=10)))
    session_map.record_response(7, ClientResponse(2, Success(log_index=11)))
    assert session_map.last_sequence(7) == 3
    assert session_map.check_duplicate(7, 3) == ClientResponse(3, Success(log_index=10))


def test_last_sequence_unknown_client_is_zero():
    assert SessionMap().last_sequence(99) == 0


def test_client_count_and_clear():
    session_map = SessionMap()
    session_map.record_response(1, ClientResponse(1, Success(log_index=0)))
    session_map.record_response(2, ClientResponse(1, Success(log_index=1)))
    assert session_map.client_count() == 2
    session_map.clear()
    assert session_map.client_count() == 0
    assert session_map.check_duplicate(1, 1) is None


def test_client_session_defaults():
    session = ClientSession()
    assert session.last_sequence_number == 0
    assert session.last_response is None


def test_pending_request_keeps_request():
    client = ChrClient(5, [0, 1])
    request = client.create_request(b"x")
    pending = PendingRequest(request, log_index=4)
    assert pending.request == request
    assert pending.log_index == 4
    assert pending.submitted_at >= 0


def test_chr_client_sequence_numbers():
    client = ChrClient(42, [0, 1, 2])

    req1 = client.create_request(b"test1")
    assert req1.client_id == 42
    assert req1.sequence_number == 1
    assert req1.payload == b"test1"

    req2 = client.create_request(b"test2")
    assert req2.sequence_number == 2

    retry = client.create_request_with_seq(b"test2", 2)
    assert retry.sequence_number == 2
    assert client.current_sequence == 3


def test_chr_client_leader_redirect():
    client = ChrClient(1, [0, 1, 2])
    assert client.target_node() == 0

    client.update_leader(1)
    assert client.target_node() == 1

    assert client.handle_redirect(2) == 2
    assert client.target_node() == 2

    assert client.handle_redirect(None) == 0


def test_redirect_without_known_leader_starts_after_zero():
    client = ChrClient(1, [0, 1, 2])
    assert client.handle_redirect(None) == 1
    assert client.last_known_leader == 1


def test_target_node_empty_cluster_raises():
    client = ChrClient(1, [])
    with pytest.raises(IndexError):
        client.target_node()


def test_backoff_starts_at_base_and_doubles():
    client = ChrClient(1, [0])
    assert client.backoff_duration(0) == timedelta(milliseconds=100)
    for attempt in range(5):
        assert client.backoff_duration(attempt + 1) == client.backoff_duration(attempt) * 2


def test_backoff_is_capped():
    client = ChrClient(1, [0])
    assert client.backoff_duration(6) == client.backoff_duration(5)
    assert client.backoff_duration(50) == client.backoff_duration(5)


def test_max_retries_default():
    assert ChrClient(1, [0]).max_retries == 5


@pytest.mark.parametrize(
    "result, expected",
    [
        (Failure("System Overloaded: try later"), True),
        (Failure("Stale request"), False),
        (Success(log_index=1), False),
        (NotThePrimary(leader_hint=2), False),
    ],
)
def test_is_overload_error(result, expected):
    assert ChrClient.is_overload_error(ClientResponse(1, result)) is expected


def test_overload_backoff():
    client = ChrClient(1, [0])
    assert client.overload_backoff_duration(0) == timedelta(milliseconds=100)
    assert client.overload_backoff_duration(9) == client.overload_backoff_duration(5)
    assert client.handle_overload(3) == client.overload_backoff_duration(3)
    assert client.overload_backoff_duration(2) == client.overload_backoff_duration(1) * 2