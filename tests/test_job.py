import base64

import pytest
import requests

from sumo_exporter.errors import (
    SearchJobDecodeError,
    SearchJobFailedError,
    SearchJobProtocolError,
    SearchJobStateError,
    TransportError,
)
from sumo_exporter.job import JobHandle, JobPhase, JobState, Message, SearchJob, SearchJobRequest
from tests.conftest import API_URL, FakeResponse, FakeSumoSession

REQUEST = SearchJobRequest("error", "2021-01-01T00:00:00", "2021-01-02T00:00:00", "UTC")


def test_client_sends_fixed_basic_auth_and_json_headers(make_client):
    session = FakeSumoSession()
    make_client(session)

    expected = base64.b64encode(b"id:key").decode()
    assert session.headers["Authorization"] == f"Basic {expected}"
    assert session.headers["Content-Type"] == "application/json"


def test_submit_posts_query_definition(make_client):
    session = FakeSumoSession()
    job = SearchJob(make_client(session), REQUEST)

    handle = job.submit()

    method, url, body, _ = session.calls[0]
    assert (method, url) == ("POST", API_URL)
    assert body == {"query": "error", "from": "2021-01-01T00:00:00",
                    "to": "2021-01-02T00:00:00", "timeZone": "UTC"}
    assert handle.id == "JOB1"
    assert handle.state is JobState.NOT_STARTED
    assert job.phase is JobPhase.SUBMITTED


def test_submit_then_refresh_keeps_job_id(make_client):
    session = FakeSumoSession(total=7)
    job = SearchJob(make_client(session), REQUEST)

    submitted = job.submit()
    refreshed = job.refresh_status()

    assert refreshed.id == submitted.id == "JOB1"
    assert refreshed.state is JobState.DONE_GATHERING_RESULTS
    assert refreshed.message_count == 7
    assert job.phase is JobPhase.POLLING


def test_refresh_while_gathering_sets_gathering_phase(make_client):
    session = FakeSumoSession(total=3, states=[("GATHERING RESULTS", 1)])
    job = SearchJob(make_client(session), REQUEST)
    job.submit()

    job.refresh_status()

    assert job.phase is JobPhase.GATHERING


def test_non_202_submit_fails_and_leaves_no_handle(make_client):
    session = FakeSumoSession(submit_status=400)
    job = SearchJob(make_client(session), REQUEST)

    with pytest.raises(SearchJobProtocolError) as excinfo:
        job.submit()

    assert str(excinfo.value) == "400 Bad Request"
    assert excinfo.value.status == 400
    assert job.handle is None
    assert job.phase is JobPhase.FAILED
    with pytest.raises(SearchJobStateError):
        job.refresh_status()
    with pytest.raises(SearchJobStateError):
        job.delete()
    with pytest.raises(SearchJobStateError):
        job.fetch_page(10, 0)
    assert session.count("GET") == 0
    assert session.count("DELETE") == 0


def test_operations_before_submit_are_rejected(make_client):
    job = SearchJob(make_client(FakeSumoSession()), REQUEST)

    with pytest.raises(SearchJobStateError, match="not been started"):
        job.refresh_status()
    with pytest.raises(SearchJobStateError, match="not been started"):
        job.delete()


def test_submit_twice_is_rejected(make_client):
    job = SearchJob(make_client(FakeSumoSession()), REQUEST)
    job.submit()

    with pytest.raises(SearchJobStateError):
        job.submit()


def test_delete_happens_at_most_once(make_client):
    session = FakeSumoSession()
    job = SearchJob(make_client(session), REQUEST)
    job.submit()

    job.delete()
    assert job.phase is JobPhase.DELETED
    with pytest.raises(SearchJobStateError):
        job.delete()
    assert session.deleted == 1


def test_delete_non_200_is_an_error(make_client):
    job = SearchJob(make_client(FakeSumoSession(delete_status=404)), REQUEST)
    job.submit()

    with pytest.raises(SearchJobProtocolError, match="could not delete search job: 404"):
        job.delete()


def test_refresh_non_200_carries_status(make_client):
    job = SearchJob(make_client(FakeSumoSession(status_code=404)), REQUEST)
    job.submit()

    with pytest.raises(SearchJobProtocolError, match="could not refresh search job: 404 Not Found"):
        job.refresh_status()


@pytest.mark.parametrize("state", ["CANCELLED", "FAILED"])
def test_refresh_raises_when_remote_job_failed(make_client, state):
    job = SearchJob(make_client(FakeSumoSession(states=[(state, 0)])), REQUEST)
    job.submit()

    with pytest.raises(SearchJobFailedError, match=state):
        job.refresh_status()
    assert job.phase is JobPhase.FAILED


def test_fetch_page_parses_messages(make_client):
    session = FakeSumoSession(total=3)
    job = SearchJob(make_client(session), REQUEST)
    job.submit()

    page = job.fetch_page(2, 1)

    assert page == [
        Message("1609459200001", "host-1", "app", "line 1, with comma"),
        Message("1609459200002", "host-2", "app", "line 2, with comma"),
    ]
    assert session.calls[-1][3] == {"limit": 2, "offset": 1}
    assert session.calls[-1][1] == f"{API_URL}/JOB1/messages"


def test_undecodable_body_is_a_decode_error(make_client):
    class BrokenSession(FakeSumoSession):
        def request(self, method, url, **kwargs):
            return FakeResponse(202, None, reason="Accepted")

    job = SearchJob(make_client(BrokenSession()), REQUEST)
    with pytest.raises(SearchJobDecodeError):
        job.submit()
    assert job.handle is None


def test_unknown_state_is_a_decode_error():
    with pytest.raises(SearchJobDecodeError, match="unknown search job state"):
        JobHandle.from_response({"id": "x", "state": "DONE-ISH"})


def test_network_failure_is_wrapped(make_client):
    class DownSession(FakeSumoSession):
        def request(self, method, url, **kwargs):
            raise requests.ConnectionError("connection refused")

    job = SearchJob(make_client(DownSession()), REQUEST)
    with pytest.raises(TransportError, match="unable to execute http POST request"):
        job.submit()
    assert job.phase is JobPhase.FAILED


def test_job_state_predicates():
    assert JobState.DONE_GATHERING_RESULTS.done_gathering
    assert not JobState.GATHERING_RESULTS.done_gathering
    assert JobState.CANCELLED.failed
    assert not JobState.FORCE_PAUSED.failed
