import pytest

from sumo_exporter.config import Settings, parse_date
from sumo_exporter.transport import SumoClient

API_URL = "https://api.test/api/v1/search/jobs"


class FakeResponse:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


def make_message(i):
    return {"map": {
        "_messagetime": str(1609459200000 + i),
        "_sourcehost": f"host-{i % 3}",
        "_source": "app",
        "_raw": f"line {i}, with comma",
    }}


class FakeSumoSession:
    """In-memory search job API for a single job.

    ``states`` is the sequence of (state, messageCount) pairs returned by
    successive status refreshes; the last one repeats. Only the first
    messageCount messages of the current state are visible to paging.
    """

    def __init__(self, total=0, states=None, job_id="JOB1", submit_status=202,
                 delete_status=200, status_code=200, page_status=200):
        self.headers = {}
        self.calls = []
        self.closed = False
        self.job_id = job_id
        self.messages = [make_message(i) for i in range(total)]
        self.states = list(states or [("DONE GATHERING RESULTS", total)])
        self.visible = self.states[0][1]
        self.submit_status = submit_status
        self.delete_status = delete_status
        self.status_code = status_code
        self.page_status = page_status
        self.deleted = 0

    def request(self, method, url, timeout=None, json=None, params=None):
        self.calls.append((method, url, json, params))
        path = url[len(API_URL):]
        if method == "POST" and path == "":
            if self.submit_status != 202:
                return FakeResponse(self.submit_status, {"message": "nope"}, reason="Bad Request")
            return FakeResponse(202, {"id": self.job_id, "link": {"rel": "self"}}, reason="Accepted")
        if method == "GET" and path == f"/{self.job_id}":
            if self.status_code != 200:
                return FakeResponse(self.status_code, None, reason="Not Found")
            state, count = self.states.pop(0) if len(self.states) > 1 else self.states[0]
            self.visible = count
            return FakeResponse(200, {"state": state, "messageCount": count, "recordCount": 0,
                                      "pendingWarnings": [], "pendingErrors": []})
        if method == "GET" and path == f"/{self.job_id}/messages":
            if self.page_status != 200:
                return FakeResponse(self.page_status, None, reason="Internal Server Error")
            offset, limit = int(params["offset"]), int(params["limit"])
            page = self.messages[offset:min(offset + limit, self.visible)]
            return FakeResponse(200, {"fields": [], "messages": page})
        if method == "DELETE" and path == f"/{self.job_id}":
            self.deleted += 1
            if self.delete_status != 200:
                return FakeResponse(self.delete_status, None, reason="Not Found")
            return FakeResponse(200, {"id": self.job_id})
        return FakeResponse(404, None, reason="Not Found")

    def close(self):
        self.closed = True

    def count(self, method, suffix=""):
        return sum(1 for m, url, _, _ in self.calls if m == method and url.endswith(suffix))


@pytest.fixture
def make_client():
    def _make(session):
        return SumoClient("id", "key", api_url=API_URL, session=session)
    return _make


@pytest.fixture
def settings(tmp_path):
    return Settings(
        query="_sourceCategory=app",
        start=parse_date("2021-01-01T00:00:00", "startDate"),
        end=parse_date("2021-01-03T00:00:00", "endDate"),
        access_id="id",
        access_key="key",
        api_url=API_URL,
        page_size=10,
        poll_interval=0,
        output_dir=str(tmp_path),
    )
