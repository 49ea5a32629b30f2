import logging
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from sumo_exporter.errors import (
    SearchJobDecodeError,
    SearchJobFailedError,
    SearchJobProtocolError,
    SearchJobStateError,
    TransportError,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class JobState(Enum):
    """Remote search job states reported by the API."""

    NOT_STARTED = "NOT STARTED"
    GATHERING_RESULTS = "GATHERING RESULTS"
    GATHERING_RESULTS_FROM_SUBQUERIES = "GATHERING RESULTS FROM SUBQUERIES"
    FORCE_PAUSED = "FORCE PAUSED"
    DONE_GATHERING_RESULTS = "DONE GATHERING RESULTS"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def done_gathering(self):
        return self is JobState.DONE_GATHERING_RESULTS

    @property
    def failed(self):
        return self in (JobState.CANCELLED, JobState.FAILED)

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            raise SearchJobDecodeError(f"unknown search job state: {value!r}") from None


class JobPhase(Enum):
    """Local lifecycle of a SearchJob."""

    CREATED = "created"
    SUBMITTED = "submitted"
    POLLING = "polling"
    GATHERING = "gathering"
    COMPLETE = "complete"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchJobRequest:
    query: str
    time_from: str
    time_to: str
    time_zone: str = "UTC"

    def payload(self):
        return {
            "query": self.query,
            "from": self.time_from,
            "to": self.time_to,
            "timeZone": self.time_zone,
        }


@dataclass
class JobHandle:
    id: str
    state: JobState
    message_count: int = 0
    record_count: int = 0

    @classmethod
    def from_response(cls, data, job_id=None):
        # Status responses do not repeat the id, so the known one is passed in.
        if not isinstance(data, dict):
            raise SearchJobDecodeError(f"expected a JSON object, got {type(data).__name__}")
        try:
            job_id = data.get("id") or job_id
            if not job_id:
                raise KeyError("id")
            state = JobState.parse(data.get("state", "NOT STARTED"))
            message_count = int(data.get("messageCount", 0))
            record_count = int(data.get("recordCount", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise SearchJobDecodeError(f"could not decode search job state: {e}") from e
        return cls(job_id, state, message_count, record_count)


class Message(NamedTuple):
    timestamp: str
    source_host: str
    source: str
    raw: str

    @classmethod
    def from_response(cls, item):
        m = item.get("map") if isinstance(item, dict) else None
        if not isinstance(m, dict):
            raise SearchJobDecodeError(f"message without a map: {item!r}")
        return cls(
            m.get("_messagetime", ""),
            m.get("_sourcehost", ""),
            m.get("_source", ""),
            m.get("_raw", ""),
        )


def status_line(response):
    return f"{response.status_code} {response.reason or ''}".strip()


def decode_json(response):
    try:
        return response.json()
    except ValueError as e:
        raise SearchJobDecodeError(f"could not unmarshal response body: {e}") from e


class SearchJob:
    """Lifecycle of one remote search job.

    A job is created locally, submitted once, refreshed any number of times
    and deleted at most once. The handle only exists after a successful
    submit, so refresh, fetch and delete on a job whose submit failed raise
    SearchJobStateError.
    """

    def __init__(self, client, request):
        self.client = client
        self.request = request
        self.handle = None
        self.phase = JobPhase.CREATED

    @property
    def job_id(self):
        return self.handle.id if self.handle else None

    def _require_handle(self, action):
        if self.handle is None:
            raise SearchJobStateError(f"could not {action} search job as it's not been started")
        if self.phase is JobPhase.DELETED:
            raise SearchJobStateError(f"could not {action} search job {self.handle.id} as it's been deleted")

    def _fail(self, error):
        self.phase = JobPhase.FAILED
        raise error

    def submit(self):
        if self.phase is not JobPhase.CREATED:
            raise SearchJobStateError(f"search job already submitted (phase={self.phase.value})")

        try:
            response = self.client.post(self.client.url(), self.request.payload())
        except TransportError:
            self.phase = JobPhase.FAILED
            raise
        if response.status_code != 202:
            self._fail(SearchJobProtocolError(
                status_line(response), response.status_code, response.reason))

        try:
            handle = JobHandle.from_response(decode_json(response))
        except SearchJobDecodeError as e:
            self._fail(e)
        self.handle = handle
        self.phase = JobPhase.SUBMITTED
        logger.debug(f"Search job {handle.id} created for {self.request.time_from} -> {self.request.time_to}")
        return handle

    def refresh_status(self):
        self._require_handle("refresh")

        response = self.client.get(self.client.url(self.handle.id))
        if response.status_code != 200:
            self._fail(SearchJobProtocolError(
                f"could not refresh search job: {status_line(response)}",
                response.status_code, response.reason))

        try:
            refreshed = JobHandle.from_response(decode_json(response), job_id=self.handle.id)
        except SearchJobDecodeError as e:
            self._fail(e)
        self.handle = refreshed
        logger.debug(f"Job {refreshed.id} state: {refreshed.state.value}, messages: {refreshed.message_count}")

        if refreshed.state.failed:
            self._fail(SearchJobFailedError(f"Search job {refreshed.id} failed with state: {refreshed.state.value}"))
        self.phase = JobPhase.POLLING if refreshed.state.done_gathering else JobPhase.GATHERING
        return refreshed

    def fetch_page(self, limit, offset):
        self._require_handle("page")

        response = self.client.get(
            self.client.url(self.handle.id, "messages"),
            params={"limit": limit, "offset": offset},
        )
        if response.status_code != 200:
            self._fail(SearchJobProtocolError(
                f"could not fetch messages: {status_line(response)}",
                response.status_code, response.reason))

        data = decode_json(response)
        if not isinstance(data, dict) or not isinstance(data.get("messages", []), list):
            self._fail(SearchJobDecodeError("could not unmarshal response body: missing messages list"))
        try:
            return [Message.from_response(item) for item in data.get("messages", [])]
        except SearchJobDecodeError as e:
            self._fail(e)

    def mark_complete(self):
        self._require_handle("complete")
        self.phase = JobPhase.COMPLETE

    def delete(self):
        self._require_handle("delete")

        response = self.client.delete(self.client.url(self.handle.id))
        if response.status_code != 200:
            self._fail(SearchJobProtocolError(
                f"could not delete search job: {status_line(response)}",
                response.status_code, response.reason))
        self.phase = JobPhase.DELETED
        logger.debug(f"Search job {self.handle.id} deleted")
