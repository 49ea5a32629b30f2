import csv
import logging
import os
import time
from enum import Enum

from sumo_exporter.errors import ArtifactError, IncompleteResultsError

logger = logging.getLogger(__name__)

SEARCH_JOB_RESULTS_LIMIT = 10000  # Maximum messages per request
DEFAULT_POLL_INTERVAL = 2  # Seconds between status checks while still gathering
CSV_HEADER = ("message", "sourcehost", "source")


class Step(Enum):
    ADVANCE = "advance"
    RECHECK = "recheck"
    WAIT = "wait"
    STOP = "stop"


def next_step(written, message_count, state=None):
    """Decide what the paginator does after a page has been written.

    ``state`` is the job state from a status refresh made after this page,
    or None when no refresh has happened yet. The advertised total is only
    trusted once the job is done gathering.
    """
    if state is None:
        return Step.ADVANCE if written < message_count else Step.RECHECK
    if not state.done_gathering:
        return Step.WAIT
    if written >= message_count:
        return Step.STOP
    return Step.ADVANCE


class CsvSink:
    """Append-only CSV file with a single header row."""

    def __init__(self, path):
        self.path = path
        self.rows = 0
        self._file = None
        self._writer = None

    def open(self):
        if self._file is not None:
            return self
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            self._file = open(self.path, "w", newline="", encoding="utf-8")
            self._writer = csv.writer(self._file)
            self._writer.writerow(CSV_HEADER)
        except OSError as e:
            self.close()
            raise ArtifactError(f"failed to open csv {self.path}: {e}") from e
        return self

    def append(self, messages):
        if self._writer is None:
            raise ArtifactError(f"csv {self.path} is not open")
        try:
            self._writer.writerows((m.raw, m.source_host, m.source) for m in messages)
        except OSError as e:
            raise ArtifactError(f"failed to write to csv {self.path}: {e}") from e
        self.rows += len(messages)

    @property
    def closed(self):
        return self._file is None

    def close(self):
        if self._file is None:
            return
        f, self._file, self._writer = self._file, None, None
        try:
            f.close()
        except OSError as e:
            raise ArtifactError(f"failed to close csv {self.path}: {e}") from e

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()


def export_all(job, sink, page_size=SEARCH_JOB_RESULTS_LIMIT,
               poll_interval=DEFAULT_POLL_INTERVAL, sleep=time.sleep):
    """Drain every message of a submitted job into ``sink``.

    Pages are fetched in increasing offset order and the offset moves by the
    number of messages actually returned. Returns the number of rows written.
    """
    if page_size < 1:
        raise ValueError("page_size must be >= 1")

    offset = 0
    written = 0
    while True:
        page = job.fetch_page(page_size, offset)
        sink.append(page)
        written += len(page)
        offset += len(page)

        step = next_step(written, job.handle.message_count)
        # An empty page below the advertised total also forces a status check.
        if step is Step.RECHECK or not page:
            handle = job.refresh_status()
            step = next_step(written, handle.message_count, handle.state)
            if step is Step.ADVANCE and not page:
                raise IncompleteResultsError(
                    f"Search job {job.job_id} advertised {handle.message_count} messages "
                    f"but returned only {written}")

        if step is Step.STOP:
            break
        if step is Step.WAIT:
            logger.debug(f"Job {job.job_id} still gathering ({written} written), waiting {poll_interval}s")
            sleep(poll_interval)

    job.mark_complete()
    logger.info(f"Exported {written} messages from job {job.job_id} to {sink.path}")
    return written
