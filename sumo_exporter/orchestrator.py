import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from sumo_exporter.config import format_date
from sumo_exporter.errors import ConfigError, SumoExportError
from sumo_exporter.export import CsvSink, export_all
from sumo_exporter.job import JobPhase, SearchJob, SearchJobRequest
from sumo_exporter.transport import SumoClient
from sumo_exporter.upload import UploadResult, upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportTask:
    index: int
    request: SearchJobRequest
    filename: str


@dataclass
class JobOutcome:
    index: int
    filename: str
    rows: int
    upload: Optional[UploadResult] = None

    @property
    def location(self):
        return self.upload.location if self.upload else None


def split_by_day(start, end):
    """Split [start, end) into windows that break on midnight.

    Ranges shorter than a day are never split, even when they cross midnight.
    """
    if end <= start:
        raise ConfigError(f"endDate {format_date(end)} must be after startDate {format_date(start)}")
    if end - start < timedelta(days=1):
        return [(start, end)]

    windows = []
    cursor = start
    while cursor < end:
        midnight = cursor + relativedelta(days=1, hour=0, minute=0, second=0, microsecond=0)
        window_end = min(midnight, end)
        windows.append((cursor, window_end))
        cursor = window_end
    return windows


def build_tasks(settings):
    tasks = []
    for index, (start, end) in enumerate(split_by_day(settings.start, settings.end)):
        time_from = format_date(start)
        request = SearchJobRequest(settings.query, time_from, format_date(end), settings.time_zone)
        filename = os.path.join(settings.output_dir, f"{settings.filename}_{time_from}.csv")
        tasks.append(ExportTask(index, request, filename))
    return tasks


def log_plan(tasks):
    for task in tasks:
        logger.info(f"[DRY-RUN] Would query {task.request.time_from} to {task.request.time_to} into {task.filename}")


def new_client(settings):
    return SumoClient(settings.access_id, settings.access_key,
                      api_url=settings.api_url, timeout=settings.request_timeout)


def _abandon(job, index):
    # Best effort: the original error is what gets reported.
    if job.handle is None or job.phase is JobPhase.DELETED:
        return
    try:
        job.delete()
        logger.info(f"Deleted search job {job.job_id} after failure in search job: {index}")
    except SumoExportError as e:
        logger.error(f"Could not delete search job {job.job_id} for search job {index}: {e}")


def run_export_job(task, settings, client_factory=new_client, uploader=upload, sleep=time.sleep):
    """Submit, export, optionally upload and finally delete one search job."""
    logger.info(f"Starting execution and export to CSV of search job: {task.index}")
    with client_factory(settings) as client:
        job = SearchJob(client, task.request)
        try:
            job.submit()
            with CsvSink(task.filename) as sink:
                rows = export_all(job, sink, settings.page_size, settings.poll_interval, sleep)
            logger.info(f"Export complete for search job {task.index}, total messages exported: {rows}")

            result = None
            if settings.upload_enabled:
                logger.info(f"Uploading files for search job: {task.index}")
                result = uploader(task.filename, settings.destination)
                logger.info(f"Upload complete for search job {task.index}: {result.location}")
                if result.cleanup_error:
                    logger.warning(f"Search job {task.index} uploaded but local file was kept: {result.cleanup_error}")
        except Exception:
            _abandon(job, task.index)
            raise

        job.delete()
    return JobOutcome(task.index, task.filename, rows, result)


def run_all(tasks, settings, **kwargs):
    """Run every task with at most ``settings.concurrency`` in flight.

    A failing task does not stop its siblings. Once all tasks have finished,
    the first error observed is raised.
    """
    outcomes = []
    first_error = None
    with ThreadPoolExecutor(max_workers=settings.concurrency) as executor:
        futures = {executor.submit(run_export_job, task, settings, **kwargs): task for task in tasks}
        for future in as_completed(futures):
            task = futures[future]
            try:
                outcomes.append(future.result())
            except Exception as e:
                logger.error(f"❌ Search job {task.index} ({task.request.time_from} → {task.request.time_to}) failed: {e}")
                if first_error is None:
                    first_error = e

    if first_error is not None:
        raise first_error
    return sorted(outcomes, key=lambda o: o.index)
