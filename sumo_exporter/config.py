from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dateutil import parser as dtparser

from sumo_exporter.errors import ConfigError
from sumo_exporter.export import DEFAULT_POLL_INTERVAL, SEARCH_JOB_RESULTS_LIMIT
from sumo_exporter.job import DATE_FORMAT
from sumo_exporter.transport import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT
from sumo_exporter.upload import BACKENDS, Destination


def parse_date(value, name):
    """Parse a YYYY-MM-DDTHH:MM:SS timestamp without a UTC offset."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = dtparser.isoparse(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid {name} format {value!r}: {e}") from e
    if dt.tzinfo is not None:
        raise ConfigError(f"invalid {name} format {value!r}: offsets are not allowed, use --time-zone")
    return dt


def format_date(dt):
    return dt.strftime(DATE_FORMAT)


@dataclass
class Settings:
    query: str
    start: datetime
    end: datetime
    access_id: Optional[str] = None
    access_key: Optional[str] = None
    time_zone: str = "UTC"
    api_url: str = DEFAULT_API_URL
    concurrency: int = 1
    page_size: int = SEARCH_JOB_RESULTS_LIMIT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    filename: str = "sumo_export"
    output_dir: str = "."
    upload_enabled: bool = False
    destination: Optional[Destination] = None
    dry_run: bool = False

    def validate(self):
        if not self.query:
            raise ConfigError("a query statement is required")
        if self.end <= self.start:
            raise ConfigError(f"endDate {format_date(self.end)} must be after startDate {format_date(self.start)}")
        if self.concurrency < 1:
            raise ConfigError("concurrency must be >= 1")
        if self.page_size < 1:
            raise ConfigError("page size must be >= 1")
        if self.poll_interval < 0:
            raise ConfigError("poll interval must be >= 0")
        if not self.dry_run and not (self.access_id and self.access_key):
            raise ConfigError("SUMO_ACCESS_ID and SUMO_ACCESS_KEY must be set")
        if self.upload_enabled:
            if self.destination is None or not self.destination.bucket:
                raise ConfigError("upload enabled but no bucket configured")
            if self.destination.backend not in BACKENDS:
                raise ConfigError(f"unsupported storage backend: {self.destination.backend}")
            if self.destination.backend == "azure" and not self.destination.account_url:
                raise ConfigError("azure uploads need AZURE_STORAGE_ACCOUNT_URL")
        return self


def settings_from_args(args):
    destination = None
    if args.bucket:
        destination = Destination(
            bucket=args.bucket,
            region=args.region,
            delete_on_upload=args.delete_on_upload,
            backend=args.storage_backend,
            account_url=args.storage_account_url,
            access_key=args.storage_access_key,
        )
    return Settings(
        query=args.query,
        start=parse_date(args.start_date, "startDate"),
        end=parse_date(args.end_date, "endDate"),
        access_id=args.access_id,
        access_key=args.access_key,
        time_zone=args.time_zone,
        api_url=args.api_url,
        concurrency=args.concurrency,
        page_size=args.page_size,
        poll_interval=args.poll_interval,
        request_timeout=args.request_timeout,
        filename=args.filename,
        output_dir=args.output_dir,
        upload_enabled=args.upload,
        destination=destination,
        dry_run=args.dry_run,
    ).validate()
