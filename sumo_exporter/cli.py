import argparse
import logging
import sys

from decouple import config

from sumo_exporter.config import settings_from_args
from sumo_exporter.errors import SumoExportError
from sumo_exporter.export import DEFAULT_POLL_INTERVAL, SEARCH_JOB_RESULTS_LIMIT
from sumo_exporter.orchestrator import build_tasks, log_plan, run_all
from sumo_exporter.transport import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT
from sumo_exporter.upload import BACKENDS

NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "azure.core.pipeline.policies")


def configure_logging(logfile, log_level):
    loglevel = getattr(logging, log_level.upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if logfile:
        handlers.append(logging.FileHandler(logfile))
    logging.basicConfig(
        level=loglevel,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if loglevel == logging.DEBUG else logging.WARNING)
    logging.info("Logging initialized.")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Export Sumo Logic search job results to CSV files, one per day.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument("--query", default=config("SUMO_QUERY", default=None),
                        help="Sumo Logic query to execute.")
    parser.add_argument("--start-date", default=config("SUMO_START_DATE", default=None),
                        help="Start of the range, e.g. 2021-01-02T00:00:00 (no offset).")
    parser.add_argument("--end-date", default=config("SUMO_END_DATE", default=None),
                        help="End of the range, e.g. 2021-01-03T00:00:00 (no offset).")
    parser.add_argument("--time-zone", default=config("SUMO_TIME_ZONE", default="UTC"))
    parser.add_argument("--api-url", default=config("SUMO_API_URL", default=DEFAULT_API_URL))
    parser.add_argument("--concurrency", type=int, default=config("SUMO_CONCURRENCY", default=1, cast=int),
                        help="Max concurrent search jobs.")
    parser.add_argument("--page-size", type=int,
                        default=config("SUMO_PAGE_SIZE", default=SEARCH_JOB_RESULTS_LIMIT, cast=int),
                        help="Messages requested per page.")
    parser.add_argument("--poll-interval", type=float,
                        default=config("SUMO_POLL_INTERVAL", default=DEFAULT_POLL_INTERVAL, cast=float),
                        help="Seconds to wait while a job is still gathering results.")
    parser.add_argument("--request-timeout", type=float,
                        default=config("SUMO_REQUEST_TIMEOUT", default=DEFAULT_REQUEST_TIMEOUT, cast=float))
    parser.add_argument("--filename", default=config("EXPORT_FILENAME", default="sumo_export"),
                        help="Prefix of the CSV files, <filename>_<startDate>.csv")
    parser.add_argument("--output-dir", default=config("EXPORT_OUTPUT_DIR", default="."))
    parser.add_argument("--upload", action="store_true",
                        default=config("UPLOAD_ENABLED", default=False, cast=bool),
                        help="Upload each CSV to the object store once exported.")
    parser.add_argument("--storage-backend", choices=BACKENDS,
                        default=config("UPLOAD_BACKEND", default="s3"))
    parser.add_argument("--bucket", default=config("UPLOAD_BUCKET", default=None),
                        help="S3 bucket or Azure container name.")
    parser.add_argument("--region", default=config("AWS_REGION", default=None))
    parser.add_argument("--delete-on-upload", action="store_true",
                        default=config("UPLOAD_DELETE_ON_UPLOAD", default=False, cast=bool))
    parser.add_argument("--storage-account-url", default=config("AZURE_STORAGE_ACCOUNT_URL", default=None))
    parser.add_argument("--storage-access-key", default=config("AZURE_STORAGE_ACCESS_KEY", default=None))
    parser.add_argument("--logfile", default=config("SUMO_EXPORT_LOGFILE", default=None))
    parser.add_argument("--log-level", default=config("SUMO_EXPORT_LOG_LEVEL", default="INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--dry-run", action="store_true",
                        help="Only log the planned search jobs.")
    args = parser.parse_args(argv)

    for required in ("query", "start_date", "end_date"):
        if not getattr(args, required):
            parser.error(f"--{required.replace('_', '-')} is required (or set SUMO_{required.upper()})")

    args.access_id = config("SUMO_ACCESS_ID", default=None)
    args.access_key = config("SUMO_ACCESS_KEY", default=None)
    return args


def run(args):
    settings = settings_from_args(args)
    tasks = build_tasks(settings)
    logging.info(f"Planned {len(tasks)} search job(s) from {args.start_date} to {args.end_date}")

    if settings.dry_run:
        log_plan(tasks)
        return []

    outcomes = run_all(tasks, settings)
    total = sum(o.rows for o in outcomes)
    logging.info(f"🎉 All {len(outcomes)} search jobs completed, {total} messages exported.")
    return outcomes


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.logfile, args.log_level)
    logging.info("Starting sumo-log-exporter")
    try:
        run(args)
    except SumoExportError as e:
        print(f"error : {e}", file=sys.stderr)
        sys.exit(1)
