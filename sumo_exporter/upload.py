import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError
from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import ContainerClient, ContentSettings

from sumo_exporter.errors import ArtifactError, ConfigError, TransferError

logger = logging.getLogger(__name__)

PART_SIZE = 100 * 1024 * 1024  # 100MB part size
PART_CONCURRENCY = 10
BACKENDS = ("s3", "azure")


@dataclass(frozen=True)
class Destination:
    bucket: str
    region: Optional[str] = None
    delete_on_upload: bool = False
    backend: str = "s3"
    account_url: Optional[str] = None
    access_key: Optional[str] = None


@dataclass
class UploadResult:
    location: str
    deleted: bool = False
    cleanup_error: Optional[ArtifactError] = None


def content_type_for(path):
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


def s3_location(bucket, region, key):
    if region:
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"
    return f"https://{bucket}.s3.amazonaws.com/{key}"


def get_s3_client(region=None):
    return boto3.client("s3", region_name=region)


def get_container_client(container_name, account_url=None, access_key=None):
    if not account_url:
        raise ConfigError("Storage account URL not provided. Set AZURE_STORAGE_ACCOUNT_URL or use --storage-account-url.")
    credential = access_key or DefaultAzureCredential()
    return ContainerClient(account_url=account_url, container_name=container_name, credential=credential)


def upload_to_s3(path, key, destination, client=None):
    client = client or get_s3_client(destination.region)
    config = TransferConfig(multipart_chunksize=PART_SIZE, max_concurrency=PART_CONCURRENCY)
    try:
        client.upload_file(
            path, destination.bucket, key,
            ExtraArgs={"ACL": "private", "ContentType": content_type_for(path)},
            Config=config,
        )
    except (BotoCoreError, ClientError, OSError) as e:
        raise TransferError(f"error uploading file [{path}]: {e}") from e
    return s3_location(destination.bucket, destination.region, key)


def upload_to_azure(path, key, destination, client=None):
    client = client or get_container_client(destination.bucket, destination.account_url, destination.access_key)
    try:
        with open(path, "rb") as data:
            client.upload_blob(
                name=key,
                data=data,
                overwrite=True,
                max_concurrency=PART_CONCURRENCY,
                content_settings=ContentSettings(content_type=content_type_for(path)),
            )
        return client.get_blob_client(key).url
    except (AzureError, OSError) as e:
        raise TransferError(f"error uploading file [{path}]: {e}") from e


def upload(path, destination, client=None):
    """Upload a finished export and optionally remove the local copy.

    The object key is the file's base name. A failed local delete does not
    undo a successful transfer; it is logged and kept on the result.
    """
    if destination.backend not in BACKENDS:
        raise ConfigError(f"unsupported storage backend: {destination.backend}")
    if not os.path.isfile(path):
        raise TransferError(f"could not open local filepath [{path}]: file not found")

    key = os.path.basename(path)
    if destination.backend == "azure":
        location = upload_to_azure(path, key, destination, client)
    else:
        location = upload_to_s3(path, key, destination, client)
    logger.info(f"file uploaded to, {location}")

    result = UploadResult(location)
    if destination.delete_on_upload:
        try:
            os.remove(path)
            result.deleted = True
        except OSError as e:
            result.cleanup_error = ArtifactError(f"error removing file [{path}]: {e}")
            logger.error(str(result.cleanup_error))
    return result
