"""Minimal S3 client helpers."""

from __future__ import annotations

from typing import IO, Any

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

import structlog

from http_s3.core.config import Settings
from http_s3.core.errors import (
    BackendUnavailable,
    ConfigurationError,
    TransferError,
)

LOGGER = structlog.get_logger(__name__)

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}
_MISSING_CODES = {"404", "NoSuchBucket", "NoSuchKey", "NotFound"}


def parse_secure_flag(value: str | None) -> bool:
    """Parse the TLS flag, accepting only the usual boolean spellings."""

    candidate = (value or "").strip()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"invalid S3_SECURE value: {value!r}")


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def build_s3_client(settings: Settings) -> BaseClient:
    """Return an S3 client bound to the configured endpoint."""

    use_ssl = parse_secure_flag(settings.s3_secure)
    if not settings.s3_endpoint:
        raise ConfigurationError("S3_ENDPOINT is not configured")

    scheme = "https" if use_ssl else "http"
    client_kwargs: dict[str, object] = {
        "endpoint_url": f"{scheme}://{settings.s3_endpoint}",
        "region_name": settings.s3_region,
        "use_ssl": use_ssl,
        "config": Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=settings.request_timeout,
            read_timeout=settings.request_timeout,
            retries={"total_max_attempts": 1},
        ),
    }
    if settings.s3_access_key and settings.s3_secret_key:
        client_kwargs["aws_access_key_id"] = settings.s3_access_key
        client_kwargs["aws_secret_access_key"] = settings.s3_secret_key

    try:
        return boto3.client("s3", **client_kwargs)
    except (BotoCoreError, ValueError) as exc:
        LOGGER.error(
            "s3_client_build_failed",
            endpoint=settings.s3_endpoint,
            error=str(exc),
        )
        raise ConfigurationError(str(exc)) from exc


def ensure_bucket(client: BaseClient, bucket: str | None) -> None:
    """Raise ``BackendUnavailable`` unless ``bucket`` exists and is reachable."""

    if not bucket:
        raise BackendUnavailable("S3_BUCKET is not configured")

    try:
        client.head_bucket(Bucket=bucket)
    except ClientError as exc:
        if _error_code(exc) in _MISSING_CODES:
            LOGGER.error("gateway_bucket_missing", bucket=bucket)
            raise BackendUnavailable(f"bucket {bucket!r} does not exist") from exc
        LOGGER.error("gateway_bucket_check_failed", bucket=bucket, error=str(exc))
        raise BackendUnavailable(str(exc)) from exc
    except BotoCoreError as exc:
        LOGGER.error("gateway_bucket_check_failed", bucket=bucket, error=str(exc))
        raise BackendUnavailable(str(exc)) from exc


def stat_object(client: BaseClient, bucket: str, key: str) -> dict[str, Any] | None:
    """Return object metadata, or ``None`` when the key is not a readable object."""

    try:
        return client.head_object(Bucket=bucket, Key=key)
    except (ClientError, BotoCoreError) as exc:
        LOGGER.debug("gateway_stat_miss", bucket=bucket, key=key, error=str(exc))
        return None


def list_object_keys(client: BaseClient, bucket: str, prefix: str) -> list[str]:
    """Return every key under ``prefix`` in listing order."""

    keys: list[str] = []
    try:
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for entry in page.get("Contents", []) or []:
                key = entry.get("Key")
                if key:
                    keys.append(key)
    except (ClientError, BotoCoreError) as exc:
        LOGGER.error("gateway_list_failed", bucket=bucket, prefix=prefix, error=str(exc))
        raise TransferError(str(exc)) from exc
    return keys


def download_object(client: BaseClient, bucket: str, key: str, fileobj: IO[bytes]) -> None:
    """Copy a single object into ``fileobj``."""

    try:
        client.download_fileobj(Bucket=bucket, Key=key, Fileobj=fileobj)
    except (ClientError, BotoCoreError) as exc:
        LOGGER.error("gateway_fetch_failed", bucket=bucket, key=key, error=str(exc))
        raise TransferError(str(exc)) from exc


def open_object(client: BaseClient, bucket: str, key: str) -> IO[bytes]:
    """Return the streaming body of an object."""

    try:
        response = client.get_object(Bucket=bucket, Key=key)
    except (ClientError, BotoCoreError) as exc:
        LOGGER.error("gateway_fetch_failed", bucket=bucket, key=key, error=str(exc))
        raise TransferError(str(exc)) from exc
    return response["Body"]


__all__ = [
    "build_s3_client",
    "download_object",
    "ensure_bucket",
    "list_object_keys",
    "open_object",
    "parse_secure_flag",
    "stat_object",
]
