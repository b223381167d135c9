"""Resolve request paths against the bucket and stage the download."""

from __future__ import annotations

import mimetypes
import re
import shutil
import time
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from zipfile import ZIP_DEFLATED, ZipFile

import structlog
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError

from http_s3.core.config import Settings
from http_s3.core.errors import BadRequest, NotFound, TransferError
from http_s3.services.s3 import (
    build_s3_client,
    download_object,
    ensure_bucket,
    list_object_keys,
    open_object,
    stat_object,
)

LOGGER = structlog.get_logger(__name__)

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
ARCHIVE_MEDIA_TYPE = "application/zip"


@dataclass(frozen=True)
class StagedDownload:
    """A scratch file ready to be sent, plus how to present it."""

    path: Path
    filename: str
    media_type: str
    entries: int | None = None


def decode_request_key(raw_path: str | bytes) -> str:
    """Percent-decode a raw request path into a storage key.

    The leading separator is dropped so ``/docs/a.txt`` maps to the key
    ``docs/a.txt``. Malformed escapes and escapes that do not decode to UTF-8
    raise ``BadRequest``.
    """

    if isinstance(raw_path, bytes):
        try:
            raw_path = raw_path.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BadRequest(f"invalid URL encoding: {exc}") from exc

    match = _INVALID_ESCAPE.search(raw_path)
    if match:
        escape = raw_path[match.start() : match.start() + 3]
        raise BadRequest(f"invalid URL escape {escape!r}")

    try:
        decoded = urllib.parse.unquote(raw_path, errors="strict")
    except UnicodeDecodeError as exc:
        raise BadRequest(f"invalid URL encoding: {exc}") from exc

    return decoded.lstrip("/")


def folder_prefix(key: str) -> str:
    """Return the listing prefix for ``key`` treated as a folder."""

    folder = key.strip("/")
    return f"{folder}/" if folder else ""


def entry_name(key: str, prefix: str) -> str | None:
    """Return the archive entry name for ``key``, or ``None`` to skip it.

    Leading separators left after removing ``prefix`` are dropped. Keys
    outside ``prefix`` and zero-byte folder markers (keys ending in ``/``) are
    skipped.
    """

    if not key.startswith(prefix) or key.endswith("/"):
        return None
    name = key[len(prefix) :].lstrip("/")
    return name or None


def archive_filename(prefix: str, bucket: str) -> str:
    """Return the download name for an archive of ``prefix``."""

    base = prefix.rstrip("/").rsplit("/", 1)[-1] or bucket
    return f"{base}.zip"


def object_filename(key: str) -> str:
    """Return the last path segment of ``key``."""

    return key.rsplit("/", 1)[-1]


def determine_content_type(filename: str) -> str:
    """Infer a best-effort content type for downloads."""
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def create_scratch_file(settings: Settings) -> Path:
    """Create an empty scratch file owned by the current request."""

    directory = settings.scratch_dir
    if directory:
        Path(directory).mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile(delete=False, dir=directory, prefix="http-s3-") as tmp_file:
        return Path(tmp_file.name)


def remove_scratch_file(path: Path) -> None:
    """Delete a scratch file; a file that is already gone is fine."""

    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("scratch_cleanup_failed", path=str(path), error=str(exc))


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise TransferError("request timed out")


def _write_archive(
    client: BaseClient,
    bucket: str,
    keys: list[tuple[str, str]],
    destination: Path,
    deadline: float | None,
) -> None:
    with ZipFile(destination, "w", ZIP_DEFLATED) as zf:
        for key, name in keys:
            _check_deadline(deadline)
            body = open_object(client, bucket, key)
            try:
                with zf.open(name, "w", force_zip64=True) as entry:
                    shutil.copyfileobj(body, entry)
            except (BotoCoreError, OSError) as exc:
                LOGGER.error(
                    "gateway_archive_write_failed",
                    bucket=bucket,
                    key=key,
                    error=str(exc),
                )
                raise TransferError(str(exc)) from exc
            finally:
                body.close()


def stage_download(
    settings: Settings,
    raw_path: str | bytes,
    scratch: Path,
    *,
    deadline: float | None = None,
) -> StagedDownload:
    """Resolve ``raw_path`` and fill ``scratch`` with the bytes to send.

    The bucket is checked before the path is even decoded, so a broken
    backend answers every request the same way. A key that stats as an object
    is copied as-is; otherwise it is treated as a folder and every object under
    it is written into a ZIP archive.
    """

    client = build_s3_client(settings)
    bucket = settings.s3_bucket
    ensure_bucket(client, bucket)

    key = decode_request_key(raw_path)
    _check_deadline(deadline)

    if key and not key.endswith("/") and stat_object(client, bucket, key) is not None:
        with scratch.open("wb") as handle:
            download_object(client, bucket, key, handle)
        filename = object_filename(key)
        LOGGER.info("gateway_object_served", bucket=bucket, key=key)
        return StagedDownload(
            path=scratch,
            filename=filename,
            media_type=determine_content_type(filename),
        )

    prefix = folder_prefix(key)
    matches: list[tuple[str, str]] = []
    for listed_key in list_object_keys(client, bucket, prefix):
        name = entry_name(listed_key, prefix)
        if name is not None:
            matches.append((listed_key, name))

    if not matches:
        LOGGER.info("gateway_key_not_found", bucket=bucket, key=key)
        raise NotFound(f"no object or folder matches {key!r}")

    _write_archive(client, bucket, matches, scratch, deadline)
    LOGGER.info(
        "gateway_archive_built",
        bucket=bucket,
        prefix=prefix,
        entries=len(matches),
    )
    return StagedDownload(
        path=scratch,
        filename=archive_filename(prefix, bucket),
        media_type=ARCHIVE_MEDIA_TYPE,
        entries=len(matches),
    )


__all__ = [
    "StagedDownload",
    "archive_filename",
    "create_scratch_file",
    "decode_request_key",
    "determine_content_type",
    "entry_name",
    "folder_prefix",
    "object_filename",
    "remove_scratch_file",
    "stage_download",
]
