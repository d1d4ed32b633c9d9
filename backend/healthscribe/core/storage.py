#!/usr/bin/env python3
"""
Storage abstraction for HealthScribe.

Encounter audio and the transcription service's output live in S3; the
on-device preferences mirror lives in a local directory. Both share the
:class:`StorageBackend` interface.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Any, Callable, Dict, Optional, Tuple, Union
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

AUDIO_CONTENT_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".amr": "audio/amr",
}


def guess_content_type(filename: str) -> str:
    """Content type for an audio file name, by extension."""
    return AUDIO_CONTENT_TYPES.get(
        Path(filename).suffix.lower(), "application/octet-stream"
    )


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split an S3 object URI into ``(bucket, key)``.

    Accepts ``s3://bucket/key`` and the path-style HTTPS form returned by the
    transcription service, ``https://s3.<region>.amazonaws.com/bucket/key``.

    Raises:
        ValueError: If the URI is neither form.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "s3":
        bucket, key = parsed.netloc, parsed.path.lstrip("/")
    elif parsed.scheme == "https" and parsed.netloc.endswith("amazonaws.com"):
        if parsed.netloc.startswith("s3.") or parsed.netloc.startswith("s3-"):
            bucket, _, key = parsed.path.lstrip("/").partition("/")
        else:
            # virtual-hosted style: bucket.s3.<region>.amazonaws.com
            bucket = parsed.netloc.split(".s3", 1)[0]
            key = parsed.path.lstrip("/")
    else:
        raise ValueError(f"Not an S3 URI: {uri}")
    if not bucket or not key:
        raise ValueError(f"Not an S3 object URI: {uri}")
    return bucket, unquote(key)


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def save_text(self, path: str, content: str) -> str:
        """Save text content to storage."""

    @abstractmethod
    def load_text(self, path: str) -> str:
        """Load text content from storage."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if file exists in storage."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove a file; missing files are ignored."""

    @abstractmethod
    def get_url(self, path: str) -> str:
        """Get access URL for the file."""

    def save_json(self, path: str, data: Dict[str, Any]) -> str:
        """Save JSON data to storage."""
        return self.save_text(path, json.dumps(data, indent=2, ensure_ascii=False))

    def load_json(self, path: str) -> Dict[str, Any]:
        """Load JSON data from storage."""
        return json.loads(self.load_text(path))


class S3Backend(StorageBackend):
    """S3 storage backend implementation."""

    def __init__(
        self,
        bucket_name: str,
        session: Optional[boto3.Session] = None,
        s3_client: Any = None,
    ):
        self.bucket_name = bucket_name
        self.s3_client = s3_client or (session or boto3.Session()).client("s3")
        logger.info(f"Initialized S3Backend with bucket: {bucket_name}")

    def _normalize_path(self, path: str) -> str:
        """Normalize path for S3 (remove leading slash)."""
        return path.lstrip("/")

    def save_text(self, path: str, content: str) -> str:
        """Save text content to S3."""
        key = self._normalize_path(path)
        content_type = "application/json" if key.endswith(".json") else "text/plain"
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content.encode("utf-8"),
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"Failed to save text to S3: {e}")
            raise
        url = self.get_url(key)
        logger.info(f"Saved text file to: {url}")
        return url

    def load_text(self, path: str) -> str:
        """Load text content from S3."""
        return self.load_object(self.bucket_name, self._normalize_path(path))

    def load_object(self, bucket: str, key: str) -> str:
        """Load a text object from any bucket the client can read."""
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"File not found in S3: s3://{bucket}/{key}")
            logger.error(f"Failed to load text from S3: {e}")
            raise
        logger.debug(f"Loaded text from S3: {key}")
        return response["Body"].read().decode("utf-8")

    def load_json_uri(self, uri: str) -> Dict[str, Any]:
        """Load a JSON object addressed by an ``s3://`` or HTTPS S3 URI."""
        bucket, key = parse_s3_uri(uri)
        return json.loads(self.load_object(bucket, key))

    def upload_file(
        self,
        path: str,
        fileobj: IO[bytes],
        content_type: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> str:
        """Upload a binary stream to S3 with optional progress reporting.

        Args:
            path: Object key.
            fileobj: Readable binary stream.
            content_type: Content type; guessed from the key when omitted.
            callback: Called with ``(loaded, total)`` byte counts as the
                upload advances.

        Returns:
            str: ``s3://`` URI of the uploaded object.
        """
        key = self._normalize_path(path)
        total = _stream_size(fileobj)
        loaded = 0
        lock = threading.Lock()

        def _on_progress(bytes_amount: int) -> None:
            nonlocal loaded
            with lock:
                loaded += bytes_amount
                current = loaded
            if callback is not None:
                callback(current, total)

        try:
            self.s3_client.upload_fileobj(
                fileobj,
                self.bucket_name,
                key,
                ExtraArgs={"ContentType": content_type or guess_content_type(key)},
                Callback=_on_progress,
            )
        except ClientError as e:
            logger.error(f"Failed to upload {key} to S3: {e}")
            raise
        url = self.get_url(key)
        logger.info(f"Uploaded {total} bytes to: {url}")
        return url

    def exists(self, path: str) -> bool:
        """Check if file exists in S3."""
        try:
            self.s3_client.head_object(
                Bucket=self.bucket_name, Key=self._normalize_path(path)
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            logger.error(f"Error checking file existence in S3: {e}")
            raise

    def delete(self, path: str) -> None:
        self.s3_client.delete_object(
            Bucket=self.bucket_name, Key=self._normalize_path(path)
        )

    def get_url(self, path: str) -> str:
        """Get S3 URL for the file."""
        return f"s3://{self.bucket_name}/{self._normalize_path(path)}"


class LocalBackend(StorageBackend):
    """Local filesystem storage backend implementation."""

    def __init__(self, base_path: Union[str, Path] = "~/.healthscribe"):
        self.base_path = Path(base_path).expanduser()
        logger.debug(f"Initialized LocalBackend with base path: {self.base_path}")

    def _get_full_path(self, path: str) -> Path:
        """Get full local path."""
        return self.base_path / path.lstrip("/")

    def save_text(self, path: str, content: str) -> str:
        """Save text content to local filesystem."""
        full_path = self._get_full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = full_path.with_name(full_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, full_path)
        logger.debug(f"Saved text file to: {full_path}")
        return str(full_path)

    def load_text(self, path: str) -> str:
        """Load text content from local filesystem."""
        full_path = self._get_full_path(path)
        try:
            with open(full_path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            raise FileNotFoundError(f"File not found: {path}")

    def exists(self, path: str) -> bool:
        """Check if file exists in local filesystem."""
        return self._get_full_path(path).exists()

    def delete(self, path: str) -> None:
        self._get_full_path(path).unlink(missing_ok=True)

    def get_url(self, path: str) -> str:
        """Get local file URL."""
        return f"file://{self._get_full_path(path).absolute()}"


def _stream_size(fileobj: IO[bytes]) -> int:
    """Remaining bytes in a seekable stream, or 0 when unknown."""
    try:
        position = fileobj.tell()
        fileobj.seek(0, os.SEEK_END)
        size = fileobj.tell()
        fileobj.seek(position)
        return size - position
    except (AttributeError, OSError):
        return 0


def create_storage_backend(backend_type: str = "s3", **kwargs) -> StorageBackend:
    """
    Factory function to create storage backend.

    Args:
        backend_type: Either "s3" or "local"
        **kwargs: Additional arguments for the backend

    Returns:
        StorageBackend instance
    """
    if backend_type.lower() == "s3":
        return S3Backend(**kwargs)
    elif backend_type.lower() == "local":
        return LocalBackend(**kwargs)
    else:
        raise ValueError(f"Unknown storage backend: {backend_type}")
