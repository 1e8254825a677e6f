"""S3 storage adapter using boto3.

Folders are key prefixes. An explicit folder is a zero-byte marker object
whose key ends in "/".
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from cardsync.core.exceptions import (
    ExpiredCredentialError,
    RateLimitError,
    StorageAccessError,
    StorageConflictError,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
)
from cardsync.core.models import Credentials, RemoteEntry, RemoteEntryKind


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mypy_boto3_s3 import S3Client

    from cardsync.core.ports import ProgressCallback


# Chunk size for streaming downloads (64KB)
_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NoSuchBucket", "NotFound"})
_CONFLICT_CODES = frozenset({"412", "PreconditionFailed", "ConditionalRequestConflict"})
_EXPIRED_CODES = frozenset(
    {"ExpiredToken", "ExpiredTokenException", "TokenRefreshRequired", "RequestExpired"}
)
_ACCESS_CODES = frozenset(
    {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "InvalidToken"}
)
_THROTTLE_CODES = frozenset(
    {
        "429",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
    }
)
_TRANSIENT_BOTOCORE_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


class S3Storage:
    """Storage adapter for S3 operations.

    Implements RemoteStoragePort for AWS S3.
    """

    def __init__(
        self,
        bucket: str,
        root_prefix: str = "",
        client: S3Client | None = None,
        credentials: Callable[[], Credentials | None] | None = None,
        region: str | None = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: Bucket holding the cards.
            root_prefix: Key prefix all paths are relative to.
            client: Optional boto3 S3 client. When given it is used as-is.
            credentials: Optional callable returning the current session
                credentials. The client is rebuilt whenever they change.
                Returning None falls back to boto3's default credential chain.
            region: AWS region for clients built by this adapter.
            connect_timeout: Seconds to wait for a connection.
            read_timeout: Seconds to wait for a response.
        """
        self._bucket = bucket
        self._root = root_prefix.strip("/")
        self._client = client
        self._credentials = credentials
        self._region = region
        self._config = Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        )
        self._client_credentials: Credentials | None = None

    @property
    def bucket(self) -> str:
        return self._bucket

    def _get_client(self) -> S3Client:
        """Return a client for the current credentials."""
        if self._credentials is None:
            if self._client is None:
                self._client = boto3.client(
                    "s3", region_name=self._region, config=self._config
                )
            return self._client

        creds = self._credentials()
        if self._client is None or creds != self._client_credentials:
            kwargs: dict[str, Any] = {}
            if creds is not None:
                kwargs = {
                    "aws_access_key_id": creds.access_key_id,
                    "aws_secret_access_key": creds.secret_access_key,
                    "aws_session_token": creds.session_token,
                }
            self._client = boto3.client(
                "s3", region_name=self._region, config=self._config, **kwargs
            )
            self._client_credentials = creds
        return self._client

    def _key(self, path: str) -> str:
        """Map a storage path to an object key."""
        parts = [p for p in (self._root, path.strip("/")) if p]
        return "/".join(parts)

    def _folder_prefix(self, path: str) -> str:
        key = self._key(path)
        return f"{key}/" if key else ""

    def _relative(self, key: str) -> str:
        """Map an object key back to a storage path."""
        if self._root and key.startswith(f"{self._root}/"):
            key = key[len(self._root) + 1 :]
        return key.rstrip("/")

    def _request(self, source: str, method: str, **kwargs: Any) -> Any:
        client = self._get_client()
        try:
            return getattr(client, method)(Bucket=self._bucket, **kwargs)
        except ClientError as e:
            raise self._translate_client_error(e, source) from e
        except BotoCoreError as e:
            raise self._translate_botocore_error(e, source) from e

    def _pages(self, source: str, operation: str, **kwargs: Any) -> list[dict[str, Any]]:
        paginator = self._get_client().get_paginator(operation)
        try:
            return list(paginator.paginate(Bucket=self._bucket, **kwargs))
        except ClientError as e:
            raise self._translate_client_error(e, source) from e
        except BotoCoreError as e:
            raise self._translate_botocore_error(e, source) from e

    def list_folder(
        self, path: str, include_deleted: bool = False
    ) -> list[RemoteEntry]:
        """List the direct children of a folder.

        Args:
            path: Folder path ("" for the storage root).
            include_deleted: Also report delete markers (versioned buckets).

        Returns:
            Entries sorted by path.

        Raises:
            StorageNotFoundError: If the folder has no marker and no children.
        """
        prefix = self._folder_prefix(path)
        entries: list[RemoteEntry] = []
        seen_marker = False

        for page in self._pages(path, "list_objects_v2", Prefix=prefix, Delimiter="/"):
            for obj in page.get("Contents", []):
                if obj["Key"] == prefix:
                    seen_marker = True
                    continue
                entries.append(
                    RemoteEntry(
                        path=self._relative(obj["Key"]),
                        kind=RemoteEntryKind.FILE,
                        size=obj["Size"],
                    )
                )
            for common in page.get("CommonPrefixes", []):
                entries.append(
                    RemoteEntry(
                        path=self._relative(common["Prefix"]),
                        kind=RemoteEntryKind.FOLDER,
                    )
                )

        if prefix and not entries and not seen_marker:
            raise StorageNotFoundError(f"Folder not found: {path}", source=path)

        if include_deleted:
            versions = self._pages(
                path, "list_object_versions", Prefix=prefix, Delimiter="/"
            )
            for page in versions:
                for marker in page.get("DeleteMarkers", []):
                    if marker["IsLatest"]:
                        entries.append(
                            RemoteEntry(
                                path=self._relative(marker["Key"]),
                                kind=RemoteEntryKind.DELETED,
                            )
                        )

        return sorted(entries, key=lambda e: e.path)

    def get_metadata(self, path: str) -> RemoteEntry:
        """Describe a file or folder.

        Raises:
            StorageNotFoundError: If neither a file nor a folder exists at path.
        """
        # The root prefix is implicit, so the store root exists with the bucket
        if not path.strip("/"):
            self._request(path, "head_bucket")
            return RemoteEntry(path="", kind=RemoteEntryKind.FOLDER)

        key = self._key(path)
        try:
            response = self._request(path, "head_object", Key=key)
            return RemoteEntry(
                path=path.strip("/"),
                kind=RemoteEntryKind.FILE,
                size=response["ContentLength"],
            )
        except StorageNotFoundError:
            pass

        # Folders exist as a marker object or implicitly through children
        response = self._request(path, "list_objects_v2", Prefix=f"{key}/", MaxKeys=1)
        if response.get("KeyCount", 0) == 0:
            raise StorageNotFoundError(f"Object not found: {path}", source=path)
        return RemoteEntry(path=path.strip("/"), kind=RemoteEntryKind.FOLDER)

    def create_folder(self, path: str) -> RemoteEntry:
        """Create a folder marker object.

        Raises:
            StorageConflictError: If the folder already exists.
        """
        try:
            self.get_metadata(path)
        except StorageNotFoundError:
            pass
        else:
            raise StorageConflictError(f"Folder already exists: {path}", source=path)

        self._request(
            path,
            "put_object",
            Key=self._folder_prefix(path),
            Body=b"",
            IfNoneMatch="*",
        )
        return RemoteEntry(path=path.strip("/"), kind=RemoteEntryKind.FOLDER)

    def upload(
        self,
        path: str,
        content: bytes,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> RemoteEntry:
        """Upload bytes to S3 with optional progress reporting.

        Raises:
            StorageConflictError: If overwrite is False and the object exists.
        """
        kwargs: dict[str, Any] = {"Key": self._key(path), "Body": content}
        if not overwrite:
            kwargs["IfNoneMatch"] = "*"
        self._request(path, "put_object", **kwargs)
        if progress:
            progress(len(content), len(content))
        return RemoteEntry(
            path=path.strip("/"), kind=RemoteEntryKind.FILE, size=len(content)
        )

    def download(self, path: str, dest: Path) -> None:
        """Stream an object from S3 to a local path.

        Raises:
            StorageNotFoundError: If the object does not exist.
        """
        response = self._request(path, "get_object", Key=self._key(path))
        body = response["Body"]
        try:
            with dest.open("wb") as f:
                for chunk in iter(lambda: body.read(_CHUNK_SIZE), b""):
                    f.write(chunk)
        except BotoCoreError as e:
            raise self._translate_botocore_error(e, path) from e

    def delete(self, path: str) -> None:
        """Delete an object.

        Raises:
            StorageNotFoundError: If the object does not exist.
        """
        key = self._key(path)
        self._request(path, "head_object", Key=key)
        self._request(path, "delete_object", Key=key)

    def _translate_client_error(self, error: ClientError, source: str) -> StorageError:
        """Translate botocore ClientError to domain exception.

        Args:
            error: The botocore ClientError.
            source: The storage path for context.

        Returns:
            Appropriate StorageError subclass.
        """
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

        if code in _NOT_FOUND_CODES:
            return StorageNotFoundError(
                f"Object not found: {source}", source=source, cause=error
            )

        if code in _CONFLICT_CODES:
            return StorageConflictError(
                f"Object already exists: {source}", source=source, cause=error
            )

        if code in _EXPIRED_CODES:
            return ExpiredCredentialError(
                f"Session expired: {source}", source=source, cause=error
            )

        if code in _ACCESS_CODES:
            return StorageAccessError(
                f"Access denied: {source}", source=source, cause=error
            )

        if code in _THROTTLE_CODES or status == 429:
            return RateLimitError(
                f"Request throttled: {source}", source=source, cause=error
            )

        if status >= 500:
            return TransientStorageError(
                f"S3 unavailable ({code}): {source}", source=source, cause=error
            )

        # Generic S3 error
        return StorageError(f"S3 error ({code}): {error}", source=source, cause=error)

    def _translate_botocore_error(
        self, error: BotoCoreError, source: str
    ) -> StorageError:
        """Translate connection-level botocore errors to domain exceptions."""
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return StorageAccessError(
                f"No usable credentials: {error}", source=source, cause=error
            )
        if isinstance(error, _TRANSIENT_BOTOCORE_ERRORS):
            return TransientStorageError(
                f"Connection failed: {error}", source=source, cause=error
            )
        return StorageError(f"S3 client error: {error}", source=source, cause=error)
