"""Pre-migration backups of the documents a sweep is about to rewrite."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, cast


class _S3ClientProtocol(Protocol):
    def put_object(self, **kwargs: Any) -> Any:
        """Persist an object to S3."""


@dataclass(frozen=True)
class CollectionBackup:
    """Serialised snapshot of part of a collection plus its labels."""

    filename: str
    collection: str
    schema_version: str
    document_count: int
    checksum: str
    generated_at: datetime
    content: bytes


def build_collection_backup(
    collection: str,
    documents: Sequence[Mapping[str, Any]],
    *,
    schema_version: str,
    generated_at: datetime,
) -> CollectionBackup:
    """Serialise ``documents`` into a deterministic JSON backup."""

    payload = {
        "collection": collection,
        "targetSchemaVersion": schema_version,
        "generatedAt": generated_at.isoformat(),
        "documents": [dict(document) for document in documents],
    }
    content = json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")
    checksum = hashlib.sha256(content).hexdigest()
    stamp = generated_at.strftime("%Y%m%dT%H%M%SZ")
    return CollectionBackup(
        filename=f"{collection}-backup-{stamp}-{checksum[:8]}.json",
        collection=collection,
        schema_version=schema_version,
        document_count=len(documents),
        checksum=checksum,
        generated_at=generated_at,
        content=content,
    )


class BackupUploader(Protocol):
    """Protocol for storing collection backups before a migration writes."""

    def upload(self, backup: CollectionBackup) -> None:
        """Persist ``backup`` somewhere it can be restored from."""


class DirectoryBackupUploader:
    """Write backups into a local directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def upload(self, backup: CollectionBackup) -> None:
        (self.directory / backup.filename).write_bytes(backup.content)


class S3BackupUploader:
    """Upload backups to an Amazon S3 compatible bucket."""

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str | None = None,
        client: _S3ClientProtocol | None = None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        extra_put_object_args: Mapping[str, Any] | None = None,
    ) -> None:
        self._bucket = bucket
        self._prefix = (prefix or "").strip().strip("/")
        self._extra_put_object_args = dict(extra_put_object_args or {})
        self._client: _S3ClientProtocol

        if client is not None:
            self._client = client
            return

        try:
            import boto3  # type: ignore[import-not-found]
        except ImportError as exc:  # pragma: no cover - depends on the s3 extra
            raise RuntimeError(
                "boto3 is required to use S3BackupUploader; install simcontent[s3]."
            ) from exc

        self._client = cast(
            _S3ClientProtocol,
            boto3.client("s3", region_name=region_name, endpoint_url=endpoint_url),
        )

    def upload(self, backup: CollectionBackup) -> None:
        key_parts = [part for part in (self._prefix, backup.collection) if part]
        key_parts.append(backup.filename)

        put_kwargs: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": "/".join(key_parts),
            "Body": backup.content,
            "ContentType": "application/json",
            "Metadata": {
                "checksum": backup.checksum,
                "collection": backup.collection,
                "schema_version": backup.schema_version,
                "document_count": str(backup.document_count),
                "generated_at": backup.generated_at.isoformat(),
            },
        }
        put_kwargs.update(self._extra_put_object_args)

        self._client.put_object(**put_kwargs)


__all__ = [
    "BackupUploader",
    "CollectionBackup",
    "DirectoryBackupUploader",
    "S3BackupUploader",
    "build_collection_backup",
]
