from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from simcontent.backup import (
    DirectoryBackupUploader,
    S3BackupUploader,
    build_collection_backup,
)


class _StubS3Client:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def put_object(self, **kwargs: Any) -> None:
        self.calls.append(kwargs)


GENERATED_AT = datetime(2024, 7, 1, 10, 30, tzinfo=timezone.utc)


def _backup():
    return build_collection_backup(
        "characters",
        [{"id": "c1", "schemaVersion": "1.0"}],
        schema_version="1.1",
        generated_at=GENERATED_AT,
    )


def test_backup_content_is_deterministic() -> None:
    first = _backup()
    second = _backup()

    assert first == second
    assert first.checksum == hashlib.sha256(first.content).hexdigest()
    assert first.filename == (
        f"characters-backup-20240701T103000Z-{first.checksum[:8]}.json"
    )
    assert first.document_count == 1
    assert json.loads(first.content) == {
        "collection": "characters",
        "targetSchemaVersion": "1.1",
        "generatedAt": GENERATED_AT.isoformat(),
        "documents": [{"id": "c1", "schemaVersion": "1.0"}],
    }


def test_directory_uploader_writes_backup_file(tmp_path: Path) -> None:
    backup = _backup()
    uploader = DirectoryBackupUploader(tmp_path / "nested" / "backups")

    uploader.upload(backup)

    assert (tmp_path / "nested" / "backups" / backup.filename).read_bytes() == (
        backup.content
    )


def test_s3_backup_uploader_puts_object_with_expected_metadata() -> None:
    client = _StubS3Client()
    backup = _backup()

    uploader = S3BackupUploader(bucket="my-bucket", prefix="backups", client=client)
    uploader.upload(backup)

    assert client.calls == [
        {
            "Bucket": "my-bucket",
            "Key": f"backups/characters/{backup.filename}",
            "Body": backup.content,
            "ContentType": "application/json",
            "Metadata": {
                "checksum": backup.checksum,
                "collection": "characters",
                "schema_version": "1.1",
                "document_count": "1",
                "generated_at": GENERATED_AT.isoformat(),
            },
        }
    ]


def test_s3_backup_uploader_merges_custom_options() -> None:
    client = _StubS3Client()
    backup = _backup()

    uploader = S3BackupUploader(
        bucket="archive",
        prefix="/snapshots/",
        client=client,
        extra_put_object_args={"StorageClass": "STANDARD_IA"},
    )
    uploader.upload(backup)

    call = client.calls[0]
    assert call["Key"] == f"snapshots/characters/{backup.filename}"
    assert call["StorageClass"] == "STANDARD_IA"


def test_s3_backup_uploader_without_prefix() -> None:
    client = _StubS3Client()
    backup = _backup()

    S3BackupUploader(bucket="archive", client=client).upload(backup)

    assert client.calls[0]["Key"] == f"characters/{backup.filename}"
