"""Artifact bundling and upload."""
from __future__ import annotations

import gzip
import hashlib
import io
import logging
import tarfile
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from protoreg.domain.entities import GeneratedFile
from protoreg.domain.errors import PersistenceError
from protoreg.domain.ports import ObjectStoragePort

logger = logging.getLogger(__name__)

ARTIFACT_MTIME = 0


@dataclass(frozen=True)
class PersistedArtifact:
    storage_key: str
    storage_bucket: str
    artifact_hash: str
    size: int


def bundle(generated_files: Sequence[GeneratedFile], package_files: Sequence[GeneratedFile]) -> bytes:
    """Deterministic ``tar.gz`` of every file; package files win on path clashes."""
    entries: Dict[str, bytes] = {f.path: f.content for f in generated_files}
    entries.update({f.path: f.content for f in package_files})

    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path in sorted(entries):
            content = entries[path]
            info = tarfile.TarInfo(name=path)
            info.size = len(content)
            info.mtime = ARTIFACT_MTIME
            info.mode = 0o644
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            tar.addfile(info, io.BytesIO(content))

    compressed = io.BytesIO()
    with gzip.GzipFile(fileobj=compressed, mode="wb", mtime=ARTIFACT_MTIME, filename="") as gz:
        gz.write(raw.getvalue())
    return compressed.getvalue()


class ArtifactPersister:
    """Uploads compiled artifacts to object storage and returns their address."""

    def __init__(self, storage: ObjectStoragePort, prefix: str = "compiled/", bucket: Optional[str] = None) -> None:
        self.storage = storage
        self.prefix = prefix
        self.bucket = bucket or storage.bucket

    def storage_key(self, module_name: str, version: str, language: str) -> str:
        return f"{self.prefix}{module_name}/{version}/{language}.tar.gz"

    def persist(
        self,
        job_id: str,
        module_name: str,
        version: str,
        language: str,
        generated_files: Sequence[GeneratedFile],
        package_files: Sequence[GeneratedFile],
    ) -> PersistedArtifact:
        data = bundle(generated_files, package_files)
        digest = hashlib.sha256(data).hexdigest()
        key = self.storage_key(module_name, version, language)
        try:
            self.storage.put(self.bucket, key, data)
        except Exception as exc:
            logger.error(f"Failed to store artifact for job {job_id} at {self.bucket}/{key}: {exc}")
            raise PersistenceError(str(exc)) from exc
        logger.info(f"Stored artifact for job {job_id} at {self.bucket}/{key} ({len(data)} bytes)")
        return PersistedArtifact(storage_key=key, storage_bucket=self.bucket, artifact_hash=digest, size=len(data))
