import json
import os
from pathlib import Path
from typing import List

from protoreg.domain.entities import ProtoFile, VersionRecord
from protoreg.domain.errors import VersionNotFoundError
from protoreg.storage.interface import ObjectStorage, VersionStorage


def _safe_join(base: Path, *parts: str) -> Path:
    path = base.joinpath(*parts).resolve()
    if not path.is_relative_to(base.resolve()):
        raise ValueError(f"Path escapes storage root: {'/'.join(parts)}")
    return path


class FilesystemObjectStorage(ObjectStorage):
    """
    Implements artifact storage using the local filesystem; buckets are directories.
    """

    def __init__(self, base_dir: str, bucket: str):
        self.base_dir = Path(base_dir)
        self._bucket = bucket
        os.makedirs(self.base_dir, exist_ok=True)

    @property
    def bucket(self) -> str:
        return self._bucket

    def object_path(self, bucket: str, key: str) -> Path:
        return _safe_join(self.base_dir, bucket, key)

    def put(self, bucket: str, key: str, data: bytes) -> None:
        path = self.object_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".partial")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def get(self, bucket: str, key: str) -> bytes:
        path = self.object_path(bucket, key)
        if not path.exists():
            raise FileNotFoundError(f"Object not found: {bucket}/{key}")
        with open(path, "rb") as f:
            return f.read()

    def delete(self, bucket: str, key: str) -> bool:
        path = self.object_path(bucket, key)
        if not path.exists():
            return False
        path.unlink()
        return True


class FilesystemVersionStorage(VersionStorage):
    """
    Stores each module version as ``<base_dir>/<module>/<version>/version.json``.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        os.makedirs(self.base_dir, exist_ok=True)

    def version_path(self, module_name: str, version: str) -> Path:
        return _safe_join(self.base_dir, module_name, version, "version.json")

    def get_version(self, module_name: str, version: str) -> VersionRecord:
        path = self.version_path(module_name, version)
        if not path.exists():
            raise VersionNotFoundError(module_name, version)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return VersionRecord(
            module_name=data["module_name"],
            version=data["version"],
            files=tuple(
                ProtoFile(path=entry["path"], content=entry["content"].encode("utf-8"))
                for entry in data.get("files", [])
            ),
            dependencies=tuple(data.get("dependencies", [])),
        )

    def put_version(self, record: VersionRecord) -> None:
        path = self.version_path(record.module_name, record.version)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "module_name": record.module_name,
            "version": record.version,
            "files": [
                {"path": f.path, "content": f.content.decode("utf-8")} for f in record.files
            ],
            "dependencies": list(record.dependencies),
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def list_versions(self, module_name: str) -> List[str]:
        module_dir = _safe_join(self.base_dir, module_name)
        if not module_dir.is_dir():
            return []
        return sorted(p.parent.name for p in module_dir.glob("*/version.json"))
