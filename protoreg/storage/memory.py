import threading
from typing import Dict, List, Tuple

from protoreg.domain.entities import VersionRecord
from protoreg.domain.errors import VersionNotFoundError
from protoreg.storage.interface import ObjectStorage, VersionStorage


class InMemoryVersionStorage(VersionStorage):
    """
    Keeps module versions in a dict; used for tests and ephemeral deployments.
    """

    def __init__(self):
        self._records: Dict[Tuple[str, str], VersionRecord] = {}
        self._lock = threading.Lock()
        self.get_calls = 0

    def get_version(self, module_name: str, version: str) -> VersionRecord:
        with self._lock:
            self.get_calls += 1
            record = self._records.get((module_name, version))
        if record is None:
            raise VersionNotFoundError(module_name, version)
        return record

    def put_version(self, record: VersionRecord) -> None:
        with self._lock:
            self._records[(record.module_name, record.version)] = record

    def list_versions(self, module_name: str) -> List[str]:
        with self._lock:
            return sorted(v for (m, v) in self._records if m == module_name)


class InMemoryObjectStorage(ObjectStorage):
    def __init__(self, bucket: str = "protoreg-artifacts"):
        self._bucket = bucket
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self._lock = threading.Lock()

    @property
    def bucket(self) -> str:
        return self._bucket

    def put(self, bucket: str, key: str, data: bytes) -> None:
        with self._lock:
            self.objects[(bucket, key)] = data

    def get(self, bucket: str, key: str) -> bytes:
        with self._lock:
            if (bucket, key) not in self.objects:
                raise FileNotFoundError(f"Object not found: {bucket}/{key}")
            return self.objects[(bucket, key)]

    def delete(self, bucket: str, key: str) -> bool:
        with self._lock:
            return self.objects.pop((bucket, key), None) is not None
