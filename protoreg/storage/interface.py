from abc import ABC, abstractmethod
from typing import List

from protoreg.domain.entities import VersionRecord


class ObjectStorage(ABC):
    """
    Abstract interface for artifact storage. Supports both S3 and local filesystem.
    """

    @property
    @abstractmethod
    def bucket(self) -> str:
        """Default bucket artifacts are written to."""

    @abstractmethod
    def put(self, bucket: str, key: str, data: bytes) -> None:
        """
        Store an object.

        Args:
            bucket: Bucket name
            key: Object key within the bucket
            data: Object bytes
        """
        pass

    @abstractmethod
    def get(self, bucket: str, key: str) -> bytes:
        """
        Retrieve an object.

        Raises:
            FileNotFoundError: If no object exists at bucket/key
        """
        pass

    @abstractmethod
    def delete(self, bucket: str, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if an object was deleted, False otherwise
        """
        pass


class VersionStorage(ABC):
    """
    Abstract interface for published module versions and their proto files.
    """

    @abstractmethod
    def get_version(self, module_name: str, version: str) -> VersionRecord:
        """
        Load a module version.

        Raises:
            VersionNotFoundError: If the module version does not exist
        """
        pass

    @abstractmethod
    def put_version(self, record: VersionRecord) -> None:
        pass

    @abstractmethod
    def list_versions(self, module_name: str) -> List[str]:
        pass
