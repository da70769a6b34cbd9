"""Ports (abstractions) the compilation services depend on."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence

from protoreg.domain.entities import (
    CompilationResult,
    CompileRequest,
    Job,
    VersionRecord,
)

if TYPE_CHECKING:
    from protoreg.services.codegen.cancellation import CancellationToken


class VersionStoragePort(Protocol):
    def get_version(self, module_name: str, version: str) -> VersionRecord: ...

    def put_version(self, record: VersionRecord) -> None: ...

    def list_versions(self, module_name: str) -> List[str]: ...


class ObjectStoragePort(Protocol):
    @property
    def bucket(self) -> str: ...

    def put(self, bucket: str, key: str, data: bytes) -> None: ...

    def get(self, bucket: str, key: str) -> bytes: ...


class ArtifactCachePort(Protocol):
    def get(self, key: str) -> Optional[CompilationResult]: ...

    def put(self, key: str, result: CompilationResult, request: Optional[CompileRequest] = None) -> None: ...


class CompilerPort(Protocol):
    """Anything that can turn a compile request into results (v1 or v2)."""

    def compile_single(
        self, request: CompileRequest, cancel: Optional["CancellationToken"] = None
    ) -> CompilationResult: ...

    def compile_all(
        self,
        base_request: CompileRequest,
        languages: Sequence[str],
        cancel: Optional["CancellationToken"] = None,
    ) -> List[CompilationResult]: ...

    def get_status(self, job_id: str) -> Job: ...

    def close(self) -> None: ...

