"""Domain entities for compile requests, results and jobs.

Request-side values are frozen dataclasses; they are never mutated once a
compile is dispatched. Jobs are the only mutable record and are owned by
the job store.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ProtoFile:
    path: str
    content: bytes


@dataclass(frozen=True)
class GeneratedFile:
    path: str
    content: bytes


@dataclass(frozen=True)
class Dependency:
    """A direct dependency; ``proto_files`` is empty until resolved."""
    module_name: str
    version: str
    proto_files: Tuple[ProtoFile, ...] = ()

    @property
    def identifier(self) -> str:
        return f"{self.module_name}@{self.version}"

    @property
    def is_resolved(self) -> bool:
        return bool(self.proto_files)

    @classmethod
    def parse(cls, identifier: str) -> Optional["Dependency"]:
        """Parse ``module@version``; returns None for malformed identifiers."""
        parts = identifier.split("@")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        return cls(module_name=parts[0], version=parts[1])


@dataclass(frozen=True)
class VersionRecord:
    module_name: str
    version: str
    files: Tuple[ProtoFile, ...] = ()
    dependencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CompileRequest:
    module_name: str
    version: str
    proto_files: Tuple[ProtoFile, ...]
    language: str = ""
    dependencies: Tuple[Dependency, ...] = ()
    include_grpc: bool = False
    options: Mapping[str, str] = field(default_factory=dict)

    def for_language(self, language: str) -> "CompileRequest":
        return replace(self, language=language)

    @property
    def job_id(self) -> str:
        return job_id_for(self.module_name, self.version, self.language)


def job_id_for(module_name: str, version: str, language: str) -> str:
    return f"{module_name}-{version}-{language}"


@dataclass(frozen=True)
class CompilationResult:
    language: str
    package_name: str
    version: str
    success: bool
    generated_files: Tuple[GeneratedFile, ...] = ()
    package_files: Tuple[GeneratedFile, ...] = ()
    duration: float = 0.0
    cache_hit: bool = False
    error: str = ""
    storage_key: str = ""
    storage_bucket: str = ""
    artifact_hash: str = ""

    @classmethod
    def failed(cls, request: CompileRequest, error: str, duration: float = 0.0) -> "CompilationResult":
        return cls(
            language=request.language,
            package_name=request.module_name,
            version=request.version,
            success=False,
            error=error,
            duration=duration,
        )


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    id: str
    language: str
    status: JobStatus = JobStatus.QUEUED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cache_hit: bool = False
    error: str = ""
    result: Optional[CompilationResult] = None

    def snapshot(self) -> "Job":
        return replace(self)


@dataclass(frozen=True)
class SandboxOutput:
    generated_files: List[GeneratedFile]
    package_files: List[GeneratedFile] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
