"""Dependency resolution for compile requests."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from protoreg.domain.entities import CompileRequest, Dependency, ProtoFile
from protoreg.domain.errors import CompilationCancelledError, DependencyNotFoundError, NotFoundError
from protoreg.domain.ports import VersionStoragePort
from protoreg.services.codegen.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def parse_dependencies(identifiers: Iterable[str]) -> Tuple[Dependency, ...]:
    """Parse ``module@version`` strings.

    Malformed entries are skipped with a warning; duplicates keep the first
    occurrence.
    """
    seen = set()
    parsed = []
    for identifier in identifiers:
        dependency = Dependency.parse(identifier)
        if dependency is None:
            logger.warning(f"Skipping malformed dependency identifier: {identifier!r}")
            continue
        if dependency.identifier in seen:
            continue
        seen.add(dependency.identifier)
        parsed.append(dependency)
    return tuple(parsed)


def namespaced(dependency: Dependency) -> List[ProtoFile]:
    """The dependency's files placed under ``<module_name>/``."""
    prefix = dependency.module_name.strip("/")
    return [
        ProtoFile(path=f"{prefix}/{proto.path.lstrip('/')}", content=proto.content)
        for proto in dependency.proto_files
    ]


class DependencyResolver:
    """Fetches missing dependency files and flattens a request's inputs.

    Only direct dependencies are resolved; each stored version already
    carries its own flattened file set.
    """

    def __init__(self, storage: Optional[VersionStoragePort]) -> None:
        self.storage = storage

    def resolve_request(
        self, request: CompileRequest, cancel: Optional[CancellationToken] = None
    ) -> CompileRequest:
        """Return ``request`` with every dependency's files attached."""
        resolved = []
        for dependency in request.dependencies:
            if cancel is not None and cancel.cancelled:
                raise CompilationCancelledError(f"compilation cancelled: {cancel.reason}")
            resolved.append(dependency if dependency.is_resolved else self._fetch(dependency))
        return replace(request, dependencies=tuple(resolved))

    def resolve(self, request: CompileRequest) -> List[ProtoFile]:
        """Own proto files followed by every dependency's namespaced files."""
        return self.flatten(self.resolve_request(request))

    @staticmethod
    def flatten(request: CompileRequest) -> List[ProtoFile]:
        files = list(request.proto_files)
        for dependency in request.dependencies:
            files.extend(namespaced(dependency))
        return files

    def _fetch(self, dependency: Dependency) -> Dependency:
        if self.storage is None:
            raise DependencyNotFoundError(dependency.module_name, dependency.version)
        try:
            record = self.storage.get_version(dependency.module_name, dependency.version)
        except NotFoundError as exc:
            raise DependencyNotFoundError(dependency.module_name, dependency.version) from exc
        logger.debug(f"Resolved dependency {dependency.identifier} ({len(record.files)} files)")
        return replace(dependency, proto_files=tuple(record.files))
