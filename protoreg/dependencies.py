from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from protoreg.config import settings
from protoreg.domain.ports import CompilerPort
from protoreg.services.codegen.artifact_cache import LocalArtifactCache
from protoreg.services.codegen.factory import build_compiler
from protoreg.services.codegen.registry import GeneratorRegistry, default_registry
from protoreg.storage.factory import get_object_storage, get_version_storage
from protoreg.storage.interface import VersionStorage


@lru_cache(maxsize=1)
def get_version_storage_service() -> VersionStorage:
    return get_version_storage(settings)


@lru_cache(maxsize=1)
def get_registry() -> GeneratorRegistry:
    return default_registry()


@lru_cache(maxsize=1)
def get_artifact_cache() -> LocalArtifactCache:
    return LocalArtifactCache(Path(settings.ARTIFACT_CACHE_DIR))


@lru_cache(maxsize=1)
def get_compiler() -> CompilerPort:
    # One compiler per process: the job store and worker pool live inside it
    return build_compiler(
        settings,
        version_storage=get_version_storage_service(),
        object_storage=get_object_storage(settings),
        cache=get_artifact_cache() if settings.ENABLE_CACHE else None,
    )
