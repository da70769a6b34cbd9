from pathlib import Path
from typing import Optional

from protoreg.config import Settings, settings as default_settings
from protoreg.domain.ports import ArtifactCachePort, CompilerPort
from protoreg.services.codegen.artifact_cache import LocalArtifactCache
from protoreg.services.codegen.legacy import LegacyProtocCompiler
from protoreg.services.codegen.orchestrator import CompilationOrchestrator, OrchestratorConfig
from protoreg.services.codegen.persister import ArtifactPersister
from protoreg.services.codegen.registry import GeneratorRegistry, default_registry
from protoreg.services.codegen.resolver import DependencyResolver
from protoreg.services.codegen.sandbox import SandboxExecutor, SandboxLimits, build_sandbox
from protoreg.storage.interface import ObjectStorage, VersionStorage


def build_orchestrator(
    settings: Settings = default_settings,
    version_storage: Optional[VersionStorage] = None,
    object_storage: Optional[ObjectStorage] = None,
    registry: Optional[GeneratorRegistry] = None,
    cache: Optional[ArtifactCachePort] = None,
) -> CompilationOrchestrator:
    """
    Wire the v2 orchestrator from settings.

    Persistence is skipped when no object storage is supplied. ``cache`` is
    shared with callers that report on it; one is created under
    ``ARTIFACT_CACHE_DIR`` when omitted.
    """
    registry = registry or default_registry()
    runner = build_sandbox(
        settings.SANDBOX_BACKEND,
        Path(settings.SANDBOX_WORK_DIR),
        limits=SandboxLimits(memory=settings.SANDBOX_MEMORY_LIMIT, cpus=settings.SANDBOX_CPU_LIMIT),
        docker_binary=settings.DOCKER_BINARY,
        protoc_binary=settings.PROTOC_BINARY,
    )
    if not settings.ENABLE_CACHE:
        cache = None
    elif cache is None:
        cache = LocalArtifactCache(Path(settings.ARTIFACT_CACHE_DIR))
    persister = None
    if object_storage is not None:
        persister = ArtifactPersister(object_storage, prefix=settings.ARTIFACT_PREFIX)
    return CompilationOrchestrator(
        registry=registry,
        executor=SandboxExecutor(runner, registry),
        resolver=DependencyResolver(version_storage),
        cache=cache,
        persister=persister,
        config=OrchestratorConfig.from_settings(settings),
    )


def build_compiler(
    settings: Settings = default_settings,
    version_storage: Optional[VersionStorage] = None,
    object_storage: Optional[ObjectStorage] = None,
    cache: Optional[ArtifactCachePort] = None,
) -> CompilerPort:
    """
    Select the compilation backend from ``CODEGEN_VERSION``.

    Returns:
        The orchestrator for "v2", the legacy host-protoc compiler for "v1"
    """
    codegen_version = settings.CODEGEN_VERSION.lower()
    if codegen_version == "v2":
        return build_orchestrator(settings, version_storage, object_storage, cache=cache)
    if codegen_version == "v1":
        return LegacyProtocCompiler(
            DependencyResolver(version_storage),
            protoc=settings.PROTOC_BINARY,
            timeout=settings.COMPILATION_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unsupported codegen version: {settings.CODEGEN_VERSION}")
