"""Fan-out compilation orchestrator.

``compile_single`` runs one language through resolve -> cache key ->
cache check -> sandbox -> persist -> job update. ``compile_all`` runs one
``compile_single`` per language on a bounded thread pool and never lets
one language's failure affect another's result.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from protoreg.domain.entities import CompilationResult, CompileRequest, Job, JobStatus
from protoreg.domain.errors import (
    CompilationCancelledError,
    CompilationError,
    DomainError,
    EmptyLanguageListError,
    InvalidRequestError,
    PartialFailureError,
    PersistenceError,
)
from protoreg.domain.events import (
    CompilationFailed,
    CompilationStarted,
    CompilationSucceeded,
    DomainEventPublisher,
    event_publisher,
)
from protoreg.domain.languages import Language
from protoreg.domain.ports import ArtifactCachePort
from protoreg.services.codegen.cache_keys import CacheKeyInputs, derive_cache_key
from protoreg.services.codegen.cancellation import CancellationToken
from protoreg.services.codegen.jobs import JobStore
from protoreg.services.codegen.persister import ArtifactPersister
from protoreg.services.codegen.registry import GeneratorRegistry
from protoreg.services.codegen.resolver import DependencyResolver
from protoreg.services.codegen.sandbox import SandboxExecutor

logger = logging.getLogger(__name__)

FOLLOWER_POLL_SECONDS = 0.1


@dataclass(frozen=True)
class OrchestratorConfig:
    max_parallel_workers: int = 5
    compilation_timeout: float = 300.0
    enable_cache: bool = True
    cache_namespace: str = "v1"

    @classmethod
    def from_settings(cls, settings) -> "OrchestratorConfig":
        return cls(
            max_parallel_workers=settings.MAX_PARALLEL_WORKERS,
            compilation_timeout=settings.COMPILATION_TIMEOUT_SECONDS,
            enable_cache=settings.ENABLE_CACHE,
            cache_namespace=settings.CACHE_NAMESPACE,
        )


def canonical_language(language: str) -> str:
    """Lowercase catalogue identifier; unknown names are only stripped."""
    parsed = Language.parse(language)
    return parsed.value if parsed is not None else (language or "").strip()


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    diagnostics = getattr(exc, "diagnostics", "")
    if diagnostics and diagnostics not in message:
        return f"{message}: {diagnostics}"
    return message


class CompilationOrchestrator:
    def __init__(
        self,
        registry: GeneratorRegistry,
        executor: SandboxExecutor,
        resolver: DependencyResolver,
        cache: Optional[ArtifactCachePort] = None,
        persister: Optional[ArtifactPersister] = None,
        jobs: Optional[JobStore] = None,
        config: Optional[OrchestratorConfig] = None,
        publisher: DomainEventPublisher = event_publisher,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.resolver = resolver
        self.cache = cache
        self.persister = persister
        self.jobs = jobs or JobStore()
        self.config = config or OrchestratorConfig()
        self.publisher = publisher
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_parallel_workers,
            thread_name_prefix="protoreg-compile",
        )
        self._inflight: Dict[str, Future] = {}
        self._inflight_lock = threading.Lock()

    # --------------- Public API ---------------
    def compile_single(
        self, request: CompileRequest, cancel: Optional[CancellationToken] = None
    ) -> CompilationResult:
        """Compile one language.

        Client and upstream errors (unsupported language, invalid request,
        missing dependency) are raised. Compile and persistence errors are
        returned as a failed result and recorded on the job.
        """
        self._validate(request)
        request = request.for_language(canonical_language(request.language))
        self.registry.require(request.language)

        job_id = request.job_id
        self.jobs.create(job_id, request.language)
        started = time.monotonic()
        try:
            if cancel is not None and cancel.cancelled:
                raise CompilationCancelledError(f"compilation cancelled: {cancel.reason}")
            result = self._run(request, job_id, started, cancel)
        except (CompilationError, PersistenceError) as exc:
            error = describe_error(exc)
            result = CompilationResult.failed(request, error, time.monotonic() - started)
            self._record_failure(job_id, request.language, error, result)
            return result
        except Exception as exc:
            self._record_failure(job_id, request.language, describe_error(exc))
            raise

        self.jobs.complete(job_id, result)
        self.publisher.publish(CompilationSucceeded(
            event_id="",
            timestamp=None,
            aggregate_id=job_id,
            language=result.language,
            cache_hit=result.cache_hit,
            duration=result.duration,
            storage_key=result.storage_key,
        ))
        return result

    def compile_all(
        self,
        base_request: CompileRequest,
        languages: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> List[CompilationResult]:
        """Compile every language concurrently.

        Raises ``PartialFailureError`` carrying every result when at least
        one language failed.
        """
        if not languages:
            raise EmptyLanguageListError()
        self._validate(base_request)

        batch = cancel.child() if cancel is not None else CancellationToken()
        ordered = list(dict.fromkeys(canonical_language(lang) for lang in languages))
        futures = [
            self._pool.submit(self._compile_task, base_request.for_language(language), batch)
            for language in ordered
        ]
        results = [future.result() for future in futures]

        failed = [result.language for result in results if not result.success]
        if failed:
            raise PartialFailureError(results, failed)
        return results

    def get_status(self, job_id: str) -> Job:
        return self.jobs.get(job_id)

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    # --------------- Pipeline ---------------
    def _compile_task(self, request: CompileRequest, cancel: CancellationToken) -> CompilationResult:
        try:
            return self.compile_single(request, cancel)
        except DomainError as exc:
            return CompilationResult.failed(request, describe_error(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error compiling {request.job_id}")
            return CompilationResult.failed(request, f"internal error: {exc}")

    def _run(
        self,
        request: CompileRequest,
        job_id: str,
        started: float,
        cancel: Optional[CancellationToken],
    ) -> CompilationResult:
        resolved = self.resolver.resolve_request(request, cancel)
        spec = self.registry.require(request.language)
        cache_key = derive_cache_key(CacheKeyInputs.from_request(
            resolved, spec.toolchain_version, self.config.cache_namespace
        ))
        self.publisher.publish(CompilationStarted(
            event_id="",
            timestamp=None,
            aggregate_id=job_id,
            language=request.language,
            cache_key=cache_key,
        ))

        if self.cache is not None and self.config.enable_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for {job_id} ({cache_key[:12]})")
                self.jobs.transition(job_id, JobStatus.RUNNING)
                return self._adopt(request, cached, started, cache_hit=True)
            logger.info(f"Cache miss for {job_id} ({cache_key[:12]})")

        while True:
            leader, future = self._join_flight(cache_key)
            if leader:
                break
            logger.info(f"Waiting on in-flight compile for {job_id} ({cache_key[:12]})")
            self.jobs.transition(job_id, JobStatus.RUNNING)
            try:
                shared = self._await_flight(future, cancel)
            except CompilationCancelledError:
                if cancel is not None and cancel.cancelled:
                    raise
                # cancelled by the leader's caller, not ours
                logger.info(f"In-flight compile for {cache_key[:12]} was cancelled, retrying {job_id}")
                continue
            return self._adopt(request, shared, started, cache_hit=False)

        try:
            result = self._compile_uncached(resolved, job_id, cache_key, started, cancel)
        except BaseException as exc:
            self._leave_flight(cache_key)
            future.set_exception(exc)
            raise
        self._leave_flight(cache_key)
        future.set_result(result)
        return result

    def _compile_uncached(
        self,
        request: CompileRequest,
        job_id: str,
        cache_key: str,
        started: float,
        cancel: Optional[CancellationToken],
    ) -> CompilationResult:
        self.jobs.transition(job_id, JobStatus.RUNNING)
        output = self.executor.execute(
            self.resolver.flatten(request), request, self.config.compilation_timeout, cancel
        )
        result = CompilationResult(
            language=request.language,
            package_name=request.module_name,
            version=request.version,
            success=True,
            generated_files=tuple(output.generated_files),
            package_files=tuple(output.package_files),
            duration=time.monotonic() - started,
        )
        result = self._persist(job_id, request, result)

        if self.cache is not None and self.config.enable_cache:
            try:
                self.cache.put(cache_key, result, request)
            except OSError as exc:
                logger.error(f"Failed to cache result for {job_id}: {exc}")
        return result

    def _persist(self, job_id: str, request: CompileRequest, result: CompilationResult) -> CompilationResult:
        if self.persister is None:
            return result
        artifact = self.persister.persist(
            job_id,
            request.module_name,
            request.version,
            request.language,
            result.generated_files,
            result.package_files,
        )
        return replace(
            result,
            storage_key=artifact.storage_key,
            storage_bucket=artifact.storage_bucket,
            artifact_hash=artifact.artifact_hash,
        )

    def _adopt(
        self,
        request: CompileRequest,
        shared: CompilationResult,
        started: float,
        cache_hit: bool,
    ) -> CompilationResult:
        """Rebind a result produced for identical inputs to this request.

        Package files depend on module name and version, which are not part
        of the cache key, so they are regenerated and the artifact is stored
        again when the identity differs.
        """
        if not shared.success:
            return replace(shared, duration=time.monotonic() - started, cache_hit=cache_hit)
        same_identity = (shared.package_name, shared.version) == (request.module_name, request.version)
        result = replace(
            shared,
            package_name=request.module_name,
            version=request.version,
            cache_hit=cache_hit,
            duration=time.monotonic() - started,
        )
        if same_identity:
            return result
        result = replace(
            result,
            package_files=tuple(self.executor.package_files(request)),
            storage_key="",
            storage_bucket="",
            artifact_hash="",
        )
        return self._persist(request.job_id, request, result)

    # --------------- Single-flight ---------------
    def _join_flight(self, cache_key: str):
        with self._inflight_lock:
            future = self._inflight.get(cache_key)
            if future is not None:
                return False, future
            future = Future()
            self._inflight[cache_key] = future
            return True, future

    def _leave_flight(self, cache_key: str) -> None:
        with self._inflight_lock:
            self._inflight.pop(cache_key, None)

    @staticmethod
    def _await_flight(future: Future, cancel: Optional[CancellationToken]) -> CompilationResult:
        while True:
            if cancel is not None and cancel.cancelled:
                raise CompilationCancelledError(f"compilation cancelled: {cancel.reason}")
            try:
                return future.result(timeout=FOLLOWER_POLL_SECONDS)
            except FutureTimeoutError:
                continue

    # --------------- Helpers ---------------
    @staticmethod
    def _validate(request: CompileRequest) -> None:
        if not request.module_name:
            raise InvalidRequestError("module name is required")
        if not request.version:
            raise InvalidRequestError("version is required")
        if not request.proto_files:
            raise InvalidRequestError("at least one proto file is required")
        modules = [dependency.module_name for dependency in request.dependencies]
        duplicates = sorted({name for name in modules if modules.count(name) > 1})
        if duplicates:
            # dependency files are materialized under <module>/, one version per module
            raise InvalidRequestError(f"conflicting versions requested for dependency: {', '.join(duplicates)}")

    def _record_failure(
        self,
        job_id: str,
        language: str,
        error: str,
        result: Optional[CompilationResult] = None,
    ) -> None:
        self.jobs.fail(job_id, error, result)
        self.publisher.publish(CompilationFailed(
            event_id="",
            timestamp=None,
            aggregate_id=job_id,
            language=language,
            error=error,
        ))
