"""Tests for the fan-out compilation orchestrator."""
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from unittest.mock import Mock

import pytest

from protoreg.domain.entities import CompileRequest, Dependency, JobStatus, ProtoFile
from protoreg.domain.errors import (
    DependencyNotFoundError,
    EmptyLanguageListError,
    InvalidRequestError,
    JobNotFoundError,
    PartialFailureError,
    UnsupportedLanguageError,
)
from protoreg.domain.events import CompilationFailed, CompilationStarted, CompilationSucceeded, event_publisher
from protoreg.services.codegen.cancellation import CancellationToken
from protoreg.services.codegen.jobs import JobStore
from protoreg.services.codegen.orchestrator import CompilationOrchestrator, OrchestratorConfig
from protoreg.services.codegen.persister import ArtifactPersister
from protoreg.services.codegen.resolver import DependencyResolver
from protoreg.services.codegen.sandbox import ProcessSandbox, SandboxExecutor
from protoreg.services.codegen.workspace import SandboxWorkspaceManager
from fakes import FakeToolchain


def _package_file(result, path):
    return next(f for f in result.package_files if f.path == path).content.decode()


class TestCompileSingle:
    """Full pipeline for one language."""

    def test_end_to_end_go(self, orchestrator, user_request):
        result = orchestrator.compile_single(user_request)

        assert result.success is True
        assert result.error == ""
        assert result.language == "go"
        assert "user.pb.go" in [f.path for f in result.generated_files]
        assert "module user-service" in _package_file(result, "go.mod")
        assert result.storage_key == "compiled/user-service/v1.0.0/go.tar.gz"
        assert result.storage_bucket == "test-artifacts"

    def test_job_completed_with_result(self, orchestrator, user_request):
        result = orchestrator.compile_single(user_request)
        job = orchestrator.get_status("user-service-v1.0.0-go")

        assert job.status is JobStatus.COMPLETED
        assert job.result == result
        assert job.started_at is not None and job.completed_at is not None

    def test_unknown_job(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            orchestrator.get_status("missing-v1-go")

    def test_unsupported_language_is_raised(self, orchestrator, user_request, toolchain):
        with pytest.raises(UnsupportedLanguageError, match="unsupported language"):
            orchestrator.compile_single(user_request.for_language("cobol"))
        assert toolchain.calls == []

    def test_request_without_files_is_invalid(self, orchestrator, user_request):
        with pytest.raises(InvalidRequestError):
            orchestrator.compile_single(replace(user_request, proto_files=()))

    def test_toolchain_failure_is_recorded(self, make_orchestrator, user_request):
        orchestrator = make_orchestrator(FakeToolchain(fail_languages={"go"}))
        result = orchestrator.compile_single(user_request)

        assert result.success is False
        assert "Expected top-level statement" in result.error
        job = orchestrator.get_status(user_request.job_id)
        assert job.status is JobStatus.FAILED
        assert "Expected top-level statement" in job.error

    def test_language_spelling_is_normalised(self, orchestrator, user_request, toolchain):
        orchestrator.compile_single(replace(user_request, language="Go"))
        result = orchestrator.compile_single(replace(user_request, language=" GO "))

        assert result.language == "go"
        assert result.cache_hit is True
        assert toolchain.calls == ["go"]
        assert orchestrator.get_status("user-service-v1.0.0-go").status is JobStatus.COMPLETED


class TestCaching:
    def test_second_compile_is_a_cache_hit(self, orchestrator, user_request, toolchain):
        first = orchestrator.compile_single(user_request)
        second = orchestrator.compile_single(user_request)

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert first.generated_files == second.generated_files
        assert first.package_files == second.package_files
        assert toolchain.calls == ["go"]

    def test_cache_hit_still_updates_job(self, orchestrator, user_request):
        orchestrator.compile_single(user_request)
        orchestrator.compile_single(user_request)

        job = orchestrator.get_status(user_request.job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.cache_hit is True

    def test_one_byte_change_forces_a_miss(self, orchestrator, user_request, toolchain):
        orchestrator.compile_single(user_request)
        edited = ProtoFile("user.proto", user_request.proto_files[0].content + b" ")
        result = orchestrator.compile_single(replace(user_request, proto_files=(edited,)))

        assert result.cache_hit is False
        assert toolchain.calls == ["go", "go"]

    def test_cache_hit_for_another_module_rebinds_identity(self, orchestrator, user_request, toolchain, object_storage):
        orchestrator.compile_single(user_request)
        other = replace(user_request, module_name="billing-service", version="v2.0.0")
        result = orchestrator.compile_single(other)

        assert result.cache_hit is True
        assert result.package_name == "billing-service"
        assert "module billing-service" in _package_file(result, "go.mod")
        assert result.storage_key == "compiled/billing-service/v2.0.0/go.tar.gz"
        assert ("test-artifacts", result.storage_key) in object_storage.objects
        assert toolchain.calls == ["go"]

    def test_manifest_is_identical_across_compiles(self, make_orchestrator, user_request):
        first = make_orchestrator(cache=None).compile_single(user_request)
        second = make_orchestrator(cache=None).compile_single(user_request)
        assert _package_file(first, "go.mod") == _package_file(second, "go.mod")

    def test_cache_disabled_by_config(self, make_orchestrator, user_request):
        toolchain = FakeToolchain()
        orchestrator = make_orchestrator(toolchain, enable_cache=False)
        orchestrator.compile_single(user_request)
        assert orchestrator.compile_single(user_request).cache_hit is False
        assert toolchain.calls == ["go", "go"]


class TestDependencies:
    def test_missing_dependency_fails_before_sandbox(self, orchestrator, user_request, toolchain):
        request = replace(user_request, dependencies=(Dependency("ghost", "v9.9.9"),))
        with pytest.raises(DependencyNotFoundError):
            orchestrator.compile_single(request)

        assert toolchain.calls == []
        assert orchestrator.get_status(request.job_id).status is JobStatus.FAILED

    def test_dependency_files_are_compiled_namespaced(self, orchestrator, user_request, common_version):
        request = replace(user_request, dependencies=(Dependency("common", "v1.0.0"),))
        result = orchestrator.compile_single(request)
        assert "common/types.pb.go" in [f.path for f in result.generated_files]

    def test_dependency_content_is_part_of_the_key(self, orchestrator, user_request, version_storage, common_version, toolchain):
        request = replace(user_request, dependencies=(Dependency("common", "v1.0.0"),))
        orchestrator.compile_single(request)
        version_storage.put_version(replace(
            common_version, files=(ProtoFile("types.proto", b"message Money { int64 units = 1; }"),)
        ))
        assert orchestrator.compile_single(request).cache_hit is False
        assert len(toolchain.calls) == 2

    def test_two_versions_of_one_dependency_are_rejected(self, orchestrator, user_request, toolchain):
        request = replace(
            user_request, dependencies=(Dependency("common", "v1.0.0"), Dependency("common", "v2.0.0"))
        )
        with pytest.raises(InvalidRequestError, match="common"):
            orchestrator.compile_single(request)
        with pytest.raises(InvalidRequestError):
            orchestrator.compile_all(request, ["go", "python"])
        assert toolchain.calls == []


class TestPersistence:
    def test_upload_failure_downgrades_to_failed(self, make_orchestrator, user_request):
        storage = Mock()
        storage.bucket = "artifacts"
        storage.put.side_effect = ConnectionError("connection reset by peer")
        toolchain = FakeToolchain()
        orchestrator = make_orchestrator(toolchain, persister=ArtifactPersister(storage))

        result = orchestrator.compile_single(user_request)

        assert result.success is False
        assert result.error.startswith("compile succeeded but artifact could not be stored")
        assert orchestrator.get_status(user_request.job_id).status is JobStatus.FAILED
        # nothing was cached, so the retry compiles again
        orchestrator.compile_single(user_request)
        assert toolchain.calls == ["go", "go"]

    def test_persistence_skipped_without_storage(self, make_orchestrator, user_request):
        result = make_orchestrator(persister=None).compile_single(user_request)
        assert result.success is True
        assert result.storage_key == ""


class TestCompileAll:
    def test_fan_out_independence(self, orchestrator, user_request):
        with pytest.raises(PartialFailureError) as excinfo:
            orchestrator.compile_all(user_request, ["go", "python", "unsupported_lang"])

        results = {r.language: r for r in excinfo.value.results}
        assert len(excinfo.value.results) == 3
        assert results["go"].success is True
        assert results["python"].success is True
        assert results["unsupported_lang"].success is False
        assert "unsupported language" in results["unsupported_lang"].error
        assert excinfo.value.failed == ["unsupported_lang"]

    def test_all_succeed_returns_results(self, orchestrator, user_request):
        results = orchestrator.compile_all(user_request, ["go", "python"])
        assert [r.language for r in results] == ["go", "python"]
        assert all(r.success for r in results)

    def test_one_toolchain_failure_does_not_affect_others(self, make_orchestrator, user_request):
        orchestrator = make_orchestrator(FakeToolchain(fail_languages={"java"}, delay=0.05))
        with pytest.raises(PartialFailureError) as excinfo:
            orchestrator.compile_all(user_request, ["go", "java", "python"])

        outcome = {r.language: r.success for r in excinfo.value.results}
        assert outcome == {"go": True, "java": False, "python": True}
        assert orchestrator.get_status("user-service-v1.0.0-java").status is JobStatus.FAILED
        assert orchestrator.get_status("user-service-v1.0.0-go").status is JobStatus.COMPLETED

    def test_empty_language_list(self, orchestrator, user_request):
        with pytest.raises(EmptyLanguageListError):
            orchestrator.compile_all(user_request, [])

    def test_missing_dependency_fails_every_language(self, orchestrator, user_request, toolchain):
        request = replace(user_request, dependencies=(Dependency("ghost", "v1"),))
        with pytest.raises(PartialFailureError) as excinfo:
            orchestrator.compile_all(request, ["go", "python"])

        assert all("dependency not found" in r.error for r in excinfo.value.results)
        assert toolchain.calls == []

    def test_parallelism_is_bounded(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.1)
        orchestrator = make_orchestrator(toolchain, max_parallel_workers=2)
        orchestrator.compile_all(user_request, ["go", "python", "java", "typescript", "rust"])

        assert toolchain.max_active <= 2
        assert len(toolchain.calls) == 5

    def test_languages_run_concurrently(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.3)
        orchestrator = make_orchestrator(toolchain, max_parallel_workers=4)
        started = time.monotonic()
        orchestrator.compile_all(user_request, ["go", "python", "java", "rust"])

        assert toolchain.max_active > 1
        assert time.monotonic() - started < 4 * 0.3

    def test_cancelled_batch_keeps_finished_results(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.5)
        orchestrator = make_orchestrator(toolchain, max_parallel_workers=1)
        token = CancellationToken()
        timer = threading.Timer(0.75, token.cancel, args=("client disconnected",))
        timer.start()
        try:
            with pytest.raises(PartialFailureError) as excinfo:
                orchestrator.compile_all(user_request, ["go", "python", "java"], cancel=token)
        finally:
            timer.cancel()

        results = {r.language: r for r in excinfo.value.results}
        assert results["go"].success is True
        assert "cancelled" in results["python"].error
        assert "cancelled" in results["java"].error
        assert orchestrator.get_status("user-service-v1.0.0-java").status is JobStatus.FAILED

    def test_languages_differing_only_in_case_compile_once(self, orchestrator, user_request, toolchain):
        results = orchestrator.compile_all(user_request, ["go", "Go", "python"])
        assert [r.language for r in results] == ["go", "python"]
        assert sorted(toolchain.calls) == ["go", "python"]


class TestSingleFlight:
    def test_identical_inflight_compiles_share_one_sandbox_run(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.5)
        orchestrator = make_orchestrator(toolchain, cache=None)
        other = replace(user_request, module_name="billing-service")

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(orchestrator.compile_single, user_request)
            time.sleep(0.1)
            second = pool.submit(orchestrator.compile_single, other)
            results = [first.result(), second.result()]

        assert toolchain.calls == ["go"]
        assert all(r.success for r in results)
        assert results[0].generated_files == results[1].generated_files
        assert "module billing-service" in _package_file(results[1], "go.mod")

    def test_leader_cancellation_does_not_fail_followers(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.5)
        orchestrator = make_orchestrator(toolchain, cache=None)
        other = replace(user_request, module_name="billing-service")
        token = CancellationToken()

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(orchestrator.compile_single, user_request, token)
            time.sleep(0.1)
            second = pool.submit(orchestrator.compile_single, other)
            time.sleep(0.1)
            token.cancel("client disconnected")
            leader, follower = first.result(), second.result()

        assert leader.success is False
        assert "client disconnected" in leader.error
        assert follower.success is True
        assert "module billing-service" in _package_file(follower, "go.mod")
        assert toolchain.calls == ["go", "go"]
        assert orchestrator.get_status(other.job_id).status is JobStatus.COMPLETED

    def test_cancelled_follower_fails_alone(self, make_orchestrator, user_request):
        toolchain = FakeToolchain(delay=0.5)
        orchestrator = make_orchestrator(toolchain, cache=None)
        other = replace(user_request, module_name="billing-service")
        token = CancellationToken()

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(orchestrator.compile_single, user_request)
            time.sleep(0.1)
            second = pool.submit(orchestrator.compile_single, other, token)
            time.sleep(0.1)
            token.cancel("client disconnected")
            leader, follower = first.result(), second.result()

        assert leader.success is True
        assert follower.success is False
        assert "client disconnected" in follower.error
        assert toolchain.calls == ["go"]


class TestEvents:
    def test_success_publishes_started_and_succeeded(self, orchestrator, user_request):
        seen = []
        event_publisher.subscribe(CompilationStarted, seen.append)
        event_publisher.subscribe(CompilationSucceeded, seen.append)

        orchestrator.compile_single(user_request)

        assert [type(e) for e in seen] == [CompilationStarted, CompilationSucceeded]
        assert seen[0].aggregate_id == "user-service-v1.0.0-go"
        assert len(seen[0].cache_key) == 64

    def test_failure_publishes_failed(self, make_orchestrator, user_request):
        seen = []
        event_publisher.subscribe(CompilationFailed, seen.append)

        make_orchestrator(FakeToolchain(fail_languages={"go"})).compile_single(user_request)

        assert len(seen) == 1
        assert seen[0].language == "go"


class TestWithProcessSandbox:
    """Orchestrator driving a real child process."""

    @pytest.fixture
    def process_orchestrator(self, tmp_path, fake_protoc, registry, version_storage):
        sandbox = ProcessSandbox(SandboxWorkspaceManager(tmp_path / "sandbox"), protoc=fake_protoc)
        orchestrator = CompilationOrchestrator(
            registry=registry,
            executor=SandboxExecutor(sandbox, registry),
            resolver=DependencyResolver(version_storage),
            jobs=JobStore(),
            config=OrchestratorConfig(compilation_timeout=1.0),
        )
        yield orchestrator
        orchestrator.close()

    def test_timeout_fails_the_job(self, process_orchestrator, user_request, tmp_path):
        request = replace(user_request, proto_files=(ProtoFile("slow.proto", b"SLEEP"),))
        started = time.monotonic()
        result = process_orchestrator.compile_single(request)

        assert time.monotonic() - started < 1.0 + 5
        assert result.success is False
        assert "timed out" in result.error
        assert process_orchestrator.get_status(request.job_id).status is JobStatus.FAILED
        assert list((tmp_path / "sandbox").iterdir()) == []

    def test_compiles_with_real_process(self, process_orchestrator, user_request):
        result = process_orchestrator.compile_single(user_request)
        assert result.success is True
        assert [f.path for f in result.generated_files] == ["user.out"]
