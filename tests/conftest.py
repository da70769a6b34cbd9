"""
Test configuration and fixtures for protoreg-api tests.
"""
import sys
import textwrap

import pytest
from fastapi.testclient import TestClient

from protoreg.domain.entities import CompileRequest, ProtoFile, VersionRecord
from protoreg.domain.events import event_publisher
from protoreg.services.codegen.artifact_cache import LocalArtifactCache
from protoreg.services.codegen.jobs import JobStore
from protoreg.services.codegen.orchestrator import CompilationOrchestrator, OrchestratorConfig
from protoreg.services.codegen.persister import ArtifactPersister
from protoreg.services.codegen.registry import default_registry
from protoreg.services.codegen.resolver import DependencyResolver
from protoreg.services.codegen.sandbox import SandboxExecutor
from protoreg.storage.memory import InMemoryObjectStorage, InMemoryVersionStorage

from fakes import FakeToolchain

USER_PROTO = b'syntax="proto3"; message User { string id = 1; }'


@pytest.fixture(autouse=True)
def clean_event_publisher():
    """Each test starts with no event subscribers."""
    event_publisher.clear_subscribers()
    yield
    event_publisher.clear_subscribers()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def version_storage():
    return InMemoryVersionStorage()


@pytest.fixture
def object_storage():
    return InMemoryObjectStorage(bucket="test-artifacts")


@pytest.fixture
def artifact_cache(tmp_path):
    return LocalArtifactCache(tmp_path / "cache")


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def make_orchestrator(registry, version_storage, object_storage, artifact_cache):
    """Build orchestrators around a fake toolchain; all are closed after the test."""
    built = []

    def factory(toolchain=None, cache=artifact_cache, persister="default", **config):
        toolchain = toolchain or FakeToolchain()
        if persister == "default":
            persister = ArtifactPersister(object_storage, prefix="compiled/")
        orchestrator = CompilationOrchestrator(
            registry=registry,
            executor=SandboxExecutor(toolchain, registry),
            resolver=DependencyResolver(version_storage),
            cache=cache,
            persister=persister,
            jobs=JobStore(),
            config=OrchestratorConfig(**config),
        )
        built.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in built:
        orchestrator.close()


@pytest.fixture
def orchestrator(make_orchestrator, toolchain):
    return make_orchestrator(toolchain)


@pytest.fixture
def user_request():
    """The user-service module compiled for Go."""
    return CompileRequest(
        module_name="user-service",
        version="v1.0.0",
        proto_files=(ProtoFile("user.proto", USER_PROTO),),
        language="go",
    )


@pytest.fixture
def common_version(version_storage):
    record = VersionRecord(
        module_name="common",
        version="v1.0.0",
        files=(ProtoFile("types.proto", b'syntax="proto3"; message Money { int64 cents = 1; }'),),
    )
    version_storage.put_version(record)
    return record


@pytest.fixture
def fake_protoc(tmp_path):
    """
    A Python script that behaves like protoc for the process sandbox.

    Markers in the proto text drive it: SLEEP hangs, ERROR exits 1 with a
    compiler-style diagnostic, EMPTY writes nothing, HOG allocates 1 GiB.
    """
    script = tmp_path / "fake_protoc.py"
    script.write_text(textwrap.dedent('''
        import sys, time
        from pathlib import Path

        proto_path, out_dir, files = None, None, []
        for arg in sys.argv[1:]:
            if arg.startswith("--proto_path="):
                proto_path = Path(arg.split("=", 1)[1])
            elif arg.startswith("--") and "_out=" in arg and out_dir is None:
                out_dir = Path(arg.split("=", 1)[1])
            elif not arg.startswith("--"):
                files.append(arg)

        for name in files:
            text = (proto_path / name).read_text()
            if "SLEEP" in text:
                time.sleep(30)
            if "HOG" in text:
                hog = bytearray(1 << 30)
            if "ERROR" in text:
                sys.stderr.write(name + ":1:1: Expected top-level statement\\n")
                sys.exit(1)
            if "EMPTY" in text:
                continue
            target = out_dir / (name.rsplit(".", 1)[0] + ".out")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("// generated\\n" + text)
    '''))
    return [sys.executable, str(script)]


@pytest.fixture
def client(version_storage, artifact_cache, make_orchestrator):
    """Test client wired to in-memory storage and a fake toolchain."""
    from protoreg.main import app
    from protoreg.dependencies import get_artifact_cache, get_compiler, get_version_storage_service

    compiler = make_orchestrator(FakeToolchain(fail_languages={"java"}))
    app.dependency_overrides[get_version_storage_service] = lambda: version_storage
    app.dependency_overrides[get_compiler] = lambda: compiler
    app.dependency_overrides[get_artifact_cache] = lambda: artifact_cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
