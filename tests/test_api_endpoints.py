"""
Tests for FastAPI endpoints.
"""
import pytest

from protoreg.domain.entities import ProtoFile, VersionRecord

USER_PROTO = 'syntax = "proto3";\nmessage User { string id = 1; }\n'


@pytest.fixture
def stored_version(version_storage):
    record = VersionRecord(
        module_name="user-service",
        version="v1.0.0",
        files=(ProtoFile("user.proto", USER_PROTO.encode()),),
        dependencies=("common@v1.0.0", "malformed-identifier"),
    )
    version_storage.put_version(record)
    return record


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_cache_health(self, client):
        response = client.get("/health/cache")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["cache_stats"]["entries"] == 0


class TestModuleEndpoints:
    """Test version storage endpoints."""

    def test_create_and_get_version(self, client):
        response = client.post("/modules/orders/versions", json={
            "version": "v1.0.0",
            "files": [{"path": "order.proto", "content": "message Order {}"}],
            "dependencies": ["common@v1.0.0"],
        })
        assert response.status_code == 201

        response = client.get("/modules/orders/versions/v1.0.0")
        assert response.status_code == 200
        assert response.json()["files"] == ["order.proto"]

        assert client.get("/modules/orders/versions").json()["versions"] == ["v1.0.0"]

    def test_version_without_files_is_rejected(self, client):
        response = client.post("/modules/orders/versions", json={"version": "v1", "files": []})
        assert response.status_code == 400

    def test_missing_version_is_404(self, client):
        assert client.get("/modules/orders/versions/v9").status_code == 404


class TestCompilationEndpoints:
    """Test compile and job polling endpoints."""

    def test_compile_reports_every_language(self, client, stored_version, common_version):
        response = client.post(
            "/modules/user-service/versions/v1.0.0/compile",
            json={"languages": ["go", "python", "java", "cobol"]},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["job_id"] == "user-service-v1.0.0"
        results = {r["language"]: r for r in data["results"]}
        assert results["go"]["status"] == "completed"
        assert results["go"]["id"] == "user-service-v1.0.0-go"
        assert results["go"]["storage_key"] == "compiled/user-service/v1.0.0/go.tar.gz"
        assert results["python"]["status"] == "completed"
        assert results["java"]["status"] == "failed"
        assert "Expected top-level statement" in results["java"]["error"]
        assert results["cobol"]["status"] == "failed"
        assert "unsupported language" in results["cobol"]["error"]

    def test_second_compile_hits_cache(self, client, stored_version, common_version):
        url = "/modules/user-service/versions/v1.0.0/compile"
        client.post(url, json={"languages": ["go"]})
        result = client.post(url, json={"languages": ["go"]}).json()["results"][0]
        assert result["cache_hit"] is True

    def test_cache_stats_follow_compiles(self, client, stored_version, common_version):
        url = "/modules/user-service/versions/v1.0.0/compile"
        client.post(url, json={"languages": ["go"]})
        client.post(url, json={"languages": ["go"]})

        stats = client.get("/health/cache").json()["cache_stats"]
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["entries"] == 1

    def test_missing_dependency_fails_languages(self, client, stored_version):
        response = client.post(
            "/modules/user-service/versions/v1.0.0/compile", json={"languages": ["go"]}
        )
        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["status"] == "failed"
        assert "dependency not found: common@v1.0.0" in result["error"]

    def test_empty_language_list_is_400(self, client, stored_version):
        response = client.post("/modules/user-service/versions/v1.0.0/compile", json={"languages": []})
        assert response.status_code == 400
        assert response.json()["detail"] == "no languages specified"

    def test_conflicting_dependency_versions_are_400(self, client, version_storage):
        version_storage.put_version(VersionRecord(
            module_name="orders",
            version="v1.0.0",
            files=(ProtoFile("orders.proto", USER_PROTO.encode()),),
            dependencies=("common@v1.0.0", "common@v2.0.0"),
        ))
        response = client.post("/modules/orders/versions/v1.0.0/compile", json={"languages": ["go"]})
        assert response.status_code == 400
        assert "common" in response.json()["detail"]

    def test_unknown_version_is_404(self, client):
        response = client.post("/modules/nope/versions/v1/compile", json={"languages": ["go"]})
        assert response.status_code == 404

    def test_job_status(self, client, stored_version, common_version):
        client.post("/modules/user-service/versions/v1.0.0/compile", json={"languages": ["go"]})

        response = client.get("/compilation-jobs/user-service-v1.0.0-go")
        assert response.status_code == 200
        job = response.json()
        assert job["status"] == "completed"
        assert "go.mod" in job["package_files"]
        assert "user.pb.go" in job["generated_files"]

    def test_unknown_job_is_404(self, client):
        response = client.get("/compilation-jobs/missing-v1-go")
        assert response.status_code == 404
        assert response.json()["detail"] == "job not found: missing-v1-go"


class TestLanguageEndpoints:
    def test_lists_enabled_languages(self, client):
        response = client.get("/languages")
        assert response.status_code == 200
        ids = [language["id"] for language in response.json()]
        assert "go" in ids and "python" in ids
        assert len(ids) == 15


class TestDependencyWiring:
    """Providers behind the routers hand out shared instances."""

    @pytest.fixture
    def providers(self, monkeypatch, tmp_path):
        from protoreg import dependencies

        for name in ("ARTIFACT_CACHE_DIR", "SANDBOX_WORK_DIR", "VERSION_STORAGE_DIR", "ARTIFACT_STORAGE_DIR"):
            monkeypatch.setattr(dependencies.settings, name, str(tmp_path / name.lower()))
        monkeypatch.setattr(dependencies.settings, "STORAGE_TYPE", "filesystem")
        monkeypatch.setattr(dependencies.settings, "CODEGEN_VERSION", "v2")
        monkeypatch.setattr(dependencies.settings, "ENABLE_CACHE", True)
        cached = (dependencies.get_artifact_cache, dependencies.get_compiler, dependencies.get_version_storage_service)
        for provider in cached:
            provider.cache_clear()
        yield dependencies
        if dependencies.get_compiler.cache_info().currsize:
            dependencies.get_compiler().close()
        for provider in cached:
            provider.cache_clear()

    def test_health_reports_the_compilers_cache(self, providers):
        cache = providers.get_artifact_cache()
        assert providers.get_artifact_cache() is cache
        assert providers.get_compiler().cache is cache
