from pydantic_settings import BaseSettings
from pathlib import Path

# Get the repository root directory (parent of the protoreg directory)
REPO_ROOT = Path(__file__).parent.parent.absolute()

class Settings(BaseSettings):
    """Application settings."""

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_RELOAD: bool = True

    # Version and environment
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Compilation backend: "v2" (orchestrator) or "v1" (legacy direct protoc)
    CODEGEN_VERSION: str = "v2"

    # Orchestrator settings
    MAX_PARALLEL_WORKERS: int = 5
    COMPILATION_TIMEOUT_SECONDS: float = 300.0
    ENABLE_CACHE: bool = True
    CACHE_NAMESPACE: str = "v1"

    # Sandbox settings
    SANDBOX_BACKEND: str = "docker"  # "docker" or "process"
    SANDBOX_MEMORY_LIMIT: str = "512m"
    SANDBOX_CPU_LIMIT: float = 1.0
    SANDBOX_WORK_DIR: str = str(REPO_ROOT / "storage" / "sandbox")
    DOCKER_BINARY: str = "docker"
    PROTOC_BINARY: str = "protoc"

    # Storage settings
    STORAGE_TYPE: str = "filesystem"  # "filesystem" or "s3"
    VERSION_STORAGE_DIR: str = str(REPO_ROOT / "storage" / "versions")
    ARTIFACT_STORAGE_DIR: str = str(REPO_ROOT / "storage" / "artifacts")
    ARTIFACT_CACHE_DIR: str = str(REPO_ROOT / "storage" / "cache")
    ARTIFACT_BUCKET: str = "protoreg-artifacts"
    ARTIFACT_PREFIX: str = "compiled/"

    # S3 settings (only used if STORAGE_TYPE = "s3")
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"

    class Config:
        env_file = ".env"

settings = Settings()
