from protoreg.config import Settings, settings as default_settings
from protoreg.storage.filesystem import FilesystemObjectStorage, FilesystemVersionStorage
from protoreg.storage.interface import ObjectStorage, VersionStorage
from protoreg.storage.s3 import S3ObjectStorage


def get_object_storage(settings: Settings = default_settings) -> ObjectStorage:
    """
    Factory function to create the appropriate artifact storage implementation
    based on settings.

    Returns:
        A storage implementation (S3 or Filesystem)
    """
    storage_type = settings.STORAGE_TYPE.lower()

    if storage_type == "s3":
        if not settings.ARTIFACT_BUCKET:
            raise ValueError("ARTIFACT_BUCKET must be set when using S3 storage")

        return S3ObjectStorage(
            bucket_name=settings.ARTIFACT_BUCKET,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION
        )
    if storage_type == "filesystem":
        return FilesystemObjectStorage(
            base_dir=settings.ARTIFACT_STORAGE_DIR,
            bucket=settings.ARTIFACT_BUCKET
        )
    raise ValueError(f"Unsupported storage type: {settings.STORAGE_TYPE}")


def get_version_storage(settings: Settings = default_settings) -> VersionStorage:
    return FilesystemVersionStorage(base_dir=settings.VERSION_STORAGE_DIR)
