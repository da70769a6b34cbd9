from fastapi import APIRouter, Depends, Path as FastAPIPath

from protoreg.dependencies import get_version_storage_service
from protoreg.domain.entities import ProtoFile, VersionRecord
from protoreg.domain.errors import InvalidRequestError
from protoreg.schemas.api_schemas import VersionCreate, VersionList, VersionResponse
from protoreg.storage.interface import VersionStorage

router = APIRouter()


def _to_response(record: VersionRecord) -> VersionResponse:
    return VersionResponse(
        module_name=record.module_name,
        version=record.version,
        files=[f.path for f in record.files],
        dependencies=list(record.dependencies),
    )


@router.post("/modules/{name}/versions", response_model=VersionResponse, status_code=201)
def create_version(
    body: VersionCreate,
    name: str = FastAPIPath(..., title="Module name"),
    storage: VersionStorage = Depends(get_version_storage_service),
):
    """
    Store a module version's proto files and direct dependencies.
    """
    if not body.files:
        raise InvalidRequestError("at least one proto file is required")
    record = VersionRecord(
        module_name=name,
        version=body.version,
        files=tuple(ProtoFile(path=f.path, content=f.content.encode("utf-8")) for f in body.files),
        dependencies=tuple(body.dependencies),
    )
    storage.put_version(record)
    return _to_response(record)


@router.get("/modules/{name}/versions", response_model=VersionList)
def list_versions(
    name: str = FastAPIPath(..., title="Module name"),
    storage: VersionStorage = Depends(get_version_storage_service),
):
    return VersionList(module_name=name, versions=storage.list_versions(name))


@router.get("/modules/{name}/versions/{version}", response_model=VersionResponse)
def get_version(
    name: str = FastAPIPath(..., title="Module name"),
    version: str = FastAPIPath(..., title="Module version"),
    storage: VersionStorage = Depends(get_version_storage_service),
):
    return _to_response(storage.get_version(name, version))
