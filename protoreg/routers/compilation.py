from fastapi import APIRouter, Depends, Path as FastAPIPath
from typing import List

from protoreg.dependencies import get_compiler, get_version_storage_service
from protoreg.domain.entities import CompilationResult, CompileRequest, job_id_for
from protoreg.domain.errors import PartialFailureError
from protoreg.domain.ports import CompilerPort
from protoreg.schemas.api_schemas import (
    CompilationJobResult,
    CompileRequestBody,
    CompileResponse,
    JobStatusResponse,
)
from protoreg.services.codegen.resolver import parse_dependencies
from protoreg.storage.interface import VersionStorage

router = APIRouter()


def _to_job_result(module_name: str, version: str, result: CompilationResult) -> CompilationJobResult:
    return CompilationJobResult(
        id=job_id_for(module_name, version, result.language),
        language=result.language,
        status="completed" if result.success else "failed",
        duration_ms=int(result.duration * 1000),
        cache_hit=result.cache_hit,
        error=result.error or None,
        storage_key=result.storage_key or None,
        storage_bucket=result.storage_bucket or None,
    )


@router.post("/modules/{name}/versions/{version}/compile", response_model=CompileResponse)
def compile_version(
    body: CompileRequestBody,
    name: str = FastAPIPath(..., title="Module name"),
    version: str = FastAPIPath(..., title="Module version"),
    storage: VersionStorage = Depends(get_version_storage_service),
    compiler: CompilerPort = Depends(get_compiler),
):
    """
    Compile a stored module version for every requested language.

    A batch where some languages fail still returns 200; each entry carries
    its own status and error.
    """
    record = storage.get_version(name, version)
    base_request = CompileRequest(
        module_name=name,
        version=version,
        proto_files=tuple(record.files),
        dependencies=parse_dependencies(record.dependencies),
        include_grpc=body.include_grpc,
        options=dict(body.options),
    )

    try:
        results: List[CompilationResult] = compiler.compile_all(base_request, body.languages)
    except PartialFailureError as exc:
        results = exc.results

    return CompileResponse(
        job_id=f"{name}-{version}",
        results=[_to_job_result(name, version, result) for result in results],
    )


@router.get("/compilation-jobs/{job_id}", response_model=JobStatusResponse)
def get_compilation_job(
    job_id: str = FastAPIPath(..., title="Job ID ({module}-{version}-{language})"),
    compiler: CompilerPort = Depends(get_compiler),
):
    """
    Poll the lifecycle state of one language's compile.
    """
    job = compiler.get_status(job_id)
    result = job.result
    return JobStatusResponse(
        id=job.id,
        language=job.language,
        status=job.status.value,
        started_at=job.started_at,
        completed_at=job.completed_at,
        cache_hit=job.cache_hit,
        error=job.error or None,
        storage_key=(result.storage_key or None) if result else None,
        storage_bucket=(result.storage_bucket or None) if result else None,
        generated_files=[f.path for f in result.generated_files] if result else [],
        package_files=[f.path for f in result.package_files] if result else [],
    )
