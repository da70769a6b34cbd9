"""
API Request/Response Schemas using Pydantic.

Structure of HTTP requests and responses for the protoreg API.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

# Version schemas
class ProtoFileSchema(BaseModel):
    path: str = Field(..., description="Path of the proto file relative to the module root")
    content: str = Field(..., description="Proto source text")

class VersionCreate(BaseModel):
    version: str = Field(..., description="Version identifier (e.g., v1.0.0)")
    files: List[ProtoFileSchema] = Field(..., description="Proto files in this version")
    dependencies: List[str] = Field(default_factory=list, description="Direct dependencies as module@version")

class VersionResponse(BaseModel):
    module_name: str = Field(..., description="Name of the module")
    version: str = Field(..., description="Version identifier")
    files: List[str] = Field(default_factory=list, description="Paths of the proto files")
    dependencies: List[str] = Field(default_factory=list, description="Direct dependencies as module@version")

class VersionList(BaseModel):
    module_name: str = Field(..., description="Name of the module")
    versions: List[str] = Field(default_factory=list, description="Stored versions")

# Compilation schemas
class CompileRequestBody(BaseModel):
    languages: List[str] = Field(..., description="Target languages (e.g., go, python)")
    include_grpc: bool = Field(default=False, description="Also generate gRPC service code")
    options: Dict[str, str] = Field(default_factory=dict, description="Generator options passed to protoc")

class CompilationJobResult(BaseModel):
    id: str = Field(..., description="Job ID ({module}-{version}-{language})")
    language: str = Field(..., description="Target language")
    status: str = Field(..., description="completed or failed")
    duration_ms: int = Field(..., description="Wall-clock compile time in milliseconds")
    cache_hit: bool = Field(default=False, description="Whether the result came from the artifact cache")
    error: Optional[str] = Field(None, description="Error message for failed languages")
    storage_key: Optional[str] = Field(None, description="Object key of the stored artifact")
    storage_bucket: Optional[str] = Field(None, description="Bucket of the stored artifact")

class CompileResponse(BaseModel):
    job_id: str = Field(..., description="Batch ID ({module}-{version})")
    results: List[CompilationJobResult] = Field(..., description="One entry per requested language")

class JobStatusResponse(BaseModel):
    id: str = Field(..., description="Job ID")
    language: str = Field(..., description="Target language")
    status: str = Field(..., description="queued, running, completed or failed")
    started_at: Optional[datetime] = Field(None, description="When the sandbox started")
    completed_at: Optional[datetime] = Field(None, description="When the job reached a terminal state")
    cache_hit: bool = Field(default=False, description="Whether the result came from the artifact cache")
    error: Optional[str] = Field(None, description="Error message for failed jobs")
    storage_key: Optional[str] = Field(None, description="Object key of the stored artifact")
    storage_bucket: Optional[str] = Field(None, description="Bucket of the stored artifact")
    generated_files: List[str] = Field(default_factory=list, description="Paths of generated source files")
    package_files: List[str] = Field(default_factory=list, description="Paths of synthesized package files")

# Language schemas
class LanguageInfo(BaseModel):
    id: str = Field(..., description="Language identifier used in compile requests")
    name: str = Field(..., description="Display name")
    plugin_version: str = Field(..., description="Version of the protoc plugin")
    supports_grpc: bool = Field(..., description="Whether gRPC generation is available")
    package_manager: Optional[str] = Field(None, description="Ecosystem the package files target")
    stable: bool = Field(default=True, description="Whether the generator is considered stable")
    description: str = Field(default="", description="Short description of the generator")
