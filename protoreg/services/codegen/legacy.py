"""Legacy (v1) compiler: host protoc, Go and Python only.

No cache, no job tracking, no sandbox isolation. Kept as a separate
implementation of the compiler interface for deployments that have not
moved to the orchestrator.
"""
from __future__ import annotations

import logging
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from protoreg.domain.entities import CompilationResult, CompileRequest, GeneratedFile, Job
from protoreg.domain.errors import (
    CompilationError,
    DomainError,
    EmptyLanguageListError,
    JobNotFoundError,
    PartialFailureError,
    SandboxSetupError,
    ToolchainError,
    UnsupportedLanguageError,
)
from protoreg.domain.languages import Language
from protoreg.services.codegen.cancellation import CancellationToken
from protoreg.services.codegen.manifests import synthesize
from protoreg.services.codegen.resolver import DependencyResolver
from protoreg.services.codegen.workspace import SandboxWorkspace

logger = logging.getLogger(__name__)

# language -> (protoc flags with {output}, package manager)
LEGACY_TARGETS: Dict[Language, Tuple[Tuple[str, ...], str]] = {
    Language.GO: (("--go_out={output}", "--go_opt=paths=source_relative"), "go-modules"),
    Language.PYTHON: (("--python_out={output}",), "pip"),
}


class LegacyProtocCompiler:
    def __init__(
        self,
        resolver: DependencyResolver,
        protoc: Sequence[str] | str = "protoc",
        timeout: float = 300.0,
    ) -> None:
        self.resolver = resolver
        self.protoc = [protoc] if isinstance(protoc, str) else list(protoc)
        self.timeout = timeout

    def compile_single(
        self, request: CompileRequest, cancel: Optional[CancellationToken] = None
    ) -> CompilationResult:
        language = Language.parse(request.language)
        if language not in LEGACY_TARGETS:
            raise UnsupportedLanguageError(request.language, reason="unsupported language for v1")
        if cancel is not None and cancel.cancelled:
            return CompilationResult.failed(request, f"compilation cancelled: {cancel.reason}")

        started = time.monotonic()
        files = self.resolver.resolve(request)
        flags, package_manager = LEGACY_TARGETS[language]
        try:
            generated = self._run_protoc(files, flags)
        except CompilationError as exc:
            error = str(exc)
            if exc.diagnostics and exc.diagnostics not in error:
                error = f"{error}: {exc.diagnostics}"
            return CompilationResult.failed(request, error, time.monotonic() - started)

        return CompilationResult(
            language=request.language,
            package_name=request.module_name,
            version=request.version,
            success=True,
            generated_files=tuple(generated),
            package_files=tuple(synthesize(
                package_manager, request.module_name, request.version, request.include_grpc
            )),
            duration=time.monotonic() - started,
        )

    def compile_all(
        self,
        base_request: CompileRequest,
        languages: Sequence[str],
        cancel: Optional[CancellationToken] = None,
    ) -> List[CompilationResult]:
        if not languages:
            raise EmptyLanguageListError()
        results = []
        for language in dict.fromkeys(lang.strip() for lang in languages):
            request = base_request.for_language(language)
            try:
                results.append(self.compile_single(request, cancel))
            except DomainError as exc:
                results.append(CompilationResult.failed(request, str(exc)))
        failed = [result.language for result in results if not result.success]
        if failed:
            raise PartialFailureError(results, failed)
        return results

    def get_status(self, job_id: str) -> Job:
        raise JobNotFoundError(job_id)

    def close(self) -> None:
        pass

    def _run_protoc(self, files, flags: Sequence[str]) -> List[GeneratedFile]:
        with tempfile.TemporaryDirectory(prefix="protoreg-v1-") as tmp:
            workspace = SandboxWorkspace(Path(tmp))
            workspace.input_dir.mkdir()
            workspace.output_dir.mkdir()
            relative = workspace.materialize(files)
            command = [
                *self.protoc,
                f"--proto_path={workspace.input_dir}",
                *(flag.format(output=workspace.output_dir) for flag in flags),
                *relative,
            ]
            try:
                completed = subprocess.run(command, capture_output=True, timeout=self.timeout)
            except FileNotFoundError as exc:
                raise SandboxSetupError(f"protoc not found: {self.protoc[0]}") from exc
            except subprocess.TimeoutExpired as exc:
                raise CompilationError(f"protoc timed out after {self.timeout:g}s") from exc

            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            if completed.returncode != 0:
                raise ToolchainError(completed.returncode, stderr)
            generated = workspace.collect()
            if not generated:
                raise CompilationError("protoc produced no output files", stderr)
            logger.info(f"v1 protoc produced {len(generated)} files")
            return generated
