"""Domain error hierarchy for clean exception handling."""
from __future__ import annotations

from typing import Any, List, Sequence


class DomainError(Exception):
    """Base for all domain errors."""


class NotFoundError(DomainError):
    """Resource not found."""


class ValidationError(DomainError):
    """Invalid input or state."""


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate name)."""


# --------------- Lookup errors ---------------
class VersionNotFoundError(NotFoundError):
    """Module version is not present in version storage."""

    def __init__(self, module_name: str, version: str) -> None:
        super().__init__(f"version not found: {module_name}@{version}")
        self.module_name = module_name
        self.version = version


class DependencyNotFoundError(NotFoundError):
    """A named dependency could not be fetched from version storage."""

    def __init__(self, module_name: str, version: str) -> None:
        super().__init__(f"dependency not found: {module_name}@{version}")
        self.module_name = module_name
        self.version = version


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id


# --------------- Client errors ---------------
class UnsupportedLanguageError(ValidationError):
    def __init__(self, language: str, reason: str = "unsupported language") -> None:
        super().__init__(f"{reason}: {language}")
        self.language = language


class EmptyLanguageListError(ValidationError):
    def __init__(self) -> None:
        super().__init__("no languages specified")


class InvalidRequestError(ValidationError):
    """Compile request is missing required fields."""


class ManifestError(ValidationError):
    """Package manifest could not be synthesized from the module identifiers."""


# --------------- Compile errors ---------------
class CompilationError(DomainError):
    """Code generation failed for one language."""

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class SandboxSetupError(CompilationError):
    """Sandbox could not be prepared (image unavailable, workspace failure)."""


class SandboxTimeoutError(CompilationError):
    def __init__(self, timeout: float, diagnostics: str = "") -> None:
        super().__init__(f"compilation timed out after {timeout:g}s", diagnostics)
        self.timeout = timeout


class CompilationCancelledError(CompilationError):
    def __init__(self, message: str = "compilation cancelled") -> None:
        super().__init__(message)


class ToolchainError(CompilationError):
    """Toolchain exited non-zero; diagnostics hold its output verbatim."""

    def __init__(self, exit_code: int, diagnostics: str) -> None:
        super().__init__(f"toolchain exited with code {exit_code}: {diagnostics}", diagnostics)
        self.exit_code = exit_code


# --------------- Persistence errors ---------------
class PersistenceError(DomainError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"compile succeeded but artifact could not be stored: {reason}")
        self.reason = reason


# --------------- Batch errors ---------------
class PartialFailureError(DomainError):
    """At least one language in a batch failed; ``results`` holds every outcome."""

    def __init__(self, results: Sequence[Any], failed: List[str]) -> None:
        details = "; ".join(
            f"{result.language}: {result.error}" for result in results if not result.success
        )
        super().__init__(
            f"partial failure: {len(failed)} of {len(results)} languages failed: {details}"
        )
        self.results = list(results)
        self.failed = failed
