"""Compilation service component package."""
from .cancellation import CancellationToken
from .jobs import JobStore
from .orchestrator import CompilationOrchestrator, OrchestratorConfig
from .registry import GeneratorRegistry, ToolchainSpec, default_registry

__all__ = [
    "CancellationToken",
    "CompilationOrchestrator",
    "GeneratorRegistry",
    "JobStore",
    "OrchestratorConfig",
    "ToolchainSpec",
    "default_registry",
]
