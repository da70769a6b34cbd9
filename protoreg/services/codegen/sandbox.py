"""Isolated toolchain execution.

Each compile gets a fresh workspace (``input/`` + ``output/``). The
toolchain runs either inside a throwaway docker container with no network
and bounded memory/CPU, or as a plain host process (``process`` backend,
used where docker is unavailable). In both cases the wall-clock budget and
cancellation are enforced by polling the child, which is killed rather
than abandoned, and the workspace is removed on every exit path.
"""
from __future__ import annotations

import logging
import math
import os
import signal
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from protoreg.domain.entities import CompileRequest, GeneratedFile, ProtoFile, SandboxOutput
from protoreg.domain.errors import (
    CompilationCancelledError,
    CompilationError,
    SandboxSetupError,
    SandboxTimeoutError,
    ToolchainError,
)
from protoreg.services.codegen.cancellation import CancellationToken
from protoreg.services.codegen.manifests import synthesize
from protoreg.services.codegen.registry import INPUT_DIR, OUTPUT_DIR, GeneratorRegistry, ToolchainSpec
from protoreg.services.codegen.workspace import SandboxWorkspace, SandboxWorkspaceManager

if os.name == "posix":
    import resource

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
KILL_GRACE_SECONDS = 5.0
MEMORY_UNITS = {"b": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}


@dataclass(frozen=True)
class SandboxLimits:
    memory: str = "512m"
    cpus: float = 1.0

    @property
    def memory_bytes(self) -> int:
        """``memory`` in bytes; accepts docker-style suffixes (``512m``, ``1g``)."""
        text = self.memory.strip().lower()
        if text and text[-1] in MEMORY_UNITS:
            return int(float(text[:-1]) * MEMORY_UNITS[text[-1]])
        return int(text)

    def cpu_seconds(self, timeout: float) -> int:
        """CPU time a child may burn at ``cpus`` cores over ``timeout`` seconds."""
        return max(1, math.ceil(timeout * self.cpus))


@dataclass(frozen=True)
class ToolchainRun:
    generated_files: List[GeneratedFile]
    stdout: str
    stderr: str
    duration: float


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def _diagnostics(stdout: str, stderr: str) -> str:
    return "\n".join(part.strip() for part in (stderr, stdout) if part.strip())


class SubprocessSandbox(ABC):
    """Common run loop for sandboxes that drive a child process."""

    def __init__(self, workspaces: SandboxWorkspaceManager, limits: Optional[SandboxLimits] = None) -> None:
        self.workspaces = workspaces
        self.limits = limits or SandboxLimits()

    @abstractmethod
    def build_command(
        self,
        workspace: SandboxWorkspace,
        spec: ToolchainSpec,
        request: CompileRequest,
        files: Sequence[str],
    ) -> List[str]:
        ...

    def popen_kwargs(self, workspace: SandboxWorkspace, timeout: float) -> dict:
        return {}

    def terminate(self, proc: subprocess.Popen, workspace: SandboxWorkspace) -> None:
        proc.kill()

    def run(
        self,
        proto_files: Sequence[ProtoFile],
        spec: ToolchainSpec,
        request: CompileRequest,
        timeout: float,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolchainRun:
        if not proto_files:
            raise CompilationError("no proto files to compile")

        workspace = self.workspaces.create_workspace()
        started = time.monotonic()
        try:
            try:
                files = workspace.materialize(proto_files)
            except OSError as exc:
                raise SandboxSetupError(f"could not materialize proto files: {exc}") from exc

            command = self.build_command(workspace, spec, request, files)
            logger.info(f"Starting {spec.language.value} toolchain in {workspace.name}")
            stdout, stderr, returncode = self._drive(command, workspace, timeout, cancel)
            duration = time.monotonic() - started
            logger.info(f"{spec.language.value} toolchain exited with {returncode} after {duration:.2f}s")

            if returncode != 0:
                raise ToolchainError(returncode, _diagnostics(stdout, stderr))

            generated = workspace.collect()
            if not generated:
                raise CompilationError("toolchain produced no output files", _diagnostics(stdout, stderr))
            return ToolchainRun(generated, stdout, stderr, duration)
        finally:
            self.workspaces.cleanup(workspace)

    def _drive(
        self,
        command: List[str],
        workspace: SandboxWorkspace,
        timeout: float,
        cancel: Optional[CancellationToken],
    ) -> Tuple[str, str, int]:
        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                **self.popen_kwargs(workspace, timeout),
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise SandboxSetupError(f"could not start toolchain {command[0]!r}: {exc}") from exc

        deadline = time.monotonic() + timeout
        while True:
            try:
                out, err = proc.communicate(timeout=POLL_INTERVAL)
                return _decode(out), _decode(err), proc.returncode
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.cancelled:
                logger.warning(f"Cancelling toolchain in {workspace.name}: {cancel.reason}")
                self._kill(proc, workspace)
                raise CompilationCancelledError(f"compilation cancelled: {cancel.reason}")
            if time.monotonic() >= deadline:
                logger.warning(f"Toolchain in {workspace.name} exceeded {timeout:g}s, killing")
                stdout, stderr = self._kill(proc, workspace)
                raise SandboxTimeoutError(timeout, _diagnostics(stdout, stderr))

    def _kill(self, proc: subprocess.Popen, workspace: SandboxWorkspace) -> Tuple[str, str]:
        try:
            self.terminate(proc, workspace)
        except ProcessLookupError:
            pass
        try:
            out, err = proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            out, err = proc.communicate()
        return _decode(out), _decode(err)


def _capped(kind: int, value: int) -> int:
    _, hard = resource.getrlimit(kind)
    if hard == resource.RLIM_INFINITY:
        return value
    return min(value, hard)


def _rlimits(memory_bytes: int, cpu_seconds: int):
    """Child-side hook applying address-space and CPU-time limits."""
    memory = _capped(resource.RLIMIT_AS, memory_bytes)
    cpu = _capped(resource.RLIMIT_CPU, cpu_seconds)

    def apply() -> None:
        resource.setrlimit(resource.RLIMIT_AS, (memory, memory))
        resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu))

    return apply


class ProcessSandbox(SubprocessSandbox):
    """Runs protoc as a host process confined to a private workspace.

    ``protoc`` may be a command prefix (e.g. an interpreter plus script).
    The child gets its own session so the whole process group is killed on
    timeout, and on POSIX runs under ``RLIMIT_AS`` and ``RLIMIT_CPU`` derived
    from the sandbox limits.
    """

    def __init__(
        self,
        workspaces: SandboxWorkspaceManager,
        protoc: Sequence[str] | str = "protoc",
        limits: Optional[SandboxLimits] = None,
    ) -> None:
        super().__init__(workspaces, limits)
        self.protoc = [protoc] if isinstance(protoc, str) else list(protoc)

    def build_command(self, workspace, spec, request, files):
        output_dir = str(workspace.output_dir)
        return [
            *self.protoc,
            f"--proto_path={workspace.input_dir}",
            *spec.protoc_flags_for(request, output_dir=output_dir),
            *files,
        ]

    def popen_kwargs(self, workspace, timeout):
        kwargs = {"cwd": str(workspace.root)}
        if os.name == "posix":
            kwargs["start_new_session"] = True
            kwargs["preexec_fn"] = _rlimits(self.limits.memory_bytes, self.limits.cpu_seconds(timeout))
        return kwargs

    def terminate(self, proc, workspace):
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()


class DockerSandbox(SubprocessSandbox):
    """Runs the language image via the docker CLI.

    The container gets no network, capped memory/CPU, a read-only input
    mount and a writable output mount; it is removed when it exits and
    killed by name on timeout or cancellation.
    """

    def __init__(
        self,
        workspaces: SandboxWorkspaceManager,
        docker_binary: str = "docker",
        limits: Optional[SandboxLimits] = None,
    ) -> None:
        super().__init__(workspaces, limits)
        self.docker_binary = docker_binary

    @staticmethod
    def container_name(workspace: SandboxWorkspace) -> str:
        return f"protoreg-{workspace.name}"

    def build_command(self, workspace, spec, request, files):
        command = [
            self.docker_binary, "run", "--rm",
            "--name", self.container_name(workspace),
            "--network", "none",
            "--memory", self.limits.memory,
            "--cpus", f"{self.limits.cpus:g}",
            "-v", f"{workspace.input_dir}:{INPUT_DIR}:ro",
            "-v", f"{workspace.output_dir}:{OUTPUT_DIR}",
        ]
        if hasattr(os, "getuid"):
            command += ["--user", f"{os.getuid()}:{os.getgid()}"]
        command += [
            spec.full_image,
            "protoc",
            f"--proto_path={INPUT_DIR}",
            *spec.protoc_flags_for(request, output_dir=OUTPUT_DIR),
            *files,
        ]
        return command

    def terminate(self, proc, workspace):
        name = self.container_name(workspace)
        try:
            result = subprocess.run(
                [self.docker_binary, "kill", name],
                capture_output=True,
                timeout=KILL_GRACE_SECONDS,
            )
            if result.returncode != 0:
                logger.warning(f"docker kill {name} failed: {_decode(result.stderr).strip()}")
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning(f"docker kill {name} failed: {exc}")
        proc.kill()


class SandboxExecutor:
    """Runs one language's toolchain and synthesizes its package files."""

    def __init__(self, runner: SubprocessSandbox, registry: GeneratorRegistry) -> None:
        self.runner = runner
        self.registry = registry

    def execute(
        self,
        proto_files: Sequence[ProtoFile],
        request: CompileRequest,
        timeout: float,
        cancel: Optional[CancellationToken] = None,
    ) -> SandboxOutput:
        spec = self.registry.require(request.language)
        package_files = self.package_files(request)
        run = self.runner.run(proto_files, spec, request, timeout, cancel)
        return SandboxOutput(
            generated_files=run.generated_files,
            package_files=package_files,
            stdout=run.stdout,
            stderr=run.stderr,
            duration=run.duration,
        )

    def package_files(self, request: CompileRequest) -> List[GeneratedFile]:
        spec = self.registry.require(request.language)
        return synthesize(
            spec.package_manager, request.module_name, request.version, request.include_grpc
        )


def build_sandbox(
    backend: str,
    work_dir: Path,
    limits: Optional[SandboxLimits] = None,
    docker_binary: str = "docker",
    protoc_binary: str = "protoc",
) -> SubprocessSandbox:
    workspaces = SandboxWorkspaceManager(Path(work_dir))
    if backend == "docker":
        return DockerSandbox(workspaces, docker_binary=docker_binary, limits=limits)
    if backend == "process":
        return ProcessSandbox(workspaces, protoc=protoc_binary, limits=limits)
    raise ValueError(f"Unsupported sandbox backend: {backend}")
