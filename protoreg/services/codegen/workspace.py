from __future__ import annotations

import shutil
import uuid
from pathlib import Path, PurePosixPath
from typing import Iterable, List

from protoreg.domain.entities import GeneratedFile, ProtoFile
from protoreg.domain.errors import SandboxSetupError


class SandboxWorkspace:
    """One disposable input/output directory pair for a single compile."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.input_dir = root / "input"
        self.output_dir = root / "output"

    @property
    def name(self) -> str:
        return self.root.name

    def materialize(self, files: Iterable[ProtoFile]) -> List[str]:
        """Write proto files under the input dir, preserving relative paths."""
        written = []
        for proto in files:
            relative = _safe_relative(proto.path)
            target = self.input_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(proto.content)
            written.append(relative.as_posix())
        return written

    def collect(self) -> List[GeneratedFile]:
        """Read back every emitted file, sorted by path."""
        files = []
        for path in sorted(p for p in self.output_dir.rglob("*") if p.is_file()):
            relative = path.relative_to(self.output_dir).as_posix()
            files.append(GeneratedFile(path=relative, content=path.read_bytes()))
        return files


class SandboxWorkspaceManager:
    """Create and tear down per-compile workspaces under a private root."""

    def __init__(self, work_root: Path) -> None:
        self.work_root = Path(work_root)
        self.work_root.mkdir(parents=True, exist_ok=True)

    def create_workspace(self) -> SandboxWorkspace:
        workspace = SandboxWorkspace(self.work_root / f"compile-{uuid.uuid4().hex}")
        try:
            workspace.input_dir.mkdir(parents=True)
            workspace.output_dir.mkdir(parents=True)
        except OSError as exc:
            self.cleanup(workspace)
            raise SandboxSetupError(f"could not create sandbox workspace: {exc}") from exc
        return workspace

    def cleanup(self, workspace: SandboxWorkspace) -> None:
        root = workspace.root
        if root.exists() and root.is_relative_to(self.work_root):
            shutil.rmtree(root, ignore_errors=True)


def _safe_relative(path: str) -> PurePosixPath:
    relative = PurePosixPath(path.replace("\\", "/"))
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise SandboxSetupError(f"proto path escapes the sandbox: {path!r}")
    return relative
