"""Durable, content-addressed cache of compilation results."""
from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from protoreg.domain.entities import CompilationResult, CompileRequest, GeneratedFile

logger = logging.getLogger(__name__)


def _encode_files(files) -> list:
    return [
        {"path": f.path, "content": base64.b64encode(f.content).decode("ascii")}
        for f in files
    ]


def _decode_files(entries) -> tuple:
    return tuple(
        GeneratedFile(path=entry["path"], content=base64.b64decode(entry["content"]))
        for entry in entries
    )


class LocalArtifactCache:
    """Filesystem cache: one JSON document per key under ``<root>/entries``.

    Entries are written atomically and never overwritten, so two compiles
    racing on the same key cannot corrupt each other.
    """

    def __init__(self, cache_root: Path) -> None:
        self.cache_root = Path(cache_root)
        self.entries_root = self.cache_root / "entries"
        self.entries_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def entry_path(self, key: str) -> Path:
        if not key or not all(c in "0123456789abcdef" for c in key):
            raise ValueError(f"invalid cache key: {key!r}")
        return self.entries_root / key[:2] / f"{key}.json"

    def get(self, key: str) -> Optional[CompilationResult]:
        path = self.entry_path(key)
        document = self._read(path)
        with self._lock:
            if document is None:
                self._misses += 1
            else:
                self._hits += 1
        if document is None:
            logger.debug(f"Cache miss for {key}")
            return None
        logger.debug(f"Cache hit for {key}")
        return self._to_result(document)

    def put(self, key: str, result: CompilationResult, request: Optional[CompileRequest] = None) -> None:
        """Store ``result`` under ``key``; a no-op when the key already exists."""
        if not result.success:
            raise ValueError("only successful results are cached")
        path = self.entry_path(key)
        if path.exists():
            return

        document = {
            "key": key,
            "module_name": request.module_name if request else result.package_name,
            "version": request.version if request else result.version,
            "language": result.language,
            "package_name": result.package_name,
            "generated_files": _encode_files(result.generated_files),
            "package_files": _encode_files(result.package_files),
            "storage_key": result.storage_key,
            "storage_bucket": result.storage_bucket,
            "artifact_hash": result.artifact_hash,
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle)
            if path.exists():
                return
            os.replace(tmp_name, path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self, key: str) -> bool:
        path = self.entry_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def invalidate(self, module_name: str, version: Optional[str] = None) -> int:
        """Delete every entry recorded for ``module_name`` (and ``version``)."""
        removed = 0
        for path, document in self._iter_entries():
            if document.get("module_name") != module_name:
                continue
            if version is not None and document.get("version") != version:
                continue
            path.unlink(missing_ok=True)
            removed += 1
        if removed:
            logger.info(f"Invalidated {removed} cache entries for {module_name}@{version or '*'}")
        return removed

    def stats(self) -> Dict[str, Any]:
        entries = 0
        total_bytes = 0
        for path in self.entries_root.rglob("*.json"):
            if path.name.startswith(".tmp-"):
                continue
            entries += 1
            total_bytes += path.stat().st_size
        with self._lock:
            hits, misses = self._hits, self._misses
        return {
            "entries": entries,
            "total_bytes": total_bytes,
            "hits": hits,
            "misses": misses,
        }

    def _iter_entries(self) -> Iterator[tuple]:
        for path in sorted(self.entries_root.rglob("*.json")):
            if path.name.startswith(".tmp-"):
                continue
            document = self._read(path)
            if document is not None:
                yield path, document

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning(f"Ignoring unreadable cache entry {path}: {exc}")
            return None

    @staticmethod
    def _to_result(document: Dict[str, Any]) -> CompilationResult:
        return CompilationResult(
            language=document["language"],
            package_name=document["package_name"],
            version=document["version"],
            success=True,
            generated_files=_decode_files(document["generated_files"]),
            package_files=_decode_files(document["package_files"]),
            cache_hit=True,
            storage_key=document.get("storage_key", ""),
            storage_bucket=document.get("storage_bucket", ""),
            artifact_hash=document.get("artifact_hash", ""),
        )


class InMemoryArtifactCache:
    """Process-local cache used by tests and cache-less deployments."""

    def __init__(self) -> None:
        self._entries: Dict[str, CompilationResult] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CompilationResult]:
        with self._lock:
            result = self._entries.get(key)
        if result is None:
            return None
        return replace(result, cache_hit=True, duration=0.0)

    def put(self, key: str, result: CompilationResult, request: Optional[CompileRequest] = None) -> None:
        with self._lock:
            self._entries.setdefault(key, replace(result, cache_hit=False))

    def __len__(self) -> int:
        return len(self._entries)
