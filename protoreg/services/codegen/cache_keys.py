"""Content-addressed cache key derivation.

The key is a SHA-256 digest over every compile input in a canonical
order:

    namespace, toolchain version, language, include_grpc,
    own files sorted by path,
    dependencies sorted by (module, version), each with its files sorted by path,
    options sorted by key

Each field is written length-prefixed so no two distinct input sets can
serialize to the same byte stream. Changing this layout invalidates every
cached artifact; bump ``KEY_FORMAT_VERSION`` when doing so.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence, Tuple

from protoreg.domain.entities import CompileRequest, Dependency, ProtoFile

KEY_FORMAT_VERSION = "1"


@dataclass(frozen=True)
class CacheKeyInputs:
    """Normalized view of everything that influences generated output."""
    proto_files: Tuple[ProtoFile, ...]
    dependencies: Tuple[Dependency, ...]
    language: str
    include_grpc: bool
    options: Tuple[Tuple[str, str], ...]
    toolchain_version: str = ""
    namespace: str = ""

    @classmethod
    def from_request(
        cls,
        request: CompileRequest,
        toolchain_version: str = "",
        namespace: str = "",
    ) -> "CacheKeyInputs":
        return cls(
            proto_files=tuple(request.proto_files),
            dependencies=tuple(request.dependencies),
            language=request.language,
            include_grpc=request.include_grpc,
            options=tuple((str(k), str(v)) for k, v in request.options.items()),
            toolchain_version=toolchain_version,
            namespace=namespace,
        )


def _field(hasher, value: bytes) -> None:
    hasher.update(len(value).to_bytes(8, "big"))
    hasher.update(value)


def _hash_files(hasher, files: Iterable[ProtoFile]) -> None:
    ordered = sorted(files, key=lambda f: (f.path, f.content))
    _field(hasher, str(len(ordered)).encode())
    for proto in ordered:
        _field(hasher, proto.path.encode("utf-8"))
        _field(hasher, proto.content)


def dependency_fingerprint(dependency: Dependency) -> str:
    """Digest of one dependency's identity and its files."""
    hasher = hashlib.sha256()
    _field(hasher, dependency.module_name.encode("utf-8"))
    _field(hasher, dependency.version.encode("utf-8"))
    _hash_files(hasher, dependency.proto_files)
    return hasher.hexdigest()


def derive_cache_key(inputs: CacheKeyInputs) -> str:
    """Return the hex SHA-256 cache key for ``inputs``.

    Pure: no I/O, no clock, no reliance on mapping iteration order.
    """
    hasher = hashlib.sha256()
    _field(hasher, f"protoreg-cache:{KEY_FORMAT_VERSION}".encode())
    _field(hasher, inputs.namespace.encode("utf-8"))
    _field(hasher, inputs.toolchain_version.encode("utf-8"))
    _field(hasher, inputs.language.encode("utf-8"))
    _field(hasher, b"grpc=1" if inputs.include_grpc else b"grpc=0")

    _hash_files(hasher, inputs.proto_files)

    fingerprints = sorted(dependency_fingerprint(dep) for dep in inputs.dependencies)
    _field(hasher, str(len(fingerprints)).encode())
    for fingerprint in fingerprints:
        _field(hasher, fingerprint.encode("ascii"))

    options = _sorted_options(inputs.options)
    _field(hasher, str(len(options)).encode())
    for key, value in options:
        _field(hasher, f"{key}={value}".encode("utf-8"))

    return hasher.hexdigest()


def _sorted_options(options: Sequence[Tuple[str, str]] | Mapping[str, str]) -> list:
    if isinstance(options, Mapping):
        options = list(options.items())
    return sorted(options)
