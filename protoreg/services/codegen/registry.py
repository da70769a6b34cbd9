"""Generator registry: language -> toolchain configuration.

The registry is built once from a complete table and never mutated
afterwards; custom generators are supplied by passing a different table to
the constructor.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from protoreg.domain.entities import CompileRequest
from protoreg.domain.errors import UnsupportedLanguageError
from protoreg.domain.languages import Language

OUTPUT_DIR = "/output"
INPUT_DIR = "/input"


@dataclass(frozen=True)
class ToolchainSpec:
    language: Language
    name: str
    protoc_plugin: str
    plugin_version: str
    image: str
    tag: str
    out_flag: str
    protoc_flags: Tuple[str, ...] = ()
    supports_grpc: bool = False
    grpc_plugin: str = ""
    grpc_out_flag: str = ""
    grpc_flags: Tuple[str, ...] = ()
    package_manager: Optional[str] = None
    file_extensions: Tuple[str, ...] = ()
    enabled: bool = True
    stable: bool = True
    description: str = ""

    @property
    def full_image(self) -> str:
        return f"{self.image}:{self.tag}" if self.tag else self.image

    @property
    def toolchain_version(self) -> str:
        """Identity of the toolchain that feeds into cache keys."""
        return f"{self.full_image}|{self.protoc_plugin}@{self.plugin_version}|{self.grpc_plugin}"

    def protoc_flags_for(self, request: CompileRequest, output_dir: str = OUTPUT_DIR) -> List[str]:
        flags = [f"--{self.out_flag}_out={output_dir}"]
        flags.extend(flag.format(output=output_dir) for flag in self.protoc_flags)
        if request.include_grpc and self.supports_grpc:
            if self.grpc_out_flag:
                flags.append(f"--{self.grpc_out_flag}_out={output_dir}")
            flags.extend(flag.format(output=output_dir) for flag in self.grpc_flags)
        for key, value in sorted(request.options.items()):
            flags.append(f"--{self.out_flag}_opt={key}={value}")
        return flags


class GeneratorRegistry:
    """Read-only lookup of toolchains by language identifier."""

    def __init__(self, toolchains: Iterable[ToolchainSpec]) -> None:
        table: Dict[Language, ToolchainSpec] = {}
        for spec in toolchains:
            if spec.language in table:
                raise ValueError(f"duplicate toolchain for {spec.language.value}")
            table[spec.language] = spec
        self._toolchains: Mapping[Language, ToolchainSpec] = table

    def lookup(self, language: str) -> Optional[ToolchainSpec]:
        parsed = Language.parse(language)
        if parsed is None:
            return None
        return self._toolchains.get(parsed)

    def require(self, language: str) -> ToolchainSpec:
        """Lookup that raises client errors for unknown or disabled languages."""
        spec = self.lookup(language)
        if spec is None:
            raise UnsupportedLanguageError(language)
        if not spec.enabled:
            raise UnsupportedLanguageError(language, reason="language is disabled")
        return spec

    def list(self) -> List[ToolchainSpec]:
        return sorted(self._toolchains.values(), key=lambda spec: spec.language.value)

    def list_enabled(self) -> List[ToolchainSpec]:
        return [spec for spec in self.list() if spec.enabled]

    def __len__(self) -> int:
        return len(self._toolchains)

    def __contains__(self, language: str) -> bool:
        return self.lookup(language) is not None


def default_toolchains(image_prefix: str = "protoreg/compiler") -> List[ToolchainSpec]:
    def image(lang: Language) -> str:
        return f"{image_prefix}-{lang.value}"

    return [
        ToolchainSpec(
            language=Language.GO, name="Go",
            protoc_plugin="protoc-gen-go", plugin_version="v1.31.0",
            image=image(Language.GO), tag="1.31.0", out_flag="go",
            protoc_flags=("--go_opt=paths=source_relative",),
            supports_grpc=True, grpc_plugin="protoc-gen-go-grpc", grpc_out_flag="go-grpc",
            grpc_flags=("--go-grpc_opt=paths=source_relative",),
            package_manager="go-modules", file_extensions=(".pb.go",),
            description="Go language support with protoc-gen-go",
        ),
        ToolchainSpec(
            language=Language.PYTHON, name="Python",
            protoc_plugin="protoc-gen-python", plugin_version="4.24.0",
            image=image(Language.PYTHON), tag="4.24.0", out_flag="python",
            supports_grpc=True, grpc_plugin="grpc_python_plugin", grpc_out_flag="grpc_python",
            package_manager="pip", file_extensions=("_pb2.py", "_pb2_grpc.py"),
            description="Python language support with protobuf and grpcio",
        ),
        ToolchainSpec(
            language=Language.JAVA, name="Java",
            protoc_plugin="protoc-gen-java", plugin_version="3.21.0",
            image=image(Language.JAVA), tag="3.21.0", out_flag="java",
            supports_grpc=True, grpc_plugin="protoc-gen-grpc-java", grpc_out_flag="grpc-java",
            package_manager="maven", file_extensions=(".java",),
            description="Java language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.CPP, name="C++",
            protoc_plugin="protoc-gen-cpp", plugin_version="3.21.0",
            image=image(Language.CPP), tag="3.21.0", out_flag="cpp",
            supports_grpc=True, grpc_plugin="grpc_cpp_plugin", grpc_out_flag="grpc",
            package_manager=None, file_extensions=(".pb.h", ".pb.cc"),
            description="C++ language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.CSHARP, name="C#",
            protoc_plugin="protoc-gen-csharp", plugin_version="3.21.0",
            image=image(Language.CSHARP), tag="3.21.0", out_flag="csharp",
            supports_grpc=True, grpc_plugin="grpc_csharp_plugin", grpc_out_flag="grpc",
            package_manager="nuget", file_extensions=(".cs",),
            description="C# language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.RUST, name="Rust",
            protoc_plugin="protoc-gen-prost", plugin_version="0.12.0",
            image=image(Language.RUST), tag="0.12.0", out_flag="prost",
            supports_grpc=True, grpc_plugin="protoc-gen-tonic", grpc_out_flag="tonic",
            package_manager="cargo", file_extensions=(".rs",),
            description="Rust language support with prost and tonic",
        ),
        ToolchainSpec(
            language=Language.TYPESCRIPT, name="TypeScript",
            protoc_plugin="protoc-gen-ts", plugin_version="5.0.1",
            image=image(Language.TYPESCRIPT), tag="5.0.1", out_flag="ts",
            supports_grpc=True, grpc_plugin="protoc-gen-grpc-web", grpc_out_flag="grpc-web",
            grpc_flags=("--grpc-web_opt=import_style=typescript,mode=grpcwebtext",),
            package_manager="npm-typescript", file_extensions=(".ts", "_pb.ts"),
            description="TypeScript language support with ts-proto",
        ),
        ToolchainSpec(
            language=Language.JAVASCRIPT, name="JavaScript",
            protoc_plugin="protoc-gen-js", plugin_version="3.21.0",
            image=image(Language.JAVASCRIPT), tag="3.21.0", out_flag="js",
            protoc_flags=("--js_opt=import_style=commonjs",),
            supports_grpc=True, grpc_plugin="protoc-gen-grpc-web", grpc_out_flag="grpc-web",
            grpc_flags=("--grpc-web_opt=import_style=commonjs,mode=grpcwebtext",),
            package_manager="npm", file_extensions=("_pb.js",),
            description="JavaScript language support with google-protobuf",
        ),
        ToolchainSpec(
            language=Language.DART, name="Dart",
            protoc_plugin="protoc-gen-dart", plugin_version="3.1.0",
            image=image(Language.DART), tag="3.1.0", out_flag="dart",
            supports_grpc=True, grpc_plugin="protoc-gen-dart",
            grpc_flags=("--dart_opt=grpc",),
            package_manager="pub", file_extensions=(".pb.dart", ".pbgrpc.dart"),
            description="Dart language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.SWIFT, name="Swift",
            protoc_plugin="protoc-gen-swift", plugin_version="1.25.0",
            image=image(Language.SWIFT), tag="1.25.0", out_flag="swift",
            supports_grpc=True, grpc_plugin="protoc-gen-grpc-swift", grpc_out_flag="grpc-swift",
            package_manager="swift-package", file_extensions=(".pb.swift", ".grpc.swift"),
            description="Swift language support with SwiftProtobuf and gRPC-Swift",
        ),
        ToolchainSpec(
            language=Language.KOTLIN, name="Kotlin",
            protoc_plugin="protoc-gen-kotlin", plugin_version="3.21.0",
            image=image(Language.KOTLIN), tag="3.21.0", out_flag="kotlin",
            protoc_flags=("--java_out={output}",),
            supports_grpc=True, grpc_plugin="protoc-gen-grpc-kotlin", grpc_out_flag="grpckt",
            package_manager="gradle", file_extensions=(".kt",),
            description="Kotlin language support with protobuf-kotlin and gRPC-Kotlin",
        ),
        ToolchainSpec(
            language=Language.OBJC, name="Objective-C",
            protoc_plugin="protoc-gen-objc", plugin_version="3.21.0",
            image=image(Language.OBJC), tag="3.21.0", out_flag="objc",
            supports_grpc=True, grpc_plugin="grpc_objective_c_plugin", grpc_out_flag="grpc",
            package_manager="cocoapods", file_extensions=(".pbobjc.h", ".pbobjc.m"),
            description="Objective-C language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.RUBY, name="Ruby",
            protoc_plugin="protoc-gen-ruby", plugin_version="3.21.0",
            image=image(Language.RUBY), tag="3.21.0", out_flag="ruby",
            supports_grpc=True, grpc_plugin="grpc_ruby_plugin", grpc_out_flag="grpc",
            package_manager="gem", file_extensions=("_pb.rb",),
            description="Ruby language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.PHP, name="PHP",
            protoc_plugin="protoc-gen-php", plugin_version="3.21.0",
            image=image(Language.PHP), tag="3.21.0", out_flag="php",
            supports_grpc=True, grpc_plugin="grpc_php_plugin", grpc_out_flag="grpc",
            package_manager="composer", file_extensions=(".php",),
            description="PHP language support with protobuf and gRPC",
        ),
        ToolchainSpec(
            language=Language.SCALA, name="Scala",
            protoc_plugin="protoc-gen-scala", plugin_version="0.11.13",
            image=image(Language.SCALA), tag="0.11.13", out_flag="scala",
            supports_grpc=True, grpc_plugin="protoc-gen-scala",
            grpc_flags=("--scala_opt=grpc",),
            package_manager="sbt", file_extensions=(".scala",),
            description="Scala language support with ScalaPB",
        ),
    ]


def default_registry() -> GeneratorRegistry:
    return GeneratorRegistry(default_toolchains())
