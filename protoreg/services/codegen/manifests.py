"""Package manifest synthesis for each language ecosystem.

Every synthesizer is a pure function of ``(module_name, version,
include_grpc)``: no clocks, no I/O, so the same module always yields
byte-identical manifests.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Dict, List

from protoreg.domain.entities import GeneratedFile
from protoreg.domain.errors import ManifestError

_MODULE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")
_VERSION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")

PROTOBUF_VERSIONS = {
    "go": ("google.golang.org/protobuf", "v1.31.0"),
    "go-grpc": ("google.golang.org/grpc", "v1.60.0"),
}


@dataclass(frozen=True)
class ManifestContext:
    module_name: str
    version: str
    include_grpc: bool = False

    def __post_init__(self):
        if not _MODULE_RE.match(self.module_name or ""):
            raise ManifestError(f"malformed module name: {self.module_name!r}")
        if not _VERSION_RE.match(self.version or ""):
            raise ManifestError(f"malformed version: {self.version!r}")

    @property
    def semver(self) -> str:
        """Version without the conventional ``v`` prefix."""
        if self.version[:1] in ("v", "V") and self.version[1:2].isdigit():
            return self.version[1:]
        return self.version

    @property
    def slug(self) -> str:
        """Lowercase, dash-separated identifier (``user_service`` -> ``user-service``)."""
        return re.sub(r"[_/ .]+", "-", self.module_name.lower()).strip("-")

    @property
    def snake(self) -> str:
        return self.slug.replace("-", "_")

    @property
    def pascal(self) -> str:
        return "".join(part.capitalize() for part in self.slug.split("-") if part)


def _file(path: str, text: str) -> GeneratedFile:
    return GeneratedFile(path=path, content=text.encode("utf-8"))


def _json(path: str, payload: dict) -> GeneratedFile:
    return _file(path, json.dumps(payload, indent=2, sort_keys=True) + "\n")


def _readme(ctx: ManifestContext, ecosystem: str, install: str) -> GeneratedFile:
    return _file(
        "README.md",
        f"# {ctx.module_name}\n\n"
        f"Protocol Buffer generated code for {ecosystem} ({ctx.module_name} {ctx.version}).\n\n"
        f"## Installation\n\n```\n{install}\n```\n",
    )


# --------------- Synthesizers ---------------
def go_modules(ctx: ManifestContext) -> List[GeneratedFile]:
    requires = [PROTOBUF_VERSIONS["go"]]
    if ctx.include_grpc:
        requires.append(PROTOBUF_VERSIONS["go-grpc"])
    require_block = "\n".join(f"\t{path} {version}" for path, version in requires)
    go_mod = f"module {ctx.module_name.lower()}\n\ngo 1.21\n\nrequire (\n{require_block}\n)\n"
    return [_file("go.mod", go_mod), _readme(ctx, "Go", f"go get {ctx.module_name.lower()}@{ctx.version}")]


def pip(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ['"protobuf>=4.24.0"']
    if ctx.include_grpc:
        deps.append('"grpcio>=1.59.0"')
    setup_py = (
        "from setuptools import setup, find_packages\n\n"
        "setup(\n"
        f'    name="{ctx.snake}",\n'
        f'    version="{ctx.semver}",\n'
        f'    description="Protocol Buffer generated code for {ctx.module_name}",\n'
        "    packages=find_packages(),\n"
        f"    install_requires=[{', '.join(deps)}],\n"
        '    python_requires=">=3.8",\n'
        ")\n"
    )
    pyproject = (
        "[build-system]\n"
        'requires = ["setuptools>=61.0"]\n'
        'build-backend = "setuptools.build_meta"\n\n'
        "[project]\n"
        f'name = "{ctx.snake}"\n'
        f'version = "{ctx.semver}"\n'
        f'description = "Protocol Buffer generated code for {ctx.module_name}"\n'
        'requires-python = ">=3.8"\n'
        f"dependencies = [{', '.join(deps)}]\n"
    )
    return [
        _file("setup.py", setup_py),
        _file("pyproject.toml", pyproject),
        _readme(ctx, "Python", f"pip install {ctx.snake}"),
    ]


def maven(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = [("com.google.protobuf", "protobuf-java", "3.25.1")]
    if ctx.include_grpc:
        deps += [("io.grpc", "grpc-protobuf", "1.60.0"), ("io.grpc", "grpc-stub", "1.60.0")]
    dep_xml = "".join(
        "    <dependency>\n"
        f"      <groupId>{group}</groupId>\n"
        f"      <artifactId>{artifact}</artifactId>\n"
        f"      <version>{version}</version>\n"
        "    </dependency>\n"
        for group, artifact, version in deps
    )
    pom = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<project xmlns="http://maven.apache.org/POM/4.0.0">\n'
        "  <modelVersion>4.0.0</modelVersion>\n"
        "  <groupId>com.protoreg.generated</groupId>\n"
        f"  <artifactId>{ctx.slug}</artifactId>\n"
        f"  <version>{ctx.semver}</version>\n"
        "  <packaging>jar</packaging>\n"
        "  <dependencies>\n"
        f"{dep_xml}"
        "  </dependencies>\n"
        "</project>\n"
    )
    install = (
        "<dependency>\n  <groupId>com.protoreg.generated</groupId>\n"
        f"  <artifactId>{ctx.slug}</artifactId>\n  <version>{ctx.semver}</version>\n</dependency>"
    )
    return [_file("pom.xml", pom), _readme(ctx, "Java", install)]


def npm(ctx: ManifestContext, typescript: bool = False) -> List[GeneratedFile]:
    dependencies = {"google-protobuf": "^3.21.0"}
    if ctx.include_grpc:
        dependencies["@grpc/grpc-js"] = "^1.9.0"
        dependencies["grpc-web"] = "^1.4.2"
    package = {
        "name": f"@protoreg/{ctx.slug}",
        "version": ctx.semver,
        "description": f"Protocol Buffer generated code for {ctx.module_name}",
        "main": "index.js",
        "dependencies": dependencies,
        "engines": {"node": ">=16.0.0"},
    }
    files = []
    if typescript:
        package["types"] = "index.d.ts"
        package["scripts"] = {"build": "tsc"}
        package["devDependencies"] = {"typescript": "^5.0.0", "@types/google-protobuf": "^3.15.0"}
    files.append(_json("package.json", package))
    if typescript:
        files.append(_json("tsconfig.json", {
            "compilerOptions": {
                "target": "ES2020",
                "module": "commonjs",
                "declaration": True,
                "outDir": "./dist",
                "strict": True,
                "esModuleInterop": True,
                "skipLibCheck": True,
            },
            "include": ["**/*.ts"],
            "exclude": ["node_modules", "dist"],
        }))
    files.append(_readme(ctx, "TypeScript" if typescript else "JavaScript", f"npm install @protoreg/{ctx.slug}"))
    return files


def cargo(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ['prost = "0.12"', 'prost-types = "0.12"']
    if ctx.include_grpc:
        deps.append('tonic = "0.10"')
    cargo_toml = (
        "[package]\n"
        f'name = "{ctx.snake}"\n'
        f'version = "{ctx.semver}"\n'
        'edition = "2021"\n\n'
        "[dependencies]\n" + "\n".join(deps) + "\n"
    )
    return [_file("Cargo.toml", cargo_toml), _readme(ctx, "Rust", f"cargo add {ctx.snake}")]


def nuget(ctx: ManifestContext) -> List[GeneratedFile]:
    refs = ['    <PackageReference Include="Google.Protobuf" Version="3.25.1" />']
    if ctx.include_grpc:
        refs.append('    <PackageReference Include="Grpc.Net.Client" Version="2.59.0" />')
    csproj = (
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        "  <PropertyGroup>\n"
        "    <TargetFramework>net8.0</TargetFramework>\n"
        f"    <PackageId>{ctx.pascal}</PackageId>\n"
        f"    <Version>{ctx.semver}</Version>\n"
        "  </PropertyGroup>\n"
        "  <ItemGroup>\n" + "\n".join(refs) + "\n  </ItemGroup>\n"
        "</Project>\n"
    )
    return [_file(f"{ctx.pascal}.csproj", csproj), _readme(ctx, "C#", f"dotnet add package {ctx.pascal}")]


def pub(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ["  protobuf: ^3.1.0"]
    if ctx.include_grpc:
        deps.append("  grpc: ^3.2.0")
    pubspec = (
        f"name: {ctx.snake}\n"
        f"version: {ctx.semver}\n"
        f"description: Protocol Buffer generated code for {ctx.module_name}\n"
        "environment:\n  sdk: '>=3.0.0 <4.0.0'\n"
        "dependencies:\n" + "\n".join(deps) + "\n"
    )
    return [_file("pubspec.yaml", pubspec), _readme(ctx, "Dart", f"dart pub add {ctx.snake}")]


def swift_package(ctx: ManifestContext) -> List[GeneratedFile]:
    packages = ['        .package(url: "https://github.com/apple/swift-protobuf.git", from: "1.25.0"),']
    products = ['                .product(name: "SwiftProtobuf", package: "swift-protobuf"),']
    if ctx.include_grpc:
        packages.append('        .package(url: "https://github.com/grpc/grpc-swift.git", from: "1.21.0"),')
        products.append('                .product(name: "GRPC", package: "grpc-swift"),')
    manifest = (
        "// swift-tools-version:5.7\n"
        "import PackageDescription\n\n"
        "let package = Package(\n"
        f'    name: "{ctx.pascal}",\n'
        f'    products: [.library(name: "{ctx.pascal}", targets: ["{ctx.pascal}"])],\n'
        "    dependencies: [\n" + "\n".join(packages) + "\n    ],\n"
        "    targets: [\n"
        "        .target(\n"
        f'            name: "{ctx.pascal}",\n'
        "            dependencies: [\n" + "\n".join(products) + "\n            ]\n"
        "        ),\n"
        "    ]\n"
        ")\n"
    )
    return [_file("Package.swift", manifest), _readme(ctx, "Swift", f".package(name: \"{ctx.pascal}\")")]


def gradle(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ['    implementation("com.google.protobuf:protobuf-kotlin:3.25.1")']
    if ctx.include_grpc:
        deps.append('    implementation("io.grpc:grpc-kotlin-stub:1.4.0")')
        deps.append('    implementation("io.grpc:grpc-protobuf:1.60.0")')
    build = (
        'plugins {\n    kotlin("jvm") version "1.9.20"\n}\n\n'
        'group = "com.protoreg.generated"\n'
        f'version = "{ctx.semver}"\n\n'
        "repositories {\n    mavenCentral()\n}\n\n"
        "dependencies {\n" + "\n".join(deps) + "\n}\n"
    )
    return [_file("build.gradle.kts", build), _readme(ctx, "Kotlin", f"implementation(\"com.protoreg.generated:{ctx.slug}:{ctx.semver}\")")]


def cocoapods(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ["  s.dependency 'Protobuf', '~> 3.21'"]
    if ctx.include_grpc:
        deps.append("  s.dependency 'gRPC-ProtoRPC', '~> 1.59'")
    podspec = (
        "Pod::Spec.new do |s|\n"
        f"  s.name = '{ctx.pascal}'\n"
        f"  s.version = '{ctx.semver}'\n"
        f"  s.summary = 'Protocol Buffer generated code for {ctx.module_name}'\n"
        "  s.source_files = '**/*.{h,m}'\n"
        "  s.requires_arc = false\n" + "\n".join(deps) + "\nend\n"
    )
    return [_file(f"{ctx.pascal}.podspec", podspec), _readme(ctx, "Objective-C", f"pod '{ctx.pascal}'")]


def gem(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ["  s.add_dependency 'google-protobuf', '~> 3.21'"]
    if ctx.include_grpc:
        deps.append("  s.add_dependency 'grpc', '~> 1.59'")
    gemspec = (
        "Gem::Specification.new do |s|\n"
        f"  s.name = '{ctx.snake}'\n"
        f"  s.version = '{ctx.semver}'\n"
        f"  s.summary = 'Protocol Buffer generated code for {ctx.module_name}'\n"
        "  s.files = Dir['**/*.rb']\n" + "\n".join(deps) + "\nend\n"
    )
    return [_file(f"{ctx.snake}.gemspec", gemspec), _readme(ctx, "Ruby", f"gem install {ctx.snake}")]


def composer(ctx: ManifestContext) -> List[GeneratedFile]:
    require = {"google/protobuf": "^3.21"}
    if ctx.include_grpc:
        require["grpc/grpc"] = "^1.59"
    payload = {
        "name": f"protoreg/{ctx.slug}",
        "version": ctx.semver,
        "description": f"Protocol Buffer generated code for {ctx.module_name}",
        "type": "library",
        "require": require,
        "autoload": {"psr-4": {"": "."}},
    }
    return [_json("composer.json", payload), _readme(ctx, "PHP", f"composer require protoreg/{ctx.slug}")]


def sbt(ctx: ManifestContext) -> List[GeneratedFile]:
    deps = ['  "com.thesamet.scalapb" %% "scalapb-runtime" % "0.11.13"']
    if ctx.include_grpc:
        deps.append('  "com.thesamet.scalapb" %% "scalapb-runtime-grpc" % "0.11.13"')
        deps.append('  "io.grpc" % "grpc-netty" % "1.59.0"')
    build = (
        f'name := "{ctx.slug}"\n'
        'organization := "com.protoreg.generated"\n'
        f'version := "{ctx.semver}"\n'
        'scalaVersion := "2.13.12"\n\n'
        "libraryDependencies ++= Seq(\n" + ",\n".join(deps) + "\n)\n"
    )
    return [_file("build.sbt", build), _readme(ctx, "Scala", f'libraryDependencies += "com.protoreg.generated" %% "{ctx.slug}" % "{ctx.semver}"')]


ManifestSynthesizer = Callable[[ManifestContext], List[GeneratedFile]]

SYNTHESIZERS: Dict[str, ManifestSynthesizer] = {
    "go-modules": go_modules,
    "pip": pip,
    "maven": maven,
    "npm": npm,
    "npm-typescript": lambda ctx: npm(ctx, typescript=True),
    "cargo": cargo,
    "nuget": nuget,
    "pub": pub,
    "swift-package": swift_package,
    "gradle": gradle,
    "cocoapods": cocoapods,
    "gem": gem,
    "composer": composer,
    "sbt": sbt,
}


def synthesize(package_manager: str | None, module_name: str, version: str, include_grpc: bool = False) -> List[GeneratedFile]:
    """Return the package files for ``package_manager`` (empty when None)."""
    if package_manager is None:
        return []
    synthesizer = SYNTHESIZERS.get(package_manager)
    if synthesizer is None:
        raise ManifestError(f"no manifest synthesizer for package manager: {package_manager}")
    return synthesizer(ManifestContext(module_name, version, include_grpc))
