"""Configuration and orchestration of stub generation."""

from __future__ import annotations

import ast
import copy
import logging
import os
import subprocess
import sys
import tempfile
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from google.protobuf import descriptor_pb2

from triple_stub_generator import client, helper, server
from triple_stub_generator.adapter import TripleService
from triple_stub_generator.attributes import Attributes
from triple_stub_generator.descriptors import proto_file_name, run_protoc, services_from_descriptor_set
from triple_stub_generator.errors import InvalidProgramError, OutputTargetError
from triple_stub_generator.proto_types import ProtoService
from triple_stub_generator.resolver import NON_PATH_TYPE_ALLOWLIST

logger = logging.getLogger(__name__)

DEFAULT_PROTO_PATH = "super"
OUT_DIR_ENV = "OUT_DIR"
STUB_MODULE_SUFFIX = "_triple"
PY_SUFFIX = ".py"
LINE_LENGTH = 120


@dataclass(frozen=True)
class Builder:
    """Stub generation settings.

    A builder is immutable: the `with_*` and attribute methods return modified copies.

    Attributes:
        build_client: Whether to generate client stubs.
        build_server: Whether to generate server stubs.
        proto_path: Namespace prefix under which generated message types are reachable.
        compile_well_known_types: Whether well-known types are generated with the user's messages.
        protoc_args: Additional arguments, passed to protoc as they are.
        include_file: If set, name of a module written next to the stubs that imports all of them.
        output_dir: Where to write the stubs. Defaults to the `OUT_DIR` environment variable.
        non_path_types: Python types that are used verbatim as request or response types.
        server_attributes: Attributes for the generated server sections and classes.
        client_attributes: Attributes for the generated client sections and classes.
    """

    build_client: bool = True
    build_server: bool = True
    proto_path: str = DEFAULT_PROTO_PATH
    compile_well_known_types: bool = False
    protoc_args: tuple[str, ...] = ()
    include_file: str | None = None
    output_dir: Path | None = None
    non_path_types: tuple[str, ...] = NON_PATH_TYPE_ALLOWLIST
    server_attributes: Attributes = field(default_factory=Attributes)
    client_attributes: Attributes = field(default_factory=Attributes)

    def with_build_client(self, enable: bool) -> Builder:
        return replace(self, build_client=enable)

    def with_build_server(self, enable: bool) -> Builder:
        return replace(self, build_server=enable)

    def with_proto_path(self, proto_path: str) -> Builder:
        return replace(self, proto_path=proto_path)

    def with_compile_well_known_types(self, enable: bool) -> Builder:
        return replace(self, compile_well_known_types=enable)

    def with_protoc_arg(self, arg: str) -> Builder:
        return replace(self, protoc_args=(*self.protoc_args, arg))

    def with_include_file(self, name: str) -> Builder:
        return replace(self, include_file=name)

    def with_output_dir(self, output_dir: str | os.PathLike[str]) -> Builder:
        return replace(self, output_dir=Path(output_dir))

    def with_non_path_type(self, python_type: str) -> Builder:
        return replace(self, non_path_types=(*self.non_path_types, python_type))

    def client_mod_attribute(self, pattern: str, attribute: str) -> Builder:
        return replace(self, client_attributes=self.client_attributes.push_mod(pattern, attribute))

    def client_attribute(self, pattern: str, attribute: str) -> Builder:
        return replace(self, client_attributes=self.client_attributes.push_struct(pattern, attribute))

    def server_mod_attribute(self, pattern: str, attribute: str) -> Builder:
        return replace(self, server_attributes=self.server_attributes.push_mod(pattern, attribute))

    def server_attribute(self, pattern: str, attribute: str) -> Builder:
        return replace(self, server_attributes=self.server_attributes.push_struct(pattern, attribute))

    def resolve_output_dir(self) -> Path:
        """The output directory: `output_dir` if set, otherwise the `OUT_DIR` environment variable.

        Raises:
            OutputTargetError: If neither is set.
        """
        if self.output_dir is not None:
            return self.output_dir

        out_dir = os.environ.get(OUT_DIR_ENV)
        if not out_dir:
            raise OutputTargetError(f"No output directory configured and ${OUT_DIR_ENV} is not set")
        return Path(out_dir)

    def compile(
        self,
        protos: Sequence[str | os.PathLike[str]],
        includes: Sequence[str | os.PathLike[str]],
    ) -> list[Path]:
        """Parse proto files with protoc and generate stubs for their services.

        The `*_pb2` message modules are generated into the output directory as well.

        Args:
            protos (Sequence[str | PathLike]): The proto files to generate stubs for.
            includes (Sequence[str | PathLike]): The include directories.

        Raises:
            StubGenerationError: If any stage fails.

        Returns:
            list[Path]: The written files.
        """
        out_dir = self.resolve_output_dir()
        _make_dirs(out_dir)

        proto_paths = [Path(proto) for proto in protos]
        include_paths = [Path(include) for include in includes]

        with tempfile.TemporaryDirectory() as tmp_dir:
            descriptor_set = run_protoc(
                proto_paths,
                include_paths,
                Path(tmp_dir) / "descriptor_set.pb",
                python_out=out_dir,
                protoc_args=self.protoc_args,
            )

        file_names = [proto_file_name(proto, include_paths) for proto in proto_paths]
        return self.compile_descriptor_set(descriptor_set, file_names)

    def compile_descriptor_set(
        self,
        descriptor_set: descriptor_pb2.FileDescriptorSet,
        file_names: Iterable[str] | None = None,
    ) -> list[Path]:
        """Generate stubs for the services of an already parsed descriptor set.

        One module is written per package, holding all client sections followed by all server sections.

        Args:
            descriptor_set (FileDescriptorSet): The parsed files.
            file_names (Iterable[str] | None, optional): Only generate services of these files. Defaults to all files.

        Raises:
            StubGenerationError: If any stage fails.

        Returns:
            list[Path]: The written files.
        """
        out_dir = self.resolve_output_dir()
        services = services_from_descriptor_set(descriptor_set, file_names, self.compile_well_known_types)

        if services and self.proto_path == DEFAULT_PROTO_PATH:
            logger.warning(
                f"proto_path is left at '{DEFAULT_PROTO_PATH}', the generated message imports will not resolve; "
                "set it to the package that holds the *_pb2 modules"
            )

        packages: dict[str, list[ProtoService]] = {}
        for service in services:
            packages.setdefault(service.package, []).append(service)

        # All packages are finalized before the first module is written.
        modules: list[tuple[Path, str, int]] = []
        for package, package_services in packages.items():
            generator = ServiceGenerator(self)
            for service in package_services:
                generator.generate(service)

            code = generator.finalize()
            if code:
                output_path = out_dir / f"{stub_module_name(package)}{PY_SUFFIX}"
                modules.append((output_path, stub_module_header(package) + code, len(package_services)))

        written: list[Path] = []
        for output_path, content, service_count in modules:
            _write(output_path, content)
            logger.info(f"Wrote stubs for {service_count} service(s) to '{output_path}'.")
            written.append(output_path)

        if self.include_file and written:
            include_path = out_dir / self.include_file
            _write(include_path, include_module(path.stem for path in written))
            logger.info(f"Wrote include file '{include_path}'.")
            written.append(include_path)

        return written


def configure(**overrides) -> Builder:
    """Create a builder with default settings, optionally overriding some of them."""
    return Builder(**overrides)


def compile_protos(proto: str | os.PathLike[str]) -> list[Path]:
    """Simple `.proto` compiling. Use `configure` instead if you need more options.

    The include directory is the folder the proto file resides in.
    """
    proto_path = Path(proto)
    return configure().compile([proto_path], [proto_path.parent])


class ServiceGenerator:
    """Accumulates generated stubs of several services and finalizes them into one module.

    Client sections and server sections are collected separately, so that the finalized output groups
    all clients before all servers regardless of the order in which services are discovered.
    """

    def __init__(self, builder: Builder):
        self.builder = builder
        self.clients: list[str] = []
        self.servers: list[str] = []

    def generate(self, service: ProtoService) -> None:
        """Generate the enabled roles for a service and add them to the buffers.

        Raises:
            MalformedTypeReferenceError: If a type reference of the service cannot be resolved.
        """
        svc = TripleService(service, self.builder.non_path_types)
        logger.debug(f"Generating stubs for {svc!r}")

        if self.builder.build_server:
            self.servers.append(
                server.generate(
                    copy.copy(svc),
                    True,
                    self.builder.proto_path,
                    self.builder.compile_well_known_types,
                    self.builder.server_attributes,
                )
            )

        if self.builder.build_client:
            self.clients.append(
                client.generate(
                    copy.copy(svc),
                    True,
                    self.builder.proto_path,
                    self.builder.compile_well_known_types,
                    self.builder.client_attributes,
                )
            )

    def finalize(self) -> str:
        """Validate and format the accumulated sections, then clear the buffers.

        Raises:
            InvalidProgramError: If the accumulated text is not a valid program or cannot be formatted.

        Returns:
            str: The formatted client code followed by the formatted server code, empty if nothing was generated.
        """
        out: list[str] = []

        if self.builder.build_client and self.clients:
            out.append(format_outputs(check_program("\n\n".join(self.clients))))
            self.clients = []

        if self.builder.build_server and self.servers:
            out.append(format_outputs(check_program("\n\n".join(self.servers))))
            self.servers = []

        return check_namespace("\n\n".join(out)) if out else ""


def check_program(raw_input: str) -> str:
    """Make sure generated text is a valid Python program.

    Raises:
        InvalidProgramError: If the text cannot be parsed.
    """
    try:
        ast.parse(raw_input)
    except SyntaxError as e:
        logger.error(f"Generated code is not valid Python (line {e.lineno}): {e.msg}")
        raise InvalidProgramError(f"Generated code is not valid Python (line {e.lineno}): {e.msg}") from e

    return raw_input


def check_namespace(program: str) -> str:
    """Make sure the classes and functions of a generated module do not shadow each other or its imports.

    All services of a package share one module, so e.g. the server of service `Order` and the handler of
    service `OrderServer` would both be named `OrderServer`. Repeated imports are allowed.

    Raises:
        InvalidProgramError: If a top-level class or function name is bound more than once.
    """
    imported: set[str] = set()
    defined: Counter[str] = Counter()
    for node in ast.parse(program).body:
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            imported.update((alias.asname or alias.name).split(".")[0] for alias in node.names)
        elif isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            defined[node.name] += 1

    clashes = sorted(name for name, count in defined.items() if count > 1 or name in imported)
    if clashes:
        logger.error(f"Generated names clash within one module: {', '.join(clashes)}")
        raise InvalidProgramError(f"Generated names clash within one module: {', '.join(clashes)}")

    return program


def format_outputs(raw_input: str) -> str:
    """Formats raw input using ruff.

    Args:
        raw_input (str): The unformatted input.

    Raises:
        InvalidProgramError: If ruff fails to format the input.

    Returns:
        str: The formatted outputs.
    """
    # Write to temporary file for ruff to process
    with tempfile.NamedTemporaryFile(mode="w", suffix=PY_SUFFIX, delete=False, encoding="utf-8") as f:
        temp_path = Path(f.name)
        f.write(raw_input)

    try:
        subprocess.run(
            [sys.executable, "-m", "ruff", "format", "--isolated", "--line-length", str(LINE_LENGTH), str(temp_path)],
            capture_output=True,
            check=True,
        )
        return temp_path.read_text(encoding="utf-8")

    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode("utf-8", errors="replace")
        logger.error(f"Ruff formatting failed: {e}")
        logger.error(f"Stderr: {stderr}")
        raise InvalidProgramError(f"Ruff formatting failed: {stderr.strip()}") from e

    finally:
        temp_path.unlink(missing_ok=True)


def stub_module_name(package: str) -> str:
    """Name of the module holding the stubs of a package, e.g. `greet_v1_triple` for `greet.v1`."""
    return f"{package.replace('.', '_')}{STUB_MODULE_SUFFIX}" if package else STUB_MODULE_SUFFIX


def stub_module_header(package: str) -> str:
    name = f"package `{package}`" if package else "the root package"
    return f'"""Generated triple stubs for {name}. Do not edit."""\n\nfrom __future__ import annotations\n\n'


def include_module(module_names: Iterable[str]) -> str:
    """Source of a module that imports all generated stub modules of a directory."""
    names = sorted(module_names)
    lines = ['"""Generated triple stub modules. Do not edit."""', ""]
    lines.extend(f"from . import {name}" for name in names)
    lines.append("")
    lines.append(f"__all__ = [{', '.join(helper.string_literal(name) for name in names)}]")
    return "\n".join(lines) + "\n"


def _make_dirs(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputTargetError(f"Cannot create output directory '{path}': {e}") from e


def _write(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf8")
    except OSError as e:
        logger.error(f"Cannot write '{path}': {e}")
        raise OutputTargetError(f"Cannot write '{path}': {e}") from e
