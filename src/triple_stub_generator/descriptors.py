"""Reading parsed services from protobuf descriptors.

Parsing `.proto` files is left to protoc (shipped with `grpcio-tools`), which produces a
`FileDescriptorSet`. This module turns the services in that set into `ProtoService` values.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

from google.protobuf import descriptor_pb2

from triple_stub_generator import helper
from triple_stub_generator.errors import ProtocError
from triple_stub_generator.proto_types import Comments, ProtoMethod, ProtoService

logger = logging.getLogger(__name__)

EMPTY_TYPE = ".google.protobuf.Empty"
EMPTY_PYTHON_TYPE = "None"

# Field numbers used in SourceCodeInfo location paths.
_FILE_SERVICE_FIELD = 6
_SERVICE_METHOD_FIELD = 2


def python_module_name(proto_file: str) -> str:
    """The module name protoc's Python generator derives from a proto file path.

    Example: `greet/v1/greet.proto` -> `greet.v1.greet_pb2`
    """
    if proto_file.endswith(".proto"):
        proto_file = proto_file[: -len(".proto")]
    return proto_file.replace("-", "_").replace("/", ".") + helper.PB2_SUFFIX


def build_type_index(files: Iterable[descriptor_pb2.FileDescriptorProto]) -> dict[str, str]:
    """Map fully qualified message names to their Python names.

    Args:
        files (Iterable[FileDescriptorProto]): The parsed files.

    Returns:
        dict[str, str]: E.g. `.greet.v1.Outer.Inner` -> `greet.v1.greet_pb2.Outer.Inner`.
    """
    index: dict[str, str] = {}

    def add_messages(messages, proto_prefix: str, python_prefix: str) -> None:
        for message in messages:
            proto_name = f"{proto_prefix}.{message.name}"
            python_name = f"{python_prefix}.{message.name}"
            index[proto_name] = python_name
            add_messages(message.nested_type, proto_name, python_name)

    for file in files:
        proto_prefix = f".{file.package}" if file.package else ""
        add_messages(file.message_type, proto_prefix, python_module_name(file.name))

    return index


def python_type_name(proto_type: str, type_index: dict[str, str], compile_well_known_types: bool) -> str:
    """The Python name of a message type, as used in the generated stubs.

    Args:
        proto_type (str): The fully qualified message name.
        type_index (dict[str, str]): The index built by `build_type_index`.
        compile_well_known_types (bool): Whether well-known types are generated with the user's messages.

    Returns:
        str: The Python type name.
    """
    if proto_type == EMPTY_TYPE and not compile_well_known_types:
        return EMPTY_PYTHON_TYPE

    python_type = type_index.get(proto_type)
    if python_type is None:
        logger.warning(f"Message type {proto_type} is not part of the descriptor set, using its proto name")
        return proto_type.lstrip(".")

    return python_type


def _comments_at(file: descriptor_pb2.FileDescriptorProto, path: Sequence[int]) -> Comments:
    for location in file.source_code_info.location:
        if list(location.path) == list(path):
            return Comments(
                leading_detached=[detached.splitlines() for detached in location.leading_detached_comments],
                leading=location.leading_comments.splitlines(),
                trailing=location.trailing_comments.splitlines(),
            )

    return Comments()


def services_from_file(
    file: descriptor_pb2.FileDescriptorProto,
    type_index: dict[str, str],
    compile_well_known_types: bool = False,
) -> list[ProtoService]:
    """Build the parsed services of one file, in declaration order."""
    services: list[ProtoService] = []

    for service_index, service in enumerate(file.service):
        service_path = [_FILE_SERVICE_FIELD, service_index]
        methods = [
            ProtoMethod(
                name=helper.sanitize_name(helper.to_snake_case(method.name)),
                proto_name=method.name,
                input_type=python_type_name(method.input_type, type_index, compile_well_known_types),
                output_type=python_type_name(method.output_type, type_index, compile_well_known_types),
                input_proto_type=method.input_type,
                output_proto_type=method.output_type,
                comments=_comments_at(file, [*service_path, _SERVICE_METHOD_FIELD, method_index]),
                options={field.name: value for field, value in method.options.ListFields()},
                client_streaming=method.client_streaming,
                server_streaming=method.server_streaming,
            )
            for method_index, method in enumerate(service.method)
        ]

        services.append(
            ProtoService(
                name=helper.to_upper_camel(service.name),
                proto_name=service.name,
                package=file.package,
                methods=methods,
                comments=_comments_at(file, service_path),
                options={field.name: value for field, value in service.options.ListFields()},
            )
        )

    return services


def services_from_descriptor_set(
    descriptor_set: descriptor_pb2.FileDescriptorSet,
    file_names: Iterable[str] | None = None,
    compile_well_known_types: bool = False,
) -> list[ProtoService]:
    """Build the parsed services of a descriptor set.

    Args:
        descriptor_set (FileDescriptorSet): The descriptor set, including the imported files.
        file_names (Iterable[str] | None, optional): Only generate services of these files. Defaults to all files.
        compile_well_known_types (bool, optional): Whether well-known types are generated with the user's messages.

    Returns:
        list[ProtoService]: The services, in file and declaration order.
    """
    type_index = build_type_index(descriptor_set.file)
    wanted = set(file_names) if file_names is not None else None

    services: list[ProtoService] = []
    for file in descriptor_set.file:
        if wanted is not None and file.name not in wanted:
            continue
        services.extend(services_from_file(file, type_index, compile_well_known_types))

    return services


def proto_file_name(proto: Path, includes: Sequence[Path]) -> str:
    """The name protoc gives a proto file: its path relative to the first include directory that contains it."""
    resolved = proto.resolve()
    for include in includes:
        try:
            return resolved.relative_to(include.resolve()).as_posix()
        except ValueError:
            continue

    return proto.name


def run_protoc(
    protos: Sequence[Path],
    includes: Sequence[Path],
    descriptor_set_out: Path,
    python_out: Path | None = None,
    protoc_args: Sequence[str] = (),
) -> descriptor_pb2.FileDescriptorSet:
    """Parse proto files with protoc and read the resulting descriptor set.

    Args:
        protos (Sequence[Path]): The proto files to parse.
        includes (Sequence[Path]): The include directories.
        descriptor_set_out (Path): Where protoc writes the descriptor set.
        python_out (Path | None, optional): If set, also generate the `*_pb2` message modules there.
        protoc_args (Sequence[str], optional): Additional arguments, passed to protoc as they are.

    Raises:
        ProtocError: If protoc fails.

    Returns:
        FileDescriptorSet: The parsed files, including their imports.
    """
    cmd = [
        sys.executable,
        "-m",
        "grpc_tools.protoc",
        *[f"-I{include}" for include in includes],
        f"--descriptor_set_out={descriptor_set_out}",
        "--include_imports",
        "--include_source_info",
    ]
    if python_out is not None:
        cmd.append(f"--python_out={python_out}")
    cmd.extend(protoc_args)
    cmd.extend(str(proto) for proto in protos)

    logger.info(f"Running protoc on {len(protos)} file(s)")
    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        logger.error(f"protoc failed:\n{result.stderr}")
        raise ProtocError(f"protoc exited with code {result.returncode}: {result.stderr.strip()}")

    return load_descriptor_set(descriptor_set_out)


def load_descriptor_set(path: Path) -> descriptor_pb2.FileDescriptorSet:
    """Read a serialized `FileDescriptorSet`, as written by `protoc --descriptor_set_out`."""
    descriptor_set = descriptor_pb2.FileDescriptorSet()
    descriptor_set.ParseFromString(path.read_bytes())
    return descriptor_set
