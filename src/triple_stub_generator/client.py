"""Generation of client stubs.

For a service `Greeter`, the generated section holds a `GreeterClient` class with one coroutine method
per RPC, which forwards the request to the transport client of the `triple` runtime.
"""

from __future__ import annotations

import logging

from triple_stub_generator import helper
from triple_stub_generator.attributes import Attributes
from triple_stub_generator.service import Service
from triple_stub_generator.stub_dto import MethodInfo, ServiceGenerationContext, StreamingShape, codec_reference

logger = logging.getLogger(__name__)

CODEC_PATH = "triple.codec.prost.ProstCodec"

# Members of the generated client class besides the RPC methods.
CLIENT_MEMBERS = ("with_uri",)

CLIENT_IMPORTS = [
    "from collections.abc import AsyncIterable",
    "from triple.client import TripleClient",
    "from triple.invocation import Request, Response",
    "from triple.server import Decoding",
]


def generate(
    service: Service,
    emit_package: bool,
    proto_path: str,
    compile_well_known_types: bool,
    attributes: Attributes,
) -> str:
    """Generate the client section of a service.

    Args:
        service (Service): The service to generate a client for.
        emit_package (bool): Whether the package is part of the RPC paths.
        proto_path (str): Namespace prefix under which generated message types are reachable.
        compile_well_known_types (bool): Whether well-known types are generated with the user's messages.
        attributes (Attributes): The client attributes.

    Raises:
        MalformedTypeReferenceError: If a type reference cannot be resolved.

    Returns:
        str: The generated source text.
    """
    context = ServiceGenerationContext.create(
        service, "Client", emit_package, proto_path, compile_well_known_types, attributes, CLIENT_MEMBERS
    )
    codec_import, codec_name = codec_reference(CODEC_PATH)

    lines: list[str] = ["# Generated client implementations."]
    lines.extend(context.mod_attributes)
    lines.append(codec_import)
    lines.extend(CLIENT_IMPORTS)
    lines.extend(context.message_imports())
    lines.extend(["", ""])

    lines.extend(context.struct_attributes)
    lines.append(helper.new_class_declaration(context.class_name))

    body: list[str] = []
    if context.docstring:
        body.extend(context.docstring)
        body.append("")

    body.extend(
        [
            helper.new_function("__init__", ["self"]),
            helper.INDENT + "self._inner = TripleClient()",
            helper.INDENT + 'self._uri = ""',
            "",
            helper.new_function("with_uri", ["self", "uri: str"], context.class_name),
            helper.INDENT + "self._uri = uri",
            helper.INDENT + "self._inner = self._inner.with_host(uri)",
            helper.INDENT + "return self",
        ]
    )
    body.extend(generate_methods(context, codec_name))

    lines.extend(helper.indent(body))
    logger.debug(f"Generated {context.class_name} with {len(context.methods)} method(s)")

    return "\n".join(lines) + "\n"


def generate_methods(context: ServiceGenerationContext, codec_name: str) -> list[str]:
    """Generate one method per RPC, in declaration order."""
    lines: list[str] = []

    for method in context.methods:
        lines.append("")
        match method.shape:
            case StreamingShape.UNARY:
                lines.extend(generate_unary(method, codec_name))
            case StreamingShape.SERVER_STREAMING:
                lines.extend(generate_server_streaming(method, codec_name))
            case StreamingShape.CLIENT_STREAMING:
                lines.extend(generate_client_streaming(method, codec_name))
            case StreamingShape.BIDI_STREAMING:
                lines.extend(generate_streaming(method, codec_name))

    return lines


def _method(method: MethodInfo, codec_name: str, request_type: str, response_type: str) -> list[str]:
    lines = [
        helper.new_function(method.name, ["self", f"request: {request_type}"], response_type, is_async=True),
    ]
    body = [
        *method.docstring,
        f"codec = {codec_name}({method.request_type}, {method.response_type})",
        f"path = {helper.string_literal(method.path)}",
        f"return await self._inner.{method.shape.transport_call}(request, codec, path)",
    ]
    lines.extend(helper.indent(body))
    return lines


def generate_unary(method: MethodInfo, codec_name: str) -> list[str]:
    return _method(
        method,
        codec_name,
        helper.new_group("Request", [method.request_type]),
        helper.new_group("Response", [method.response_type]),
    )


def generate_server_streaming(method: MethodInfo, codec_name: str) -> list[str]:
    return _method(
        method,
        codec_name,
        helper.new_group("Request", [method.request_type]),
        helper.new_group("Response", [helper.new_group("Decoding", [method.response_type])]),
    )


def generate_client_streaming(method: MethodInfo, codec_name: str) -> list[str]:
    return _method(
        method,
        codec_name,
        helper.new_group("AsyncIterable", [method.request_type]),
        helper.new_group("Response", [method.response_type]),
    )


def generate_streaming(method: MethodInfo, codec_name: str) -> list[str]:
    return _method(
        method,
        codec_name,
        helper.new_group("AsyncIterable", [method.request_type]),
        helper.new_group("Response", [helper.new_group("Decoding", [method.response_type])]),
    )
