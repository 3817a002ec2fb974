"""Generation of server stubs.

For a service `Greeter`, the generated section holds:

- `Greeter`, an abstract handler class that users implement, one coroutine method per RPC,
- `GreeterServer`, which routes incoming requests by RPC path to the transport server of the `triple`
  runtime, which in turn calls the handler,
- `register_greeter_server`, which registers a handler in a service registry owned by the runtime.
"""

from __future__ import annotations

import logging

from triple_stub_generator import helper
from triple_stub_generator.attributes import Attributes
from triple_stub_generator.service import Service
from triple_stub_generator.stub_dto import MethodInfo, ServiceGenerationContext, StreamingShape, codec_reference

logger = logging.getLogger(__name__)

SERVER_IMPORTS = [
    "import abc",
    "from collections.abc import AsyncIterator",
    "from triple.http import HttpRequest, HttpResponse",
    "from triple.invocation import Request, Response",
    "from triple.registry import ServiceRegistry",
    "from triple.server import Decoding, TripleServer, unimplemented",
]


def generate(
    service: Service,
    emit_package: bool,
    proto_path: str,
    compile_well_known_types: bool,
    attributes: Attributes,
) -> str:
    """Generate the server section of a service.

    Args:
        service (Service): The service to generate a server for.
        emit_package (bool): Whether the package is part of the RPC paths.
        proto_path (str): Namespace prefix under which generated message types are reachable.
        compile_well_known_types (bool): Whether well-known types are generated with the user's messages.
        attributes (Attributes): The server attributes.

    Raises:
        MalformedTypeReferenceError: If a type reference cannot be resolved.

    Returns:
        str: The generated source text.
    """
    context = ServiceGenerationContext.create(
        service, "Server", emit_package, proto_path, compile_well_known_types, attributes
    )
    handler_name = service.name

    codec_imports = sorted({codec_reference(method.codec_path)[0] for method in context.methods} - {""})

    lines: list[str] = ["# Generated server implementations."]
    lines.extend(context.mod_attributes)
    lines.extend(codec_imports)
    lines.extend(SERVER_IMPORTS)
    lines.extend(context.message_imports())
    lines.extend(["", ""])

    lines.extend(generate_handler(context, handler_name))
    lines.extend(["", ""])
    lines.extend(generate_server(context, handler_name))
    lines.extend(["", ""])
    lines.extend(generate_register(context, service.name, handler_name))

    logger.debug(f"Generated {context.class_name} with {len(context.methods)} method(s)")

    return "\n".join(lines) + "\n"


def generate_handler(context: ServiceGenerationContext, handler_name: str) -> list[str]:
    """Generate the abstract class that users implement to serve the service."""
    lines = [helper.new_class_declaration(handler_name, ["abc.ABC"])]

    body: list[str] = list(context.docstring)
    for method in context.methods:
        if body:
            body.append("")
        body.append(helper.new_decorator("abc.abstractmethod"))
        body.extend(generate_handler_method(method))

    lines.extend(helper.indent(body or ["pass"]))
    return lines


def generate_handler_method(method: MethodInfo) -> list[str]:
    request = method.request_type
    response = method.response_type

    match method.shape:
        case StreamingShape.UNARY:
            request_type = helper.new_group("Request", [request])
            response_type = helper.new_group("Response", [response])
        case StreamingShape.SERVER_STREAMING:
            request_type = helper.new_group("Request", [request])
            response_type = helper.new_group("Response", [helper.new_group("AsyncIterator", [response])])
        case StreamingShape.CLIENT_STREAMING:
            request_type = helper.new_group("Request", [helper.new_group("Decoding", [request])])
            response_type = helper.new_group("Response", [response])
        case StreamingShape.BIDI_STREAMING:
            request_type = helper.new_group("Request", [helper.new_group("Decoding", [request])])
            response_type = helper.new_group("Response", [helper.new_group("AsyncIterator", [response])])

    lines = [helper.new_function(method.name, ["self", f"request: {request_type}"], response_type, is_async=True)]
    lines.extend(helper.indent(method.docstring or ["..."]))
    return lines


def generate_server(context: ServiceGenerationContext, handler_name: str) -> list[str]:
    """Generate the class that routes requests to a handler."""
    lines: list[str] = []
    lines.extend(context.struct_attributes)
    lines.append(helper.new_class_declaration(context.class_name))

    body: list[str] = []
    if context.docstring:
        body.extend(context.docstring)
        body.append("")

    body.append(f"SERVICE_NAME = {helper.string_literal(context.path)}")
    body.append("")
    body.append(helper.new_function("__init__", ["self", f"inner: {handler_name}"]))
    body.append(helper.INDENT + "self._inner = inner")
    if context.methods:
        body.append(helper.INDENT + "self._routes = {")
        for method in context.methods:
            body.append(helper.INDENT * 2 + f"{helper.string_literal(method.path)}: self.{method.name},")
        body.append(helper.INDENT + "}")
    else:
        body.append(helper.INDENT + "self._routes = {}")

    body.append("")
    body.append(helper.new_function("__call__", ["self", "request: HttpRequest"], "HttpResponse", is_async=True))
    body.extend(
        helper.indent(
            [
                "handler = self._routes.get(request.path)",
                "if handler is None:",
                helper.INDENT + "return unimplemented(request)",
                "return await handler(request)",
            ]
        )
    )

    for method in context.methods:
        body.append("")
        body.extend(generate_route(method))

    lines.extend(helper.indent(body))
    return lines


def generate_route(method: MethodInfo) -> list[str]:
    """Generate the method that serves one RPC through the transport server.

    The server codec encodes responses and decodes requests, so the type order is the reverse of the client's.
    """
    _, codec_name = codec_reference(method.codec_path)

    lines = [helper.new_function(method.name, ["self", "request: HttpRequest"], "HttpResponse", is_async=True)]
    body = [
        *method.docstring,
        f"codec = {codec_name}({method.response_type}, {method.request_type})",
        "server = TripleServer(codec)",
        f"return await server.{method.shape.transport_call}(self._inner.{method.name}, request)",
    ]
    lines.extend(helper.indent(body))
    return lines


def generate_register(context: ServiceGenerationContext, service_name: str, handler_name: str) -> list[str]:
    """Generate the function that registers a handler under the service name."""
    function_name = f"register_{helper.naive_snake_case(service_name)}_server"

    parameters = ["registry: ServiceRegistry", f"handler: {handler_name}"]
    lines = [helper.new_function(function_name, parameters, context.class_name)]
    lines.extend(
        helper.indent(
            [
                f'"""Register a `{handler_name}` implementation under `{context.path}`."""',
                f"server = {context.class_name}(handler)",
                f"registry.register({context.class_name}.SERVICE_NAME, server)",
                "return server",
            ]
        )
    )
    return lines
