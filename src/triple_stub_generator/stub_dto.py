"""Data transfer objects shared by the client and server emitters."""

from __future__ import annotations

import ast
import enum
import logging
from collections.abc import Collection
from dataclasses import dataclass, replace

from triple_stub_generator import helper
from triple_stub_generator.attributes import Attributes
from triple_stub_generator.resolver import parse_path
from triple_stub_generator.service import Method, Service

logger = logging.getLogger(__name__)


class StreamingShape(enum.Enum):
    """The calling convention of an RPC method."""

    UNARY = "unary"
    SERVER_STREAMING = "server_streaming"
    CLIENT_STREAMING = "client_streaming"
    BIDI_STREAMING = "bidi_streaming"

    @classmethod
    def of(cls, client_streaming: bool, server_streaming: bool) -> StreamingShape:
        """Select the shape for a combination of streaming flags."""
        return _SHAPES[(bool(client_streaming), bool(server_streaming))]

    @property
    def transport_call(self) -> str:
        """Name of the transport operation that carries out calls of this shape."""
        return self.value


_SHAPES = {
    (False, False): StreamingShape.UNARY,
    (False, True): StreamingShape.SERVER_STREAMING,
    (True, False): StreamingShape.CLIENT_STREAMING,
    (True, True): StreamingShape.BIDI_STREAMING,
}


@dataclass
class MethodInfo:
    """Everything an emitter needs to generate one RPC method.

    Attributes:
        name: The name of the generated method.
        path: The RPC path, e.g. `/greet.v1.Greeter/SayHello`.
        shape: The calling convention.
        request: The resolved request type reference.
        response: The resolved response type reference.
        codec_path: The dotted path of the codec declared by the method.
        docstring: Docstring lines derived from the method comments.
    """

    name: str
    path: str
    shape: StreamingShape
    request: ast.expr
    response: ast.expr
    codec_path: str
    docstring: list[str]

    @classmethod
    def create(
        cls,
        service: Service,
        method: Method,
        package: str,
        proto_path: str,
        compile_well_known_types: bool,
    ) -> MethodInfo:
        """Build the method information shared by both roles.

        Args:
            service: The service the method belongs to.
            method: The method.
            package: The package used for the RPC path, empty if it is not emitted.
            proto_path: Namespace prefix under which generated message types are reachable.
            compile_well_known_types: Whether well-known types are generated with the user's messages.

        Raises:
            MalformedTypeReferenceError: If a type reference cannot be resolved.

        Returns:
            A fully initialized MethodInfo
        """
        request, response = method.request_response_name(proto_path, compile_well_known_types)

        return cls(
            name=method.name,
            path=helper.rpc_path(package, service.identifier, method.identifier),
            shape=StreamingShape.of(method.client_streaming, method.server_streaming),
            request=request,
            response=response,
            codec_path=method.codec_path,
            docstring=helper.generate_doc_comments(method.comment()),
        )

    @property
    def request_type(self) -> str:
        return helper.type_reference(self.request)

    @property
    def response_type(self) -> str:
        return helper.type_reference(self.response)


@dataclass
class ServiceGenerationContext:
    """Context object containing all metadata needed to generate one service for one role.

    Attributes:
        class_name: The name of the generated stub class, e.g. `GreeterClient`.
        package: The package, empty if it is not emitted.
        path: The fully qualified service name, e.g. `greet.v1.Greeter`.
        methods: The methods, in declaration order.
        docstring: Docstring lines derived from the service comments.
        mod_attributes: Fragments spliced in front of the generated section.
        struct_attributes: Fragments spliced in front of the generated stub class.
    """

    class_name: str
    package: str
    path: str
    methods: list[MethodInfo]
    docstring: list[str]
    mod_attributes: list[str]
    struct_attributes: list[str]

    @classmethod
    def create(
        cls,
        service: Service,
        suffix: str,
        emit_package: bool,
        proto_path: str,
        compile_well_known_types: bool,
        attributes: Attributes,
        reserved: Collection[str] = (),
    ) -> ServiceGenerationContext:
        """Factory method to create the context of a service.

        Method names are made unique within the generated class: a name that is reserved or already
        taken by an earlier method gets trailing underscores until it is free.

        Args:
            service: The service.
            suffix: Appended to the service name to name the stub class, `Client` or `Server`.
            emit_package: Whether the package is part of the RPC paths.
            proto_path: Namespace prefix under which generated message types are reachable.
            compile_well_known_types: Whether well-known types are generated with the user's messages.
            attributes: The attributes of the role.
            reserved: Member names of the generated class that methods must not take.

        Returns:
            A fully initialized ServiceGenerationContext
        """
        package = service.package if emit_package else ""
        path = helper.service_path(package, service.identifier)

        taken = set(reserved)
        methods: list[MethodInfo] = []
        for method in service.methods():
            info = MethodInfo.create(service, method, package, proto_path, compile_well_known_types)
            name = info.name
            while name in taken:
                name += "_"
            if name != info.name:
                logger.warning(f"Method {info.path} is generated as `{name}`, `{info.name}` is already taken")
                info = replace(info, name=name)
            taken.add(name)
            methods.append(info)

        return cls(
            class_name=f"{service.name}{suffix}",
            package=package,
            path=path,
            methods=methods,
            docstring=helper.generate_doc_comments(service.comment()),
            mod_attributes=attributes.for_mod(package),
            struct_attributes=attributes.for_struct(path),
        )

    def message_imports(self) -> list[str]:
        """Imports of the message modules referenced by the method signatures."""
        references = [ref for method in self.methods for ref in (method.request, method.response)]
        return helper.message_module_imports(references)


def codec_reference(codec_path: str) -> tuple[str, str]:
    """Parse a dotted codec path.

    Args:
        codec_path (str): The dotted path of the codec class, e.g. `triple.codec.prost.ProstCodec`.

    Returns:
        tuple[str, str]: The import statement for the codec module and the codec reference.
    """
    reference = helper.type_reference(parse_path(codec_path))
    module, _, _ = reference.rpartition(".")
    return (f"import {module}" if module else ""), reference
