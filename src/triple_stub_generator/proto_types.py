"""Service definitions as they come out of the protobuf parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

WELL_KNOWN_TYPE_PREFIX = ".google.protobuf"


@dataclass
class Comments:
    """Comments attached to a service or method in the `.proto` source."""

    leading_detached: list[list[str]] = field(default_factory=list)
    leading: list[str] = field(default_factory=list)
    trailing: list[str] = field(default_factory=list)


@dataclass
class ProtoMethod:
    """A parsed RPC method.

    Attributes:
        name: The Python name of the method (snake_case).
        proto_name: The method name as declared in the `.proto` file.
        comments: Comments attached to the method.
        input_type: The Python type name of the request message.
        output_type: The Python type name of the response message.
        input_proto_type: The fully qualified protobuf name of the request message.
        output_proto_type: The fully qualified protobuf name of the response message.
        options: Method options, passed through untouched.
        client_streaming: Whether the client sends a stream of requests.
        server_streaming: Whether the server sends a stream of responses.
    """

    name: str
    proto_name: str
    input_type: str
    output_type: str
    input_proto_type: str
    output_proto_type: str
    comments: Comments = field(default_factory=Comments)
    options: dict[str, Any] = field(default_factory=dict)
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass
class ProtoService:
    """A parsed RPC service.

    Attributes:
        name: The display name of the service (UpperCamel).
        proto_name: The service name as declared in the `.proto` file.
        package: The protobuf package, empty when there is none.
        methods: The methods of the service, in declaration order.
        comments: Comments attached to the service.
        options: Service options, passed through untouched.
    """

    name: str
    proto_name: str
    package: str
    methods: list[ProtoMethod] = field(default_factory=list)
    comments: Comments = field(default_factory=Comments)
    options: dict[str, Any] = field(default_factory=dict)
