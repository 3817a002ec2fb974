"""Pytest configuration and fixtures for triple stub generator tests."""

from __future__ import annotations

import ast
import sys
import types

import pytest
from google.protobuf import descriptor_pb2

from triple_stub_generator.attributes import Attributes
from triple_stub_generator.helper import to_snake_case
from triple_stub_generator.proto_types import Comments, ProtoMethod, ProtoService

# Method names of the greeter fixture, one per streaming shape, in declaration order
GREETER_METHODS = ["say_hello", "lots_of_replies", "lots_of_greetings", "bidi_hello"]


def make_method(
    name: str,
    proto_name: str,
    client_streaming: bool = False,
    server_streaming: bool = False,
    input_type: str = "HelloRequest",
    output_type: str = "HelloReply",
    comment: str | None = None,
) -> ProtoMethod:
    """Create a parsed method of the `greet.v1` package."""
    return ProtoMethod(
        name=name,
        proto_name=proto_name,
        input_type=input_type,
        output_type=output_type,
        input_proto_type=f".greet.v1.{input_type}",
        output_proto_type=f".greet.v1.{output_type}",
        comments=Comments(leading=[f" {comment}"] if comment else []),
        client_streaming=client_streaming,
        server_streaming=server_streaming,
    )


def make_greeter(package: str = "greet.v1") -> ProtoService:
    """Create a service with one method of every streaming shape."""
    return ProtoService(
        name="Greeter",
        proto_name="Greeter",
        package=package,
        methods=[
            make_method("say_hello", "SayHello", comment="Sends a greeting."),
            make_method("lots_of_replies", "LotsOfReplies", server_streaming=True),
            make_method("lots_of_greetings", "LotsOfGreetings", client_streaming=True),
            make_method("bidi_hello", "BidiHello", client_streaming=True, server_streaming=True),
        ],
        comments=Comments(leading=[" The greeting service."]),
    )


def make_service(name: str, *method_names: str) -> ProtoService:
    """Create a service without a package whose unary methods take and return `None`."""
    return ProtoService(
        name=name,
        proto_name=name,
        package="",
        methods=[
            make_method(to_snake_case(method), method, input_type="None", output_type="None")
            for method in method_names
        ],
    )


@pytest.fixture
def greeter() -> ProtoService:
    """Provide the greeter service of the `greet.v1` package."""
    return make_greeter()


@pytest.fixture
def ping() -> ProtoService:
    """Provide a service without a package."""
    return ProtoService(
        name="Ping",
        proto_name="Ping",
        package="",
        methods=[make_method("method", "Method")],
    )


@pytest.fixture
def no_attributes() -> Attributes:
    return Attributes()


@pytest.fixture
def greet_descriptor_set() -> descriptor_pb2.FileDescriptorSet:
    """Provide a descriptor set as protoc writes it for `greet/v1/greet.proto`, including its imports."""
    empty_file = descriptor_pb2.FileDescriptorProto(name="google/protobuf/empty.proto", package="google.protobuf")
    empty_file.message_type.add(name="Empty")

    greet_file = descriptor_pb2.FileDescriptorProto(
        name="greet/v1/greet.proto",
        package="greet.v1",
        dependency=["google/protobuf/empty.proto"],
    )
    request = greet_file.message_type.add(name="HelloRequest")
    request.nested_type.add(name="Inner")
    greet_file.message_type.add(name="HelloReply")

    service = greet_file.service.add(name="Greeter")
    service.method.add(name="SayHello", input_type=".greet.v1.HelloRequest", output_type=".greet.v1.HelloReply")
    service.method.add(
        name="LotsOfReplies",
        input_type=".greet.v1.HelloRequest",
        output_type=".greet.v1.HelloReply",
        server_streaming=True,
    )
    service.method.add(
        name="Ping",
        input_type=".google.protobuf.Empty",
        output_type=".greet.v1.HelloRequest.Inner",
    )

    greet_file.source_code_info.location.add(path=[6, 0], leading_comments=" The greeting service.\n")
    greet_file.source_code_info.location.add(path=[6, 0, 2, 0], leading_comments=" Sends a greeting.\n")

    return descriptor_pb2.FileDescriptorSet(file=[empty_file, greet_file])


# Helper functions for tests
def find_class(tree: ast.Module, name: str) -> ast.ClassDef:
    """Find a top-level class definition by name."""
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name == name:
            return node
    raise AssertionError(f"class {name} not found")


def async_methods(class_def: ast.ClassDef) -> list[ast.AsyncFunctionDef]:
    """The coroutine methods of a class, excluding dunder methods, in definition order."""
    return [
        node
        for node in class_def.body
        if isinstance(node, ast.AsyncFunctionDef) and not node.name.startswith("__")
    ]


def signature(function: ast.AsyncFunctionDef) -> tuple[str, str]:
    """The annotation of the `request` parameter and the return annotation of a method."""
    request = function.args.args[1]
    assert request.arg == "request"
    assert request.annotation is not None and function.returns is not None
    return ast.unparse(request.annotation), ast.unparse(function.returns)


def assigned_value(function: ast.AsyncFunctionDef, target: str) -> ast.expr:
    """The value assigned to a local variable in a method body."""
    for node in function.body:
        if isinstance(node, ast.Assign) and ast.unparse(node.targets[0]) == target:
            return node.value
    raise AssertionError(f"{target} is not assigned in {function.name}")


def transport_call(function: ast.AsyncFunctionDef) -> str:
    """The name of the transport operation awaited by the last statement of a method."""
    statement = function.body[-1]
    assert isinstance(statement, ast.Return)
    assert isinstance(statement.value, ast.Await)
    call = statement.value.value
    assert isinstance(call, ast.Call) and isinstance(call.func, ast.Attribute)
    return call.func.attr


# In-memory stand-ins for the `triple` runtime that generated modules import
class FakeTripleClient:
    def __init__(self):
        self.host = ""

    def with_host(self, uri):
        self.host = uri
        return self

    async def unary(self, request, codec, path):
        return ("unary", path, request)

    async def server_streaming(self, request, codec, path):
        return ("server_streaming", path, request)

    async def client_streaming(self, request, codec, path):
        return ("client_streaming", path, request)

    async def bidi_streaming(self, request, codec, path):
        return ("bidi_streaming", path, request)


class FakeTripleServer:
    def __init__(self, codec):
        self.codec = codec

    async def unary(self, handler, request):
        return await handler(request)

    server_streaming = client_streaming = bidi_streaming = unary


class FakeCodec:
    def __init__(self, encode, decode):
        self.types = (encode, decode)


class FakeRegistry:
    def __init__(self):
        self.services = {}

    def register(self, name, service):
        self.services[name] = service


class Generic:
    def __class_getitem__(cls, item):
        return cls


@pytest.fixture
def triple_runtime(monkeypatch) -> dict[str, types.ModuleType]:
    """Install fake `triple` modules, so that generated code can be executed."""
    modules = {
        name: types.ModuleType(name)
        for name in (
            "triple",
            "triple.client",
            "triple.invocation",
            "triple.server",
            "triple.http",
            "triple.registry",
            "triple.codec",
            "triple.codec.prost",
            "triple.codec.serde_codec",
        )
    }
    modules["triple.client"].TripleClient = FakeTripleClient
    modules["triple.invocation"].Request = Generic
    modules["triple.invocation"].Response = Generic
    modules["triple.server"].Decoding = Generic
    modules["triple.server"].TripleServer = FakeTripleServer
    modules["triple.server"].unimplemented = lambda request: ("unimplemented", request.path)
    modules["triple.http"].HttpRequest = types.SimpleNamespace
    modules["triple.http"].HttpResponse = object
    modules["triple.registry"].ServiceRegistry = FakeRegistry
    modules["triple.codec.prost"].ProstCodec = FakeCodec
    modules["triple.codec.serde_codec"].SerdeCodec = FakeCodec

    for name, module in modules.items():
        parent, _, child = name.rpartition(".")
        if parent:
            setattr(modules[parent], child, module)
        monkeypatch.setitem(sys.modules, name, module)

    return modules


def load_generated(code: str) -> dict:
    """Execute generated code and return its namespace."""
    namespace: dict = {}
    exec(compile("from __future__ import annotations\n" + code, "<generated>", "exec"), namespace)
    return namespace
