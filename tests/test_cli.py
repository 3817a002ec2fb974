"""CLI tests for triple-stub-generator.

Tests cover:
- Argument parsing and validation
- Generation from a descriptor set
- Generation from .proto files through protoc
- Error reporting through the exit code
"""

from __future__ import annotations

import ast

import pytest

from triple_stub_generator.builder import compile_protos, configure
from triple_stub_generator.cli import builder_from_args, main, setup_parser
from triple_stub_generator.errors import ProtocError

GREET_PROTO = """syntax = "proto3";

package greet.v1;

import "google/protobuf/empty.proto";

// The greeting service.
service Greeter {
  // Sends a greeting.
  rpc SayHello(HelloRequest) returns (HelloReply);
  rpc LotsOfReplies(HelloRequest) returns (stream HelloReply);
  rpc LotsOfGreetings(stream HelloRequest) returns (HelloReply);
  rpc BidiHello(stream HelloRequest) returns (stream HelloReply);
  rpc Ping(google.protobuf.Empty) returns (google.protobuf.Empty);
}

message HelloRequest {
  string name = 1;
}

message HelloReply {
  string message = 1;
}
"""


@pytest.fixture
def proto_dir(tmp_path):
    """Create an include directory holding `greet/v1/greet.proto`."""
    include = tmp_path / "protos"
    proto = include / "greet" / "v1" / "greet.proto"
    proto.parent.mkdir(parents=True)
    proto.write_text(GREET_PROTO)
    return include


@pytest.fixture
def descriptor_set_file(tmp_path, greet_descriptor_set):
    path = tmp_path / "greet.pb"
    path.write_bytes(greet_descriptor_set.SerializeToString())
    return path


class TestParser:
    def test_defaults(self):
        args = setup_parser().parse_args(["-p", "greet.proto"])
        assert args.paths == ["greet.proto"]
        assert args.include_paths == []
        assert args.proto_path == "super"
        assert args.build_client
        assert args.build_server
        assert not args.compile_well_known_types
        assert args.protoc_args == []

    def test_proto_path_help(self):
        action = next(action for action in setup_parser()._actions if "--proto-path" in action.option_strings)
        assert "*_pb2" in action.help
        assert "should be overridden" in action.help

    def test_builder_from_args(self, tmp_path):
        args = setup_parser().parse_args(
            [
                "-p",
                "greet.proto",
                "-o",
                str(tmp_path),
                "--proto-path",
                "myapp.gen",
                "--no-server",
                "--compile-well-known-types",
                "--protoc-arg",
                "--experimental_allow_proto3_optional",
                "--include-file",
                "__init__.py",
            ]
        )
        builder = builder_from_args(args)
        assert builder.output_dir == tmp_path
        assert builder.proto_path == "myapp.gen"
        assert builder.build_client
        assert not builder.build_server
        assert builder.compile_well_known_types
        assert builder.protoc_args == ("--experimental_allow_proto3_optional",)
        assert builder.include_file == "__init__.py"

    def test_requires_input(self):
        with pytest.raises(SystemExit):
            main([])


class TestDescriptorSetInput:
    def test_generates_stubs(self, tmp_path, descriptor_set_file):
        out = tmp_path / "out"
        assert main(["--descriptor-set", str(descriptor_set_file), "-o", str(out)]) == 0
        ast.parse((out / "greet_v1_triple.py").read_text())

    def test_file_filter(self, tmp_path, descriptor_set_file):
        out = tmp_path / "out"
        args = ["--descriptor-set", str(descriptor_set_file), "-p", "google/protobuf/empty.proto", "-o", str(out)]
        assert main(args) == 0
        assert not (out / "greet_v1_triple.py").exists()

    def test_output_dir_from_environment(self, tmp_path, descriptor_set_file, monkeypatch):
        monkeypatch.setenv("OUT_DIR", str(tmp_path / "env"))
        assert main(["--descriptor-set", str(descriptor_set_file)]) == 0
        assert (tmp_path / "env" / "greet_v1_triple.py").exists()

    def test_missing_output_dir(self, descriptor_set_file, monkeypatch):
        monkeypatch.delenv("OUT_DIR", raising=False)
        assert main(["--descriptor-set", str(descriptor_set_file)]) == 1


class TestProtoInput:
    def test_generates_stubs_and_messages(self, tmp_path, proto_dir):
        out = tmp_path / "out"
        proto = proto_dir / "greet" / "v1" / "greet.proto"
        assert main(["-p", str(proto), "-I", str(proto_dir), "-o", str(out), "--proto-path", "gen"]) == 0

        assert (out / "greet" / "v1" / "greet_pb2.py").exists()
        code = (out / "greet_v1_triple.py").read_text()
        tree = ast.parse(code)

        client_class = next(n for n in tree.body if isinstance(n, ast.ClassDef) and n.name == "GreeterClient")
        assert ast.get_docstring(client_class) == "The greeting service."
        assert "import gen.greet.v1.greet_pb2" in code
        assert '"/greet.v1.Greeter/SayHello"' in code
        assert "async def ping(self, request: Request[None]) -> Response[None]:" in code

    def test_compile_protos(self, tmp_path, proto_dir, monkeypatch):
        monkeypatch.setenv("OUT_DIR", str(tmp_path / "out"))
        written = compile_protos(proto_dir / "greet" / "v1" / "greet.proto")
        assert written == [tmp_path / "out" / "greet_v1_triple.py"]
        assert (tmp_path / "out" / "greet_pb2.py").exists()

    def test_protoc_failure(self, tmp_path):
        broken = tmp_path / "broken.proto"
        broken.write_text('syntax = "proto3";\nservice {\n')
        assert main(["-p", str(broken), "-o", str(tmp_path / "out")]) == 1

        with pytest.raises(ProtocError) as exc_info:
            configure().with_output_dir(tmp_path / "out").compile([broken], [tmp_path])
        assert exc_info.value.stage == "parsing"
