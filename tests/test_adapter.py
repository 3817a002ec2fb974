"""Tests for the adapter from parsed services to the emitter view."""

from __future__ import annotations

import ast
import copy

from conftest import GREETER_METHODS, make_method

from triple_stub_generator.adapter import CODEC_PATH, TripleService


def test_service_identifiers(greeter):
    svc = TripleService(greeter)
    assert svc.name == "Greeter"
    assert svc.identifier == "Greeter"
    assert svc.package == "greet.v1"
    assert svc.comment() == [" The greeting service."]
    assert repr(svc) == "TripleService(greet.v1.Greeter)"


def test_repr_without_package(ping):
    assert repr(TripleService(ping)) == "TripleService(Ping)"


def test_method_identifiers(greeter):
    methods = TripleService(greeter).methods()
    assert [m.name for m in methods] == GREETER_METHODS
    assert [m.identifier for m in methods] == ["SayHello", "LotsOfReplies", "LotsOfGreetings", "BidiHello"]
    assert [(m.client_streaming, m.server_streaming) for m in methods] == [
        (False, False),
        (False, True),
        (True, False),
        (True, True),
    ]
    assert all(m.codec_path == CODEC_PATH for m in methods)


def test_request_response_name(greeter):
    method = TripleService(greeter).methods()[0]
    request, response = method.request_response_name("super", False)
    assert ast.unparse(request) == "super.HelloRequest"
    assert ast.unparse(response) == "super.HelloReply"


def test_clone_is_independent(greeter):
    svc = TripleService(greeter)
    clone = svc.clone()

    greeter.methods.append(make_method("extra", "Extra"))
    greeter.comments.leading.append(" More.")

    assert len(svc.methods()) == 5
    assert len(clone.methods()) == 4
    assert clone.comment() == [" The greeting service."]


def test_copy_clones(greeter):
    svc = TripleService(greeter)
    copied = copy.copy(svc)
    assert copied is not svc
    assert isinstance(copied, TripleService)

    greeter.methods.clear()
    assert len(copied.methods()) == 4


def test_methods_are_fresh_copies(greeter):
    svc = TripleService(greeter)
    svc.methods()[0].comment().append("changed")
    assert svc.methods()[0].comment() == [" Sends a greeting."]
    assert greeter.methods[0].comments.leading == [" Sends a greeting."]


def test_non_path_types_flow_to_methods(greeter):
    greeter.methods[0].input_type = "int"
    svc = TripleService(greeter, non_path_types=("None", "int"))
    request, _ = svc.methods()[0].request_response_name("super", False)
    assert ast.unparse(request) == "int"
