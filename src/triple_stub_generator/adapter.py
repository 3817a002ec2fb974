"""Adapters from parsed protobuf services to the service abstraction used by the emitters."""

from __future__ import annotations

import ast
from collections.abc import Sequence
from copy import deepcopy

from triple_stub_generator import helper
from triple_stub_generator.proto_types import ProtoMethod, ProtoService
from triple_stub_generator.resolver import NON_PATH_TYPE_ALLOWLIST, resolve_type

CODEC_PATH = "triple.codec.serde_codec.SerdeCodec"


class TripleService:
    """A parsed service, as seen by the stub emitters.

    The client and the server are generated from the same definition. Each of them gets its own copy
    (see `clone`), so that neither can observe changes made while generating the other.
    """

    def __init__(self, inner: ProtoService, non_path_types: Sequence[str] = NON_PATH_TYPE_ALLOWLIST):
        self._inner = inner
        self._non_path_types = tuple(non_path_types)

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def package(self) -> str:
        return self._inner.package

    @property
    def identifier(self) -> str:
        return self._inner.proto_name

    def methods(self) -> list[TripleMethod]:
        """Fresh, independently owned copies of the service methods, in declaration order."""
        return [TripleMethod(deepcopy(method), self._non_path_types) for method in self._inner.methods]

    def comment(self) -> list[str]:
        return self._inner.comments.leading

    def clone(self) -> TripleService:
        """Create a deep copy that shares no mutable state with this service."""
        return TripleService(deepcopy(self._inner), self._non_path_types)

    def __copy__(self) -> TripleService:
        return self.clone()

    def __repr__(self) -> str:
        return f"TripleService({helper.service_path(self.package, self.identifier)})"


class TripleMethod:
    """A parsed method, as seen by the stub emitters."""

    def __init__(self, inner: ProtoMethod, non_path_types: Sequence[str] = NON_PATH_TYPE_ALLOWLIST):
        self._inner = inner
        self._non_path_types = tuple(non_path_types)

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def identifier(self) -> str:
        return self._inner.proto_name

    @property
    def codec_path(self) -> str:
        return CODEC_PATH

    @property
    def client_streaming(self) -> bool:
        return self._inner.client_streaming

    @property
    def server_streaming(self) -> bool:
        return self._inner.server_streaming

    def comment(self) -> list[str]:
        return self._inner.comments.leading

    def request_response_name(self, proto_path: str, compile_well_known_types: bool) -> tuple[ast.expr, ast.expr]:
        """Resolve the request and response type references of this method.

        Args:
            proto_path (str): Namespace prefix under which generated message types are reachable.
            compile_well_known_types (bool): Whether well-known types are generated with the user's messages.

        Returns:
            tuple[ast.expr, ast.expr]: The request and response type references.
        """
        request = resolve_type(
            self._inner.input_proto_type,
            self._inner.input_type,
            proto_path,
            compile_well_known_types,
            self._non_path_types,
        )
        response = resolve_type(
            self._inner.output_proto_type,
            self._inner.output_type,
            proto_path,
            compile_well_known_types,
            self._non_path_types,
        )
        return request, response
