"""What the stub emitters need to know about a service and its methods.

Any object that provides these members can be emitted, regardless of which parser produced it.
"""

from __future__ import annotations

import ast
from collections.abc import Sequence
from typing import Protocol


class Method(Protocol):
    """A single RPC method of a service."""

    @property
    def name(self) -> str:
        """The name of the generated Python method."""
        ...

    @property
    def identifier(self) -> str:
        """The wire-level method name used in RPC paths."""
        ...

    @property
    def codec_path(self) -> str:
        """Dotted path of the codec class that encodes and decodes messages of this method."""
        ...

    @property
    def client_streaming(self) -> bool: ...

    @property
    def server_streaming(self) -> bool: ...

    def comment(self) -> Sequence[str]: ...

    def request_response_name(self, proto_path: str, compile_well_known_types: bool) -> tuple[ast.expr, ast.expr]:
        """Resolve the request and response type references for generated signatures.

        Args:
            proto_path (str): Namespace prefix under which generated message types are reachable.
            compile_well_known_types (bool): Whether well-known types are generated alongside the user's messages.

        Returns:
            tuple[ast.expr, ast.expr]: The request and response type references.
        """
        ...


class Service(Protocol):
    """An RPC service with an ordered list of methods."""

    @property
    def name(self) -> str: ...

    @property
    def package(self) -> str: ...

    @property
    def identifier(self) -> str:
        """The wire-level service name used in RPC paths."""
        ...

    def methods(self) -> Sequence[Method]: ...

    def comment(self) -> Sequence[str]: ...
