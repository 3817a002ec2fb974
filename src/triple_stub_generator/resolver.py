"""Resolution of message type references for generated signatures.

A message type is known by two names: its fully qualified protobuf name (e.g. `.greet.v1.HelloRequest`)
and its Python name as produced by the parser (e.g. `greet_pb2.HelloRequest`). The resolver decides how
the generated code refers to it. References are returned as `ast` nodes, so that a malformed name is
caught here and never ends up in the generated text.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Sequence

from triple_stub_generator.errors import MalformedTypeReferenceError
from triple_stub_generator.proto_types import WELL_KNOWN_TYPE_PREFIX

logger = logging.getLogger(__name__)

# Names that are already fully qualified from the interpreter root.
ROOT_PREFIX = "builtins."

# Names private to the generating module.
MODULE_PREFIX = "_"

# Non-path Python types allowed for request/response types.
NON_PATH_TYPE_ALLOWLIST: tuple[str, ...] = ("None",)


def is_well_known_type(proto_type: str) -> bool:
    """Whether a protobuf type name belongs to the protobuf standard library."""
    return proto_type.startswith(WELL_KNOWN_TYPE_PREFIX)


def parse_expression(source: str) -> ast.expr:
    """Parse a type reference as an arbitrary Python expression.

    Args:
        source (str): The type reference.

    Raises:
        MalformedTypeReferenceError: If the reference is not a valid expression.

    Returns:
        ast.expr: The parsed expression.
    """
    try:
        return ast.parse(source, mode="eval").body
    except SyntaxError as e:
        raise MalformedTypeReferenceError(f"Invalid type reference {source!r}: {e.msg}") from e


def parse_path(source: str) -> ast.expr:
    """Parse a type reference as a dotted path, e.g. `super.greet_pb2.HelloRequest`.

    Args:
        source (str): The type reference.

    Raises:
        MalformedTypeReferenceError: If the reference is not a dotted path of identifiers.

    Returns:
        ast.expr: An `ast.Name` or a chain of `ast.Attribute` nodes ending in an `ast.Name`.
    """
    expression = parse_expression(source)

    node = expression
    while isinstance(node, ast.Attribute):
        node = node.value

    if not isinstance(node, ast.Name):
        raise MalformedTypeReferenceError(f"Type reference {source!r} is not a dotted path")

    return expression


def resolve_type(
    proto_type: str,
    python_type: str,
    proto_path: str,
    compile_well_known_types: bool,
    non_path_types: Sequence[str] = NON_PATH_TYPE_ALLOWLIST,
) -> ast.expr:
    """Resolve the reference to a message type, as used inside generated code.

    The first matching rule wins:

    1. well-known types are used verbatim, unless they are compiled with the user's messages,
    2. names qualified from the interpreter root are used verbatim,
    3. allow-listed non-path types (e.g. `None`) are used verbatim,
    4. names private to the generating module are used verbatim,
    5. everything else is looked up under `proto_path`.

    Args:
        proto_type (str): The fully qualified protobuf type name, e.g. `.google.protobuf.Empty`.
        python_type (str): The Python type name produced by the parser.
        proto_path (str): Namespace prefix under which generated message types are reachable.
        compile_well_known_types (bool): Whether well-known types are generated with the user's messages.
        non_path_types (Sequence[str], optional): Allow-list for rule 3. Defaults to `NON_PATH_TYPE_ALLOWLIST`.

    Raises:
        MalformedTypeReferenceError: If the resulting reference cannot be parsed.

    Returns:
        ast.expr: The type reference.
    """
    if (
        (is_well_known_type(proto_type) and not compile_well_known_types)
        or python_type.startswith(ROOT_PREFIX)
        or python_type in non_path_types
    ):
        return parse_expression(python_type)

    if python_type.startswith(MODULE_PREFIX):
        return parse_path(python_type)

    logger.debug(f"Resolving {python_type} under {proto_path}")
    return parse_path(f"{proto_path}.{python_type}")
