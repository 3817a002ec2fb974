"""Helper functionality that is used in other modules of this package."""

from __future__ import annotations

import ast
import keyword
import re
from collections.abc import Iterable, Sequence

INDENT = "    "
PB2_SUFFIX = "_pb2"

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def sanitize_name(name: str) -> str:
    """Sanitize a name to avoid Python keywords.

    If the name is a Python keyword, append an underscore.
    E.g. 'lambda' becomes 'lambda_', 'class' becomes 'class_'.

    Args:
        name (str): The original name.

    Returns:
        str: The sanitized name.
    """
    if keyword.iskeyword(name):
        return f"{name}_"
    return name


def naive_snake_case(name: str) -> str:
    """Lowercase a name and put an underscore in front of every uppercase letter but the first.

    E.g. `Greeter` becomes `greeter`, `HelloWorld` becomes `hello_world`.
    """
    out: list[str] = []
    for i, char in enumerate(name):
        out.append(char.lower())
        if i + 1 < len(name) and name[i + 1].isupper():
            out.append("_")
    return "".join(out)


def to_snake_case(name: str) -> str:
    """Convert a protobuf method name to snake_case, keeping acronyms together.

    E.g. `SayHello` becomes `say_hello`, `GetHTTPStatus` becomes `get_http_status`.
    """
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    name = _WORD_BOUNDARY.sub(r"\1_\2", name)
    return name.replace("-", "_").lower()


def to_upper_camel(name: str) -> str:
    """Convert a protobuf name to UpperCamel, e.g. `echo_service` becomes `EchoService`."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def join_parameters(parameters: Sequence[str] | None) -> str:
    """Joins parameters by means of ', '.

    Args:
        parameters (Sequence[str] | None): The parameters to join.

    Returns:
        str: The joined parameters.
    """
    if parameters:
        return ", ".join(str(p) for p in parameters if p)

    else:
        return ""


def new_group(name: str, members: list[str]) -> str:
    """Create a string for a group name and its members.

    For example, when the group name is 'Request', and the member is 'super.HelloRequest',
    the output will be 'Request[super.HelloRequest]'.

    Args:
        name (str): The name of the group.
        members (list[str]): The members of the group

    Returns:
        str: The resulting group string.
    """
    return f"{name}[{join_parameters(members)}]"


def new_function(
    name: str,
    parameters: Sequence[str] | None = None,
    return_type: str | None = None,
    is_async: bool = False,
) -> str:
    """Create the header line of a function definition.

    Args:
        name (str): The function name.
        parameters (Sequence[str] | None, optional): The function parameters, if any. Defaults to None.
        return_type (str | None, optional): The function's return type. Defaults to None.
        is_async (bool, optional): Whether to declare a coroutine function. Defaults to False.

    Returns:
        str: The function header, ending with a colon.
    """
    if return_type is None:
        return_type = "None"

    arguments = join_parameters(parameters)
    prefix = "async def" if is_async else "def"
    return f"{prefix} {name}({arguments}) -> {return_type}:"


def new_decorator(name: str, parameters: Sequence[str] | None = None) -> str:
    """Create a new decorator.

    Args:
        name (str): The name of the decorator.
        parameters (Sequence[str] | None, optional): The parameters (args, kwargs) of the decorator,
            if any. Defaults to None.

    Returns:
        str: The decorator string.
    """
    if parameters:
        return f"@{name}({join_parameters(parameters)})"

    else:
        return f"@{name}"


def new_class_declaration(name: str, parameters: Sequence[str] | None = None) -> str:
    """Creates a string for declaring a class.

    For example, for a name of 'Greeter' and a list of parameters that is 'abc.ABC', the output
    will be 'class Greeter(abc.ABC):'.

    If no parameters are provided, the output is just 'class Greeter:'.

    Args:
        name (str): The class name.
        parameters (Sequence[str] | None, optional):
            A list of parameters that are part of the class declaration. Defaults to None.

    Returns:
        str: The class declaration.
    """
    if parameters:
        return f"class {name}({join_parameters(parameters)}):"
    else:
        return f"class {name}:"


def indent(lines: Iterable[str], level: int = 1) -> list[str]:
    """Indent non-empty lines by `level` steps."""
    return [f"{INDENT * level}{line}" if line else line for line in lines]


def generate_doc_comments(comments: Sequence[str]) -> list[str]:
    """Turn the comment lines of a `.proto` element into docstring lines.

    Comment lines keep the single space that follows `//` in the source, which is removed here.

    Args:
        comments (Sequence[str]): The leading comment lines.

    Returns:
        list[str]: The docstring lines, or an empty list if there is no comment.
    """
    lines = [(line[1:] if line.startswith(" ") else line).rstrip() for line in comments]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    if not lines:
        return []

    text = "\n".join(lines).replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if text.endswith('"'):
        text = text[:-1] + '\\"'

    lines = text.split("\n")
    if len(lines) == 1:
        return [f'"""{lines[0]}"""']
    return [f'"""{lines[0]}', *lines[1:], '"""']


def service_path(package: str, identifier: str) -> str:
    """The fully qualified service name, e.g. `greet.v1.Greeter`, or `Greeter` without a package."""
    return f"{package}{'.' if package else ''}{identifier}"


def rpc_path(package: str, service_identifier: str, method_identifier: str) -> str:
    """The RPC path of a method, e.g. `/greet.v1.Greeter/SayHello`, or `/Greeter/SayHello` without a package."""
    return f"/{service_path(package, service_identifier)}/{method_identifier}"


def string_literal(value: str) -> str:
    """Render a string as a double-quoted Python literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def type_reference(node: ast.expr) -> str:
    """Render a resolved type reference as source text."""
    return ast.unparse(node)


def message_module_imports(references: Iterable[ast.expr]) -> list[str]:
    """Import statements for the `*_pb2` message modules used by resolved type references.

    E.g. `myapp.gen.greet_pb2.HelloRequest` needs `import myapp.gen.greet_pb2`.

    Args:
        references (Iterable[ast.expr]): The resolved type references.

    Returns:
        list[str]: Sorted, unique import statements.
    """
    modules: set[str] = set()
    for reference in references:
        parts = type_reference(reference).split(".")
        for i in range(len(parts) - 1, 0, -1):
            if parts[i - 1].endswith(PB2_SUFFIX):
                modules.add(".".join(parts[:i]))
                break

    return [f"import {module}" for module in sorted(modules)]
