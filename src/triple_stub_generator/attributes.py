"""User-supplied code fragments that are spliced in front of generated modules and classes."""

from __future__ import annotations

from dataclasses import dataclass, replace


def match_name(pattern: str, path: str) -> bool:
    """Whether an attribute pattern applies to a dotted path.

    - An empty pattern never matches.
    - `.` matches everything.
    - A pattern with a leading `.` matches a dotted prefix of the path (`.greet` matches `greet.v1.Greeter`).
    - Any other pattern matches a dotted suffix of the path (`v1.Greeter` matches `greet.v1.Greeter`).

    Args:
        pattern (str): The pattern.
        path (str): The fully qualified path of a package or service.

    Returns:
        bool: True if the pattern applies.
    """
    if not pattern:
        return False
    if pattern == "." or pattern == path:
        return True

    path_segments = path.split(".")
    if pattern.startswith("."):
        pattern_segments = pattern[1:].split(".")
        return path_segments[: len(pattern_segments)] == pattern_segments

    pattern_segments = pattern.split(".")
    if len(pattern_segments) > len(path_segments):
        return False
    return path_segments[len(path_segments) - len(pattern_segments) :] == pattern_segments


@dataclass(frozen=True)
class Attributes:
    """Attributes for the generated modules and classes of one role (client or server).

    Attributes:
        module: `(pattern, fragment)` pairs applied to the section generated for a package.
        structure: `(pattern, fragment)` pairs applied to the class generated for a service.
    """

    module: tuple[tuple[str, str], ...] = ()
    structure: tuple[tuple[str, str], ...] = ()

    def for_mod(self, name: str) -> list[str]:
        """Fragments for the section generated for the package `name`."""
        return [fragment for pattern, fragment in self.module if match_name(pattern, name)]

    def for_struct(self, name: str) -> list[str]:
        """Fragments for the class generated for the fully qualified service `name`."""
        return [fragment for pattern, fragment in self.structure if match_name(pattern, name)]

    def push_mod(self, pattern: str, fragment: str) -> Attributes:
        return replace(self, module=(*self.module, (pattern, fragment)))

    def push_struct(self, pattern: str, fragment: str) -> Attributes:
        return replace(self, structure=(*self.structure, (pattern, fragment)))
