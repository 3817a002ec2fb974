"""Errors that abort a stub generation pass."""

from __future__ import annotations


class StubGenerationError(Exception):
    """Base class for all fatal stub generation errors.

    Attributes:
        stage (str): The generation stage that raised the error.
    """

    stage = "generation"


class ProtocError(StubGenerationError):
    """Raised when protoc fails to parse the input `.proto` files."""

    stage = "parsing"


class MalformedTypeReferenceError(StubGenerationError):
    """Raised when a resolved type reference cannot be parsed as a path."""

    stage = "resolution"


class InvalidProgramError(StubGenerationError):
    """Raised when accumulated generated text is not a valid Python program."""

    stage = "finalization"


class OutputTargetError(StubGenerationError):
    """Raised when the output location cannot be determined or written."""

    stage = "output"
