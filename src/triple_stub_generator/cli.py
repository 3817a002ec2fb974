"""Command-line interface for generating triple client and server stubs for *.proto services."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from triple_stub_generator.builder import DEFAULT_PROTO_PATH, Builder, configure
from triple_stub_generator.descriptors import load_descriptor_set
from triple_stub_generator.errors import StubGenerationError

logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    """Setup for the parser.

    Returns:
        argparse.ArgumentParser: The parser after setup.
    """
    parser = argparse.ArgumentParser(description="Generate triple client and server stubs for protobuf services.")

    parser.add_argument(
        "-p",
        "--paths",
        type=str,
        nargs="+",
        default=[],
        help="*.proto files to generate stubs for.",
    )

    parser.add_argument(
        "-I",
        "--include-path",
        dest="include_paths",
        type=str,
        nargs="+",
        default=[],
        help="include directories for resolving imports; defaults to the directory of each proto file.",
    )

    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default="",
        help="directory to write the generated stubs to; defaults to $OUT_DIR.",
    )

    parser.add_argument(
        "--descriptor-set",
        type=str,
        default="",
        help="read services from a FileDescriptorSet written by protoc instead of running protoc.",
    )

    parser.add_argument(
        "--proto-path",
        type=str,
        default=DEFAULT_PROTO_PATH,
        help="package under which the generated *_pb2 message modules are importable, e.g. myapp.gen; "
        "the default only keeps the generated names stable and should be overridden.",
    )

    parser.add_argument(
        "--compile-well-known-types",
        default=False,
        action="store_true",
        help="treat google.protobuf types like the user's own messages.",
    )

    parser.add_argument(
        "--no-client",
        dest="build_client",
        default=True,
        action="store_false",
        help="skip generation of client stubs.",
    )

    parser.add_argument(
        "--no-server",
        dest="build_server",
        default=True,
        action="store_false",
        help="skip generation of server stubs.",
    )

    parser.add_argument(
        "--protoc-arg",
        dest="protoc_args",
        type=str,
        action="append",
        default=[],
        help="additional argument passed to protoc as it is; may be repeated.",
    )

    parser.add_argument(
        "--include-file",
        type=str,
        default="",
        help="name of a module to write next to the stubs that imports all of them.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        default=False,
        action="store_true",
        help="log debug output.",
    )

    return parser


def builder_from_args(args: argparse.Namespace) -> Builder:
    """Create the builder described by parsed command-line arguments."""
    builder = configure(
        build_client=args.build_client,
        build_server=args.build_server,
        proto_path=args.proto_path,
        compile_well_known_types=args.compile_well_known_types,
        protoc_args=tuple(args.protoc_args),
    )

    if args.output_dir:
        builder = builder.with_output_dir(args.output_dir)
    if args.include_file:
        builder = builder.with_include_file(args.include_file)

    return builder


def run(args: argparse.Namespace) -> list[Path]:
    """Run the stub generator for the parsed command-line arguments.

    Args:
        args (argparse.Namespace): The arguments that were passed when calling the stub generator.

    Returns:
        list[Path]: The written files.
    """
    builder = builder_from_args(args)

    if args.descriptor_set:
        descriptor_set = load_descriptor_set(Path(args.descriptor_set))
        file_names = [Path(path).as_posix() for path in args.paths] or None
        return builder.compile_descriptor_set(descriptor_set, file_names)

    includes = args.include_paths or sorted({str(Path(path).parent) for path in args.paths})
    return builder.compile(args.paths, includes)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the stub generator.

    Args:
        argv (Sequence[str] | None, optional): Run arguments. Defaults to None.

    Returns:
        int: Error code.
    """
    parser = setup_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.paths and not args.descriptor_set:
        parser.error("either --paths or --descriptor-set is required")

    try:
        written = run(args)
    except StubGenerationError as e:
        logger.error(f"{e.stage} failed: {e}")
        return 1

    logger.info(f"Generated {len(written)} file(s).")
    return 0
