"""Command-line interface for Lattice."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from argparse import Namespace


def get_version() -> str:
    """Get the lattice version."""
    from lattice import __version__

    return __version__


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _load_config(args: Namespace):
    from lattice.config import LatticeConfig, load_config

    if args.preset:
        return LatticeConfig.from_preset(args.preset)
    return load_config(Path(args.config)) if args.config else load_config()


def _parse_output(text: str) -> Any:
    """Example outputs on the command line: JSON when it parses, else the raw string."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def cmd_run(args: Namespace) -> int:
    """Run queries against a document, in order, in one session."""
    from lattice.session import Session

    path = Path(args.file)
    if not path.exists():
        print(f"Error: File {path} does not exist")
        return 1

    session = Session.from_file(path, config=_load_config(args))
    results = session.execute_all(args.queries)

    if args.json:
        _print_json([result.to_dict() for result in results])
        return 0 if all(result.success for result in results) else 1

    for query, result in zip(args.queries, results):
        if len(args.queries) > 1:
            print(f"> {query}")
        if args.logs:
            for line in result.logs:
                print(f"  {line}")
        for warning in result.warnings:
            print(f"Warning: {warning}")
        if result.success:
            print(json.dumps(result.to_dict()["value"], indent=2, ensure_ascii=False))
        else:
            print(f"Error: {result.error}")
    return 0 if all(result.success for result in results) else 1


def cmd_parse(args: Namespace) -> int:
    """Parse a query and print it in canonical form."""
    from lattice.errors import ParseError
    from lattice.logic.parser import parse, print_term
    from lattice.logic.resolver import resolve

    try:
        term = parse(args.query)
    except ParseError as e:
        print(f"Parse error: {e}")
        return 1

    resolved = resolve(term)
    if args.json:
        _print_json(
            {
                "term": print_term(term),
                "resolved": print_term(resolved.term),
                "tag": resolved.term.tag,
                "marker": resolved.marker.value if resolved.marker else None,
            }
        )
    else:
        print(print_term(term))
    return 0


def cmd_infer(args: Namespace) -> int:
    """Print the inferred result type of a query."""
    from lattice.errors import ParseError
    from lattice.logic.inference import infer_type, type_to_string
    from lattice.logic.parser import parse
    from lattice.logic.resolver import resolve

    try:
        term = resolve(parse(args.query)).term
    except ParseError as e:
        print(f"Parse error: {e}")
        return 1

    result = infer_type(term)
    if args.json:
        _print_json(
            {
                "valid": result.valid,
                "type": type_to_string(result.type) if result.type else None,
                "error": result.error,
            }
        )
    elif result.valid and result.type is not None:
        print(type_to_string(result.type))
    else:
        print(f"Type error: {result.error}")
    return 0 if result.valid else 1


def cmd_compile(args: Namespace) -> int:
    """Compile a query to a standalone Python module."""
    from lattice.errors import LatticeError
    from lattice.logic.compiler import compile_term
    from lattice.logic.parser import parse
    from lattice.logic.resolver import resolve

    try:
        source = compile_term(resolve(parse(args.query)).term, config=_load_config(args).solver)
    except LatticeError as e:
        print(f"Error: {e}")
        return 1

    if args.output:
        Path(args.output).write_text(source)
        print(f"Wrote {args.output}")
    else:
        print(source)
    return 0


def cmd_synthesize_regex(args: Namespace) -> int:
    """Synthesize a regex from positive and negative examples."""
    from lattice.synthesis.coordinator import SynthesisCoordinator

    coordinator = SynthesisCoordinator(settings=_load_config(args).synthesis)
    result = coordinator.synthesize_regex(args.positives, args.negative or [])

    if args.json:
        _print_json(result.to_dict())
    elif result.success:
        print(result.regex)
    else:
        print(f"Error: {result.error}")
    return 0 if result.success else 1


def cmd_synthesize_extractor(args: Namespace) -> int:
    """Synthesize an extractor from input/output examples."""
    from lattice.synthesis import extractor as ex
    from lattice.synthesis.coordinator import SynthesisCoordinator, SynthesisRequest

    coordinator = SynthesisCoordinator(settings=_load_config(args).synthesis)
    result = coordinator.synthesize(
        SynthesisRequest(
            kind="extractor",
            positive_examples=[source for source, _ in args.example],
            expected_outputs=[_parse_output(output) for _, output in args.example],
        )
    )

    if not result.success or result.extractor is None:
        if args.json:
            _print_json(result.to_dict())
        else:
            print(f"Error: {result.error}")
        return 1

    applied = {value: ex.evaluate(result.extractor, value) for value in args.apply or []}
    if args.json:
        data = result.to_dict()
        data["alternatives"] = [ex.describe(alt) for alt in result.alternatives]
        data["applied"] = applied
        _print_json(data)
        return 0

    print(result.extractor_code)
    for alternative in result.alternatives:
        print(f"  alternative: {ex.to_code(alternative)}")
    for value, output in applied.items():
        print(f"{value!r} -> {output!r}")
    return 0


def cmd_reference(args: Namespace) -> int:
    """Print the query command reference."""
    from lattice.session import COMMAND_REFERENCE

    print(COMMAND_REFERENCE)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lattice",
        description="Query language and example-driven synthesis for large documents",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Log synthesis and solver steps (-vv for debug)",
    )
    parser.add_argument(
        "--config",
        help="lattice.toml or pyproject.toml to load (default: current directory)",
    )
    parser.add_argument(
        "--preset",
        choices=["default", "thorough", "minimal"],
        help="Use a configuration preset instead of the config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run queries against a document")
    run_parser.add_argument("file", help="Document to load")
    run_parser.add_argument("queries", nargs="+", help="Queries, executed in order")
    run_parser.add_argument("--json", action="store_true", help="Output results as JSON")
    run_parser.add_argument("--logs", "-l", action="store_true", help="Show the solver trace")
    run_parser.set_defaults(func=cmd_run)

    # parse command
    parse_parser = subparsers.add_parser("parse", help="Parse and print a query")
    parse_parser.add_argument("query", help="Query text")
    parse_parser.add_argument("--json", action="store_true", help="Output as JSON")
    parse_parser.set_defaults(func=cmd_parse)

    # infer command
    infer_parser = subparsers.add_parser("infer", help="Infer a query's result type")
    infer_parser.add_argument("query", help="Query text")
    infer_parser.add_argument("--json", action="store_true", help="Output as JSON")
    infer_parser.set_defaults(func=cmd_infer)

    # compile command
    compile_parser = subparsers.add_parser("compile", help="Compile a query to Python")
    compile_parser.add_argument("query", help="Query text")
    compile_parser.add_argument("--output", "-o", help="Write the module to a file")
    compile_parser.set_defaults(func=cmd_compile)

    # synthesize-regex command
    regex_parser = subparsers.add_parser("synthesize-regex", help="Synthesize a regex from examples")
    regex_parser.add_argument("positives", nargs="+", help="Strings the regex must match")
    regex_parser.add_argument(
        "--negative",
        "-n",
        action="append",
        help="String the regex must not match (can be repeated)",
    )
    regex_parser.add_argument("--json", action="store_true", help="Output as JSON")
    regex_parser.set_defaults(func=cmd_synthesize_regex)

    # synthesize-extractor command
    extractor_parser = subparsers.add_parser(
        "synthesize-extractor", help="Synthesize an extractor from input/output examples"
    )
    extractor_parser.add_argument(
        "--example",
        "-e",
        nargs=2,
        action="append",
        required=True,
        metavar=("INPUT", "OUTPUT"),
        help="Example pair; OUTPUT is read as JSON when possible (can be repeated)",
    )
    extractor_parser.add_argument(
        "--apply",
        "-a",
        action="append",
        help="Run the extractor on this input (can be repeated)",
    )
    extractor_parser.add_argument("--json", action="store_true", help="Output as JSON")
    extractor_parser.set_defaults(func=cmd_synthesize_extractor)

    # reference command
    reference_parser = subparsers.add_parser("reference", help="Show the query command reference")
    reference_parser.set_defaults(func=cmd_reference)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
