"""Command line entry point.

Usage:
    python -m flakecompose evaluate flake.yaml [--frozen]
    python -m flakecompose lock flake.yaml
    python -m flakecompose update flake.yaml [SOURCE ...]
    python -m flakecompose show flake.yaml
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from flakecompose.declarations import load_declarations
from flakecompose.errors import FlakeComposeError
from flakecompose.flake import Flake
from flakecompose.providers import NixProvider, SourceProvider
from flakecompose.settings import Settings, load_settings


def make_provider(settings: Settings) -> SourceProvider:
    return NixProvider(nix_args=list(settings.nix_args), policy=settings.policy)


def cmd_evaluate(flake: Flake, args: argparse.Namespace) -> None:
    result = flake.evaluate(frozen=args.frozen)
    print(result.to_json(), end="")


def cmd_lock(flake: Flake, args: argparse.Namespace) -> None:
    lock_path = flake.lock(args.output)
    print(f"Wrote {lock_path}")


def cmd_update(flake: Flake, args: argparse.Namespace) -> None:
    result = flake.update(*args.sources)
    for name, source in sorted(result.sources.items()):
        print(f"{name}: {source.revision}")


def cmd_show(flake: Flake, args: argparse.Namespace) -> None:
    print(json.dumps(flake.declaration(), indent=2, sort_keys=True))


COMMANDS = {
    "evaluate": cmd_evaluate,
    "lock": cmd_lock,
    "update": cmd_update,
    "show": cmd_show,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flakecompose",
        description="Resolve declared sources, outputs and profiles",
    )
    parser.add_argument("--settings", type=Path, help="Settings file (default: ~/.config)")
    parser.add_argument("--log-file", type=Path, help="Write structured logs as JSON lines")
    sub = parser.add_subparsers(dest="command", required=True)

    evaluate_p = sub.add_parser("evaluate", help="Evaluate declarations and print the result")
    evaluate_p.add_argument("declarations", type=Path)
    evaluate_p.add_argument("--frozen", action="store_true", help="Require an up-to-date lock")

    lock_p = sub.add_parser("lock", help="Evaluate and write the lockfile")
    lock_p.add_argument("declarations", type=Path)
    lock_p.add_argument("--output", type=Path, help="Lockfile path override")

    update_p = sub.add_parser("update", help="Re-resolve locked sources")
    update_p.add_argument("declarations", type=Path)
    update_p.add_argument("sources", nargs="*", help="Sources to update (default: all)")

    show_p = sub.add_parser("show", help="Print the parsed declarations")
    show_p.add_argument("declarations", type=Path)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    flake: Flake | None = None
    try:
        settings = load_settings(args.settings)
        flake = load_declarations(
            args.declarations,
            provider=make_provider(settings),
            policy=settings.policy,
            lock_name=settings.lock_name,
        )
        COMMANDS[args.command](flake, args)
    except FlakeComposeError as exc:
        print(json.dumps(exc.to_dict(), indent=2, sort_keys=True), file=sys.stderr)
        return 1
    finally:
        if args.log_file is not None and flake is not None:
            flake.logger.to_json_lines(args.log_file)
    return 0
