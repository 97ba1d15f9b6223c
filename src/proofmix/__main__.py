#!/usr/bin/env python3
"""
proofmix CLI Entry Point

Provides command-line tools for admission dry-runs and graduation.
Run with: python -m proofmix <command> [args]
"""

import argparse
import json
import sys

from .core import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, default=str))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
proofmix - social proof admission & blending

Admission Commands:
  evaluate --rules F --context F   Dry-run display rules for a page view
  simulate --snapshot F [opts]     Replay admission cycles over a snapshot
                                   --cycles N, --step SECONDS, --seed S,
                                   --context F

Graduation Commands (event store):
  graduation status --widget ID    Graduation readiness and recommendation
  graduation health --widget ID    Lifecycle health score
  graduation run [--widget ID]     Graduate ready widgets (one or all)
  maintenance run [--widget ID]    Expire quick-wins, remove flagged events

Configuration:
  PROOFMIX_INSTANCE_ROOT, PROOFMIX_DB_PATH, PROOFMIX_ANALYTICS_URL,
  PROOFMIX_LOG_LEVEL (see proofmix.core.config)
"""
    print(help_text)
    return {}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="proofmix",
        description="Social proof notification admission and blending",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    from .commands import admission, graduation

    admission.register_parsers(subparsers)
    graduation.register_parsers(subparsers)

    return parser


def main() -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    if not hasattr(args, "func"):
        output_error(
            f"Incomplete command: {args.command}",
            error_type="unknown_command",
            hint="Run 'proofmix help' for usage",
        )

    try:
        result = args.func(args)

        if isinstance(result, dict) and result:
            output_json(result)

            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
