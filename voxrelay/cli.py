"""VoxRelay CLI entry point.

Usage:
    voxrelay run --config relay.yaml
    voxrelay tools
    voxrelay init [--output relay.yaml]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from loguru import logger


def cmd_run(args: argparse.Namespace) -> None:
    """Run the VoxRelay server."""
    from voxrelay.config import load_config

    config_path = args.config
    if config_path and not Path(config_path).exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    config = load_config(config_path)

    # Configure logging
    logger.remove()
    logger.add(sys.stderr, level=config.logging.level)

    logger.info(f"VoxRelay starting with config: {config_path or '(defaults)'}")
    logger.info(f"Listening on: {config.server.host}:{config.server.port}")
    logger.info(f"Model backend: {config.model.url}")
    if not config.model.api_key:
        logger.warning("OPENAI_API_KEY is not set; calls will not reach the model")

    from voxrelay.server import run_server

    run_server(config, host=args.host, port=args.port)


def cmd_tools(args: argparse.Namespace) -> None:
    """List the functions the model may call."""
    from voxrelay.functions.registry import function_registry

    schemas = function_registry.schemas
    if args.json:
        print(json.dumps(schemas, indent=2))
        return

    print("\nAvailable VoxRelay Functions:")
    print("=" * 40)
    for schema in schemas:
        print(f"  {schema['name']:<28} {schema.get('description', '')}")
    print(f"\nTotal: {len(schemas)} functions")
    print()


def cmd_init(args: argparse.Namespace) -> None:
    """Write a starter relay.yaml."""
    from voxrelay.config import DEFAULT_CONFIG_YAML

    target = Path(args.output)
    if target.exists() and not args.force:
        logger.error(f"{target} already exists (pass --force to replace it)")
        sys.exit(1)

    template = DEFAULT_CONFIG_YAML
    if args.public_url:
        template = template.replace("${PUBLIC_URL}", args.public_url)
    target.write_text(template)

    print(f"Wrote {target}")
    print(f"Start the relay with: voxrelay run --config {target}")
    if not args.public_url:
        print("Set PUBLIC_URL (or edit server.public_url) so Twilio can reach the stream.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voxrelay",
        description="VoxRelay - Realtime relay between telephony and a speech model",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # `voxrelay run`
    run_parser = subparsers.add_parser("run", help="Run the VoxRelay server")
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to the relay YAML config file (default: built-in defaults)",
    )
    run_parser.add_argument("--host", default=None, help="Override the listen host")
    run_parser.add_argument("--port", type=int, default=None, help="Override the listen port")

    # `voxrelay tools`
    tools_parser = subparsers.add_parser("tools", help="List available functions")
    tools_parser.add_argument("--json", action="store_true", help="Print raw JSON schemas")

    # `voxrelay init`
    init_parser = subparsers.add_parser("init", help="Generate a starter config file")
    init_parser.add_argument(
        "--output", "-o",
        default="relay.yaml",
        help="Output file path (default: relay.yaml)",
    )
    init_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing file",
    )
    init_parser.add_argument(
        "--public-url",
        default=None,
        help="Public https URL of this relay, written into server.public_url",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        cmd_run(args)
    elif args.command == "tools":
        cmd_tools(args)
    elif args.command == "init":
        cmd_init(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
