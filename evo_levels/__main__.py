"""Command-line entry point: ``evo-levels`` or ``python -m evo_levels``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import yaml

from .classifier import LogMarkerClassifier, load_program_definition
from .config import LevelSystemConfig, load_config
from .main import LevelSystemApp

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
CONFIG_CANDIDATES = ("/etc/evo-levels/config.yaml", "./config.yaml")

EXIT_OK = 0
EXIT_INVALID_CONFIG = 1
EXIT_NO_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evo-levels",
        description="Credit wallet points from on-chain ticket activity and assign level tiers.",
    )
    parser.add_argument(
        "-c", "--config",
        help=f"Path to the YAML config (default: first of {', '.join(CONFIG_CANDIDATES)})",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Check the config and program definition, report scanner mode, then exit",
    )
    return parser


def resolve_config_path(explicit: str | None) -> Path | None:
    """Return the explicit path, else the first existing candidate."""
    if explicit:
        return Path(explicit)
    for candidate in CONFIG_CANDIDATES:
        path = Path(candidate)
        if path.exists():
            return path
    return None


def describe_scanner(config: LevelSystemConfig, logger: logging.Logger) -> str:
    """Work out how the chain scanner will behave: "disabled", "inert" or "active"."""
    scanner = config.scanner
    if not scanner.enabled or not scanner.program_id:
        logger.info("Scanner: disabled (no program_id or scanner.enabled is false)")
        return "disabled"

    definition = load_program_definition(scanner.program_definition_paths, logger)
    if definition is None:
        logger.warning(
            "Scanner: inert, no program definition in %s; cycles will record nothing",
            scanner.program_definition_paths,
        )
        return "inert"

    classifier = LogMarkerClassifier.from_program_definition(definition, logger)
    kinds = ", ".join(m.event_kind for m in classifier.markers) or "nothing"
    logger.info(
        "Scanner: active on %s (%s) every %s min, classifying %s",
        scanner.program_id, scanner.cluster, scanner.interval_minutes, kinds,
    )
    return "active"


def validate_config(config_path: Path, logger: logging.Logger) -> int:
    try:
        config = load_config(str(config_path))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Config validation failed for %s: %s", config_path, e)
        return EXIT_INVALID_CONFIG
    logger.info(
        "Config is valid: %s (%d activity types, %d level tiers)",
        config_path, len(config.activity_types), len(config.levels),
    )
    describe_scanner(config, logger)
    return EXIT_OK


async def run(config_path: Path) -> None:
    app = LevelSystemApp(str(config_path))
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, app.request_stop)
    try:
        await app.start()
    finally:
        await app.stop()


def main(argv: list[str] | None = None) -> None:
    """Console-script entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("levels")

    config_path = resolve_config_path(args.config)
    if config_path is None:
        logger.error("No config file found. Pass --config or create one of: %s", ", ".join(CONFIG_CANDIDATES))
        sys.exit(EXIT_NO_CONFIG)

    if args.validate_config:
        sys.exit(validate_config(config_path, logger))

    try:
        asyncio.run(run(config_path))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
