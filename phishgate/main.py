"""Command-line entry point: score URLs and print one JSON verdict per line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from .config import ConfigProvider, env_source, yaml_source
from .engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/phishgate.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Score URLs for phishing risk.")
    parser.add_argument("urls", nargs="+", metavar="URL", help="URL(s) to evaluate.")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML settings file (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser


async def run(urls: Sequence[str], config_path: str, debug: bool = False) -> int:
    provider = ConfigProvider([yaml_source(config_path), env_source()])
    loaded = await provider.load()
    if loaded.fallback_used:
        logger.warning("Configuration unavailable (%s); using defaults", loaded.error)

    logging.basicConfig(
        level=logging.DEBUG if (debug or loaded.config.debug_mode) else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    engine = Engine(loaded.config)
    engine.start_sweeper()
    try:
        for url in urls:
            verdict = await engine.evaluate(url)
            print(json.dumps({"url": url, **verdict.as_dict()}))
    finally:
        await engine.aclose()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args.urls, args.config, args.debug))


if __name__ == "__main__":
    sys.exit(main())
