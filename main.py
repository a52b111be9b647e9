"""Hearthwood launcher. Run one day, serve the API, or seed demo data."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")


def _run_day(args, settings) -> int:
    from hearthwood.app import build_generator
    from hearthwood.notify import build_notifier
    from hearthwood.pipeline import Orchestrator
    from hearthwood.storage import Storage

    storage = Storage(settings.data_dir)
    storage.init_world()
    orchestrator = Orchestrator(
        storage,
        build_generator(settings),
        build_notifier(settings.notify_bot_token, settings.notify_chat_id),
    )
    result = asyncio.run(orchestrator.run_cycle(force_degraded=args.degraded))
    print(json.dumps(result.summary(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def _serve(args, settings) -> int:
    import uvicorn

    print(f"Starting API on http://localhost:{settings.port} ...")
    uvicorn.run(
        "hearthwood.app:create_app", factory=True,
        host=settings.host, port=settings.port,
        log_level=args.log_level.lower(),
    )
    return 0


def _demo(args, settings) -> int:
    from hearthwood.demo import create_demo_data
    from hearthwood.storage import Storage

    storage = Storage(settings.data_dir)
    create_demo_data(storage)
    print(f"Demo world written to {storage.base_path}")
    for character in storage.get_living_characters():
        print(f"  {character.name} ({', '.join(character.traits)}) at {character.location}")
    return 0


COMMANDS = {"run-day": _run_day, "serve": _serve, "demo": _demo}


def main():
    parser = argparse.ArgumentParser(description="Hearthwood world simulation")
    parser.add_argument("command", choices=sorted(COMMANDS),
                        help="run-day: simulate one day; serve: start the API; demo: seed demo data")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--degraded", action="store_true",
                        help="run-day: force template-only decisions")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The API process reads DATA_DIR itself, so pass the override through the env
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    from hearthwood.config import get_settings
    from hearthwood.errors import ConfigurationError

    try:
        sys.exit(COMMANDS[args.command](args, get_settings()))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
