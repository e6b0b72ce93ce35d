#!/usr/bin/env python3
"""
Uploads utterance lists (as written by import_intents.py) to a Dialogflow CX
agent as intent training phrases.

Usage:
    python scripts/export_intents.py out.json
    python scripts/export_intents.py out.json --keep-old-utterances
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, str(Path(__file__).parent.parent))

from cx_connector.config.options import ExportOptions  # noqa: E402
from cx_connector.errors import ConnectorError  # noqa: E402
from cx_connector.services.intents_service import export_intents  # noqa: E402
from cx_connector.utils.logging import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def setup_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export utterances to Dialogflow CX intents")
    parser.add_argument("input", help="JSON file with an `utterances` list")
    parser.add_argument("--keep-old-utterances", action="store_true", help="Append instead of replacing training phrases")
    parser.add_argument("--log-level", default=None)
    return parser


async def main(args: argparse.Namespace) -> int:
    data = json.loads(Path(args.input).read_text(encoding="utf-8"))
    utterances = data.get("utterances", []) if isinstance(data, dict) else data
    try:
        summary = await export_intents(utterances, ExportOptions(delete_old_utterances=not args.keep_old_utterances))
    except ConnectorError as e:
        logger.error(f"Export failed: {e}")
        return 1
    logger.info(f"Export finished: {summary}")
    return 0


if __name__ == "__main__":
    cli_args = setup_argument_parser().parse_args()
    setup_logging(cli_args.log_level)
    sys.exit(asyncio.run(main(cli_args)))
