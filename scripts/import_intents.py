#!/usr/bin/env python3
"""
Downloads conversations and utterances from a Dialogflow CX agent and writes
them as JSON.

Usage:
    python scripts/import_intents.py --source TrainingSet --max-conversation-length 8
    python scripts/import_intents.py --flow-to-crawl projects/p/locations/global/agents/a/flows/f -o out.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Connection settings are read once at import time
load_dotenv()

sys.path.insert(0, str(Path(__file__).parent.parent))

from cx_connector.config.options import ImportOptions, ImportSource  # noqa: E402
from cx_connector.errors import ConnectorError  # noqa: E402
from cx_connector.services.intents_service import import_intents  # noqa: E402
from cx_connector.utils.logging import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def setup_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import conversations and utterances from Dialogflow CX")
    parser.add_argument("--source", choices=[s.value for s in ImportSource], default=ImportSource.TRAINING_SET.value)
    parser.add_argument("--max-conversation-length", type=int, default=10)
    parser.add_argument("--skip-welcome-message", action="store_true")
    parser.add_argument("--continue-on-duplicate-page", action="store_true")
    parser.add_argument("--continue-on-duplicate-flow", action="store_true")
    parser.add_argument("--flow-to-crawl", default=None, help="Full resource path of the flow to focus on")
    parser.add_argument("--include-foreign-utterances", action="store_true")
    parser.add_argument("--max-flows-after-entry-flow", type=int, default=None)
    parser.add_argument("--no-prefetch", action="store_true")
    parser.add_argument("--record-stack", action="store_true", help="Keep the visited node names on every branch")
    parser.add_argument("-o", "--output", default=None, help="Output file, stdout if omitted")
    parser.add_argument("--log-level", default=None)
    return parser


async def main(args: argparse.Namespace) -> int:
    options = ImportOptions(
        source=ImportSource(args.source),
        max_conversation_length=args.max_conversation_length,
        skip_welcome_message=args.skip_welcome_message,
        continue_on_duplicate_page=args.continue_on_duplicate_page,
        continue_on_duplicate_flow=args.continue_on_duplicate_flow,
        flow_to_crawl=args.flow_to_crawl,
        flow_to_crawl_include_foreign_utterances=args.include_foreign_utterances,
        max_flows_after_entry_flow=args.max_flows_after_entry_flow,
        prefetch=not args.no_prefetch,
        record_stack=args.record_stack,
    )
    try:
        result = await import_intents(options)
    except ConnectorError as e:
        logger.error(f"Import failed: {e}")
        return 1

    output = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        logger.info(f"Wrote {len(result.convos)} conversations and {len(result.utterances)} utterance lists to {args.output}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    cli_args = setup_argument_parser().parse_args()
    setup_logging(cli_args.log_level)
    sys.exit(asyncio.run(main(cli_args)))
