"""
main.py — command-line entry point.

    python main.py IMAGE_URL --title "夕焼け" --comment "海で撮った"

Runs one analysis in an asyncio event loop and prints the AnalysisResult as
UTF-8 JSON on stdout. Logs go to stderr (and LOG_FILE when set) so the JSON
stays machine-readable.
"""
import argparse
import asyncio
import json
import logging
import sys

import config
from orchestrator import AnalysisOrchestrator, create_orchestrator

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.LOG_FILE:
        handlers.append(logging.FileHandler(config.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=config.LOG_LEVEL,
        handlers=handlers,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Score a photo post and recommend products for it.")
    parser.add_argument("image_url", help="HTTP(S) URL or data: URI of the photo")
    parser.add_argument("--title", default="", help="post title")
    parser.add_argument("--comment", default="", help="post comment")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    orchestrator: AnalysisOrchestrator = create_orchestrator(
        on_progress=lambda p: logger.info("Progress: %d%%", p.completion_percentage),
    )
    result = await orchestrator.analyze(args.image_url, args.title, args.comment)
    if result is None:
        print(orchestrator.error, file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv=None) -> int:
    setup_logging()
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
