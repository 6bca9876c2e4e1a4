"""
Inbox assistant command line.

Runs pipeline operations against the local message store without the API
server: seeding demo data, ingesting a mailbox export, classification
backfill, similar-message lookup and reply drafting.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent
LOGS_DIR = PROJECT_ROOT / 'logs'
DATA_DIR = PROJECT_ROOT / 'data'

logger = logging.getLogger(__name__)


def setup_directories():
    """Create required directories for the application"""
    for directory in (LOGS_DIR, DATA_DIR, DATA_DIR / 'metrics'):
        directory.mkdir(parents=True, exist_ok=True)


def setup_logging(verbose: bool = False):
    """Log to logs/main.log and stdout"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOGS_DIR / 'main.log'),
            logging.StreamHandler()
        ]
    )
    logging.getLogger('httpx').setLevel(logging.WARNING)


def log_execution(message: str):
    """Log execution with timestamp"""
    timestamp = datetime.now().isoformat()
    logger.debug(f"[{timestamp}] {message}")


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="Inbox assistant pipeline commands")
    parser.add_argument("--user", default=None, help="User id (default: DEFAULT_USER_ID)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("seed", help="Load demo policies and messages")

    ingest = commands.add_parser("ingest", help="Ingest a JSON mailbox export")
    ingest.add_argument("path", type=Path, help='File holding {"messages": [...], "threads": {...}}')
    ingest.add_argument("--keep-irrelevant", action="store_true",
                        help="Do not purge stored copies of irrelevant messages")

    commands.add_parser("backfill", help="Classify unclassified and General messages")

    similar = commands.add_parser("similar", help="List messages similar to one message")
    similar.add_argument("message_id")

    draft = commands.add_parser("draft", help="Draft and store a reply to one message")
    draft.add_argument("message_id")

    return parser.parse_args(argv)


async def run_command(args) -> int:
    # Imported here so logging is configured before providers log their setup
    from api.config import get_settings
    from api.services.message_service import MessageService
    from src.storage.database import init_db

    init_db()
    settings = get_settings()
    service = MessageService(settings=settings)
    user_id = args.user or settings.DEFAULT_USER_ID

    if args.command == "seed":
        policies, messages = await service.seed_demo_data(user_id)
        print(f"Seeded {policies} policies and {messages} messages for {user_id}")
    elif args.command == "ingest":
        payload = json.loads(args.path.read_text(encoding="utf-8"))
        report = await service.ingest(
            user_id,
            payload.get("messages", []),
            threads=payload.get("threads"),
            purge_irrelevant=not args.keep_irrelevant
        )
        print(report.summary)
    elif args.command == "backfill":
        classified = await service.backfill(user_id)
        print(f"Classified {classified} messages")
    elif args.command == "similar":
        result, pool = await service.similar(user_id, args.message_id)
        by_id = {m.id: m for m in pool}
        print(f"Method: {result.method.value}")
        for match in result.matches:
            message = by_id[match.message_id]
            print(f"  {match.message_id}  {match.score:.3f}  {message.sender_name}: {message.body[:60]}")
    elif args.command == "draft":
        print(await service.draft(user_id, args.message_id))
    return 0


def main(argv=None) -> int:
    load_dotenv(override=True)
    args = parse_arguments(argv)
    setup_directories()
    setup_logging(args.verbose)

    log_execution(f"Running {args.command}")
    try:
        return asyncio.run(run_command(args))
    except LookupError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Command {args.command} failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
