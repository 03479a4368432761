"""
Command-line entry point: heal one collection request.

    python heal_request.py --collection-id <id> --request-id <id> [--max-iterations N]

Identifiers default to POSTMAN_COLLECTION_ID / POSTMAN_REQUEST_ID.
Exits non-zero when credentials or identifiers are missing, or when the
session ends with the "error" outcome.
"""
import argparse
import asyncio
import logging
import sys

from healer.core.config import (
    ANTHROPIC_API_KEY, GROQ_API_KEY, POSTMAN_API_KEY,
    POSTMAN_COLLECTION_ID, POSTMAN_REQUEST_ID, MAX_ITERATIONS,
)
from healer.models.healing_result import SessionGoal, SessionOutcome
from healer.runtime import HealerRuntime
from healer.utils.logging_config import setup_logging

logger = logging.getLogger("main")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Heal a broken API request in a collection")
    parser.add_argument("--collection-id", default=POSTMAN_COLLECTION_ID)
    parser.add_argument("--request-id", default=POSTMAN_REQUEST_ID)
    parser.add_argument("--max-iterations", type=int, default=MAX_ITERATIONS)
    return parser.parse_args(argv)


def missing_settings(args: argparse.Namespace) -> list:
    missing = []
    if not (ANTHROPIC_API_KEY or GROQ_API_KEY):
        missing.append("ANTHROPIC_API_KEY or GROQ_API_KEY")
    if not POSTMAN_API_KEY:
        missing.append("POSTMAN_API_KEY")
    if not args.collection_id:
        missing.append("--collection-id (or POSTMAN_COLLECTION_ID)")
    if not args.request_id:
        missing.append("--request-id (or POSTMAN_REQUEST_ID)")
    return missing


async def run(args: argparse.Namespace) -> int:
    goal = SessionGoal(collection_id=args.collection_id, request_id=args.request_id)
    async with HealerRuntime(max_iterations=args.max_iterations) as runtime:
        before = await asyncio.to_thread(runtime.fix_cache.count)
        print(f"Fixes in memory: {before}")

        result = await runtime.build_orchestrator().run(goal)

        after = await asyncio.to_thread(runtime.fix_cache.count)
        print(f"Fixes in memory: {after} ({after - before:+d} learned this session)")

    print(f"Outcome: {result.outcome.value} after {result.iterations} iteration(s)")
    print(result.message)
    return 1 if result.outcome == SessionOutcome.ERROR else 0


def main(argv=None) -> int:
    setup_logging(level=logging.INFO)
    args = parse_args(argv)
    missing = missing_settings(args)
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        return 2
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
