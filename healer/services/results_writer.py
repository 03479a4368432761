"""
Results Writer
==============
Serializes a finished HealingResult into a per-session JSON report.
"""
import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

from healer.models.healing_result import HealingResult

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def _safe(part: str) -> str:
    return _UNSAFE_CHARS.sub("_", part)[:64] or "unknown"


class ResultsWriter:
    """
    Service responsible for compiling a healing session into a structured
    JSON file: the session goal, the outcome and the full transcript.
    """

    @staticmethod
    def report_path(result: HealingResult, results_dir: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        name = f"session_{_safe(result.collection_id)}_{_safe(result.request_id)}_{stamp}.json"
        return os.path.join(results_dir, name)

    @staticmethod
    def write_results(result: HealingResult, results_dir: str) -> Optional[str]:
        """
        Write the report. Returns the file path, or None when writing is
        disabled or fails; a failed write never affects the outcome.
        """
        if not results_dir:
            return None
        try:
            os.makedirs(results_dir, exist_ok=True)
            output_path = os.path.abspath(ResultsWriter.report_path(result, results_dir))
            logger.info("Writing session report to %s", output_path)

            data = {
                "goal": {
                    "collection_id": result.collection_id,
                    "request_id": result.request_id,
                },
                "final_results": {
                    "outcome": result.outcome.value,
                    "message": result.message,
                    "iterations": result.iterations,
                    "tool_call_count": result.tool_call_count,
                    "elapsed_seconds": result.elapsed_seconds,
                },
                "transcript": [turn.model_dump(mode="json") for turn in result.transcript],
            }
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            return output_path

        except Exception as e:
            logger.error("Failed to write session report: %s", e, exc_info=True)
            return None
