"""Process one or more meeting transcripts through the task pipeline."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import get_settings
from src.ingestion.parsers import parse_transcript
from src.pipeline.factory import build_notifier, build_pipeline_deps
from src.pipeline.runner import process_transcripts
from src.pipeline_config import PipelineConfig, RunOutcome

logger = logging.getLogger(__name__)


def detect_format(path: Path) -> str:
    suffix = path.suffix.lower().lstrip(".")
    return {"vtt": "vtt", "json": "json"}.get(suffix, "txt")


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract tasks from meeting transcripts")
    parser.add_argument("files", nargs="+", type=Path, help="Transcript files (.vtt, .txt, .json)")
    parser.add_argument("--format", default=None, help="Override format detection")
    parser.add_argument("--no-notify", action="store_true", help="Skip the Teams summary")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    batch = []
    for path in args.files:
        content = path.read_text(encoding="utf-8")
        entries = parse_transcript(content, args.format or detect_format(path))
        logger.info("Loaded %s: %d entries", path.name, len(entries))
        batch.append(entries)

    deps = build_pipeline_deps(settings)
    notify = None if args.no_notify else build_notifier(settings)
    results = asyncio.run(
        process_transcripts(batch, deps, PipelineConfig.from_settings(settings), notify=notify)
    )

    for path, result in zip(args.files, results, strict=True):
        print(f"{path.name}: {result.outcome.value} ({len(result.instructions)} instructions)")
        if result.error:
            print(f"  error: {result.error}")

    return 1 if any(r.outcome is RunOutcome.FAILED for r in results) else 0


if __name__ == "__main__":
    sys.exit(main())
