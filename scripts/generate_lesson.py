"""Generate a lesson or a multi-part series against the configured edge service."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports work when invoked directly.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from inputmax.ai.errors import InsufficientCreditsError
from inputmax.ai.pipeline.contracts import GenerationRequest
from inputmax.ai.router import build_generation_stack
from inputmax.config import get_settings
from inputmax.core.logging import initialize_logging
from inputmax.jobs.progress import ProgressChannel


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(description=__doc__)
  parser.add_argument("prompt", nargs="?", default="", help="What the lesson should be about; omit with --random.")
  parser.add_argument("--random", action="store_true", help="Pick a topic instead of using a prompt.")
  parser.add_argument("--topic", action="append", default=[], help="Topic pool entry for --random (repeatable).")
  parser.add_argument("--language", default="Portuguese (Brazil)", help="Language the lesson is written in.")
  parser.add_argument("--translation", default="English", help="Language of the aligned translation.")
  parser.add_argument("--level", default="B1", choices=["A1", "A2", "B1", "B2", "C1", "C2"])
  parser.add_argument("--words", type=int, default=300, help="Words per lesson.")
  parser.add_argument("--segmentation", default="sentences", choices=["sentences", "paragraphs"])
  parser.add_argument("--speed", default="regular", choices=["regular", "slow"])
  parser.add_argument("--parts", type=int, default=1, help="Number of lessons in a series.")
  parser.add_argument("--strategy", default="continuation", choices=["continuation", "iterative"])
  parser.add_argument("--folder", default=None, help="Folder name for a series.")
  parser.add_argument("--device-id", default=None, help="Overrides INPUTMAX_DEVICE_ID.")
  parser.add_argument("--lessons-dir", default=None, help="Overrides INPUTMAX_LESSONS_DIR.")
  return parser.parse_args(argv)


async def _print_progress(channel: ProgressChannel) -> None:
  async for event in channel:
    print(f"[{event.stage}] {event.message}")


async def _run(args: argparse.Namespace) -> int:
  settings = get_settings()
  device_id = args.device_id or settings.device_id
  if not device_id:
    print("Error: pass --device-id or set INPUTMAX_DEVICE_ID.")
    return 2

  request = GenerationRequest(
    mode="random" if args.random else "prompt",
    user_prompt=args.prompt,
    topic_pool=args.topic or None,
    gen_language=args.language,
    trans_language=args.translation,
    segmentation=args.segmentation,
    length_words=args.words,
    speech_speed=args.speed,
    language_level=args.level,
  )
  stack = build_generation_stack(settings, device_id=device_id, lessons_dir=args.lessons_dir)
  try:
    balance = await stack.client.balance()
    print(f"Credits: {balance.available} available ({balance.reserved} reserved)")

    if args.parts <= 1:
      channel = ProgressChannel()
      printer = asyncio.create_task(_print_progress(channel))
      result = await stack.pipeline.run(request, channel)
      await printer
      print(f"Saved lesson {result.lesson_id} ({result.segment_count} segments)")
      return 0

    folder = args.folder or (args.prompt[:40] or "Series")
    if args.strategy == "iterative":
      channel = ProgressChannel()
      printer = asyncio.create_task(_print_progress(channel))
      results = await stack.series.generate_iterative_series(request, part_count=args.parts, folder_name=folder, progress=channel)
      await printer
      print("Saved lessons: " + ", ".join(result.lesson_id for result in results))
      return 0

    items = stack.series.plan_series(request, total_parts=args.parts, folder_name=folder)
    stack.series.enqueue(items)
    await stack.series.wait_idle()
    for item in items:
      print(f"Part {item.part_number}: {item.status} {item.lesson_id or item.error or ''}".rstrip())
    return 0 if all(item.status == "completed" for item in items) else 1
  except InsufficientCreditsError as exc:
    print(f"Not enough credits: balance={exc.balance} reserved={exc.reserved}")
    return 3
  finally:
    await stack.aclose()


def main(argv: list[str] | None = None) -> int:
  args = _parse_args(argv)
  initialize_logging(get_settings())
  return asyncio.run(_run(args))


if __name__ == "__main__":
  sys.exit(main())
