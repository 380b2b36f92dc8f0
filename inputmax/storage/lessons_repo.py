"""File-backed persistence for generated lessons."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import msgspec

from inputmax.utils.languages import slugify

logger = logging.getLogger(__name__)

MANIFEST_FILE = "lessons.json"
META_FILE = "lesson_meta.json"


class SegmentRecord(msgspec.Struct, rename="camel", kw_only=True):
  """One aligned playback unit as stored on disk."""

  id: int
  primary_text: str
  secondary_text: str
  primary_audio_ref: str
  secondary_audio_ref: str
  paragraph_index: int


class LanguageCodes(msgspec.Struct, rename="camel"):
  primary: str
  secondary: str


class ManifestEntry(msgspec.Struct, rename="camel", kw_only=True):
  id: str
  title: str
  folder_ref: str
  primary_language: str
  secondary_language: str
  language_codes: LanguageCodes


class LessonMeta(msgspec.Struct, rename="camel", kw_only=True):
  lesson_id: str
  title: str
  primary_language: str
  secondary_language: str
  primary_code: str
  secondary_code: str
  primary_short: str
  secondary_short: str
  segmentation: str
  speech_speed: str
  language_level: str
  created_at: str
  series_id: str | None = None
  part_number: int | None = None
  misaligned_paragraphs: list[int] = msgspec.field(default_factory=list)


def atomic_write_bytes(path: Path, data: bytes) -> None:
  """Write data next to path and rename it into place."""
  path.parent.mkdir(parents=True, exist_ok=True)
  fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
  try:
    with os.fdopen(fd, "wb") as handle:
      handle.write(data)
      handle.flush()
      os.fsync(handle.fileno())
    os.replace(tmp_name, path)
  except BaseException:
    Path(tmp_name).unlink(missing_ok=True)
    raise


def atomic_write_json(path: Path, value: Any) -> None:
  atomic_write_bytes(path, msgspec.json.format(msgspec.json.encode(value), indent=2))


def read_json[T](path: Path, type_: type[T], default: Callable[[], T]) -> T:
  if not path.exists():
    return default()
  return msgspec.json.decode(path.read_bytes(), type=type_)


class FileLessonStore:
  """
  Lessons under `{root}/{lessonId}/` plus the `lessons.json` manifest.

  A lesson becomes visible only when its manifest entry is registered, so
  folders left behind by a failed generation are ignored by readers.
  """

  def __init__(self, root: Path | str, *, clock: Callable[[], float] = time.time) -> None:
    self.root = Path(root)
    self._clock = clock

  @property
  def manifest_path(self) -> Path:
    return self.root / MANIFEST_FILE

  def lesson_dir(self, lesson_id: str) -> Path:
    return self.root / lesson_id

  def allocate_lesson_id(self, title: str) -> str:
    """Slug of the title; an existing folder or manifest id gets a `_{unix time}` suffix."""
    base = slugify(title)
    taken = {entry.id for entry in self.manifest()}
    candidate = base
    if candidate in taken or self.lesson_dir(candidate).exists():
      candidate = f"{base}_{int(self._clock())}"
      suffix = 1
      while candidate in taken or self.lesson_dir(candidate).exists():
        candidate = f"{base}_{int(self._clock())}_{suffix}"
        suffix += 1
    self.lesson_dir(candidate).mkdir(parents=True, exist_ok=True)
    return candidate

  def write_audio(self, lesson_id: str, filename: str, audio: bytes) -> str:
    atomic_write_bytes(self.lesson_dir(lesson_id) / filename, audio)
    return filename

  def write_segments(self, lesson_id: str, segments: list[SegmentRecord]) -> Path:
    path = self.lesson_dir(lesson_id) / f"segments_{lesson_id}.json"
    atomic_write_json(path, segments)
    return path

  def write_meta(self, meta: LessonMeta) -> Path:
    path = self.lesson_dir(meta.lesson_id) / META_FILE
    atomic_write_json(path, meta)
    return path

  def load_segments(self, lesson_id: str) -> list[SegmentRecord]:
    return read_json(self.lesson_dir(lesson_id) / f"segments_{lesson_id}.json", list[SegmentRecord], list)

  def load_meta(self, lesson_id: str) -> LessonMeta | None:
    path = self.lesson_dir(lesson_id) / META_FILE
    if not path.exists():
      return None
    return msgspec.json.decode(path.read_bytes(), type=LessonMeta)

  def manifest(self) -> list[ManifestEntry]:
    return read_json(self.manifest_path, list[ManifestEntry], list)

  def register(self, entry: ManifestEntry) -> None:
    """Add or replace the manifest row for entry.id."""
    entries = [existing for existing in self.manifest() if existing.id != entry.id]
    entries.append(entry)
    atomic_write_json(self.manifest_path, entries)
    logger.info("Registered lesson %s (%s)", entry.id, entry.title)

  def remove(self, lesson_id: str) -> bool:
    entries = self.manifest()
    remaining = [entry for entry in entries if entry.id != lesson_id]
    if len(remaining) == len(entries):
      return False
    atomic_write_json(self.manifest_path, remaining)
    return True
