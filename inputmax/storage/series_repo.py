"""Series metadata and the folder registry."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import msgspec

from inputmax.storage.lessons_repo import atomic_write_json, read_json

logger = logging.getLogger(__name__)

FOLDERS_FILE = "folders.json"


class SeriesMetadata(msgspec.Struct, rename="camel", kw_only=True):
  series_id: str
  title: str
  total_parts: int
  mode: Literal["continuation", "iterative"]
  created_at: str
  folder_id: str | None = None
  lesson_ids: list[str] = msgspec.field(default_factory=list)
  completed_parts: int = 0
  last_summary: str | None = None
  outline: str | None = None


class Folder(msgspec.Struct, rename="camel", kw_only=True):
  id: str
  name: str
  created_at: str
  lesson_ids: list[str] = msgspec.field(default_factory=list)
  series_id: str | None = None


class SeriesStore:
  """`series_{id}.json` files and `folders.json` next to the lesson manifest."""

  def __init__(self, root: Path | str) -> None:
    self.root = Path(root)

  def _series_path(self, series_id: str) -> Path:
    return self.root / f"series_{series_id}.json"

  def save(self, series: SeriesMetadata) -> None:
    atomic_write_json(self._series_path(series.series_id), series)

  def load(self, series_id: str) -> SeriesMetadata | None:
    path = self._series_path(series_id)
    if not path.exists():
      return None
    return msgspec.json.decode(path.read_bytes(), type=SeriesMetadata)

  def require(self, series_id: str) -> SeriesMetadata:
    series = self.load(series_id)
    if series is None:
      raise KeyError(f"Unknown series: {series_id}")
    return series

  def record_part(self, series_id: str, lesson_id: str) -> SeriesMetadata:
    """Append a finished lesson; a repeated lesson id is ignored."""
    series = self.require(series_id)
    if lesson_id not in series.lesson_ids:
      series.lesson_ids.append(lesson_id)
      series.completed_parts = len(series.lesson_ids)
    self.save(series)
    return series

  def set_summary(self, series_id: str, summary: str | None) -> SeriesMetadata:
    """Replace the continuity summary; None clears it so the next part starts without one."""
    series = self.require(series_id)
    series.last_summary = summary
    self.save(series)
    return series

  def folders(self) -> list[Folder]:
    return read_json(self.root / FOLDERS_FILE, list[Folder], list)

  def _save_folders(self, folders: list[Folder]) -> None:
    atomic_write_json(self.root / FOLDERS_FILE, folders)

  def ensure_folder(self, folder_id: str, name: str, *, series_id: str | None, created_at: str) -> Folder:
    folders = self.folders()
    for folder in folders:
      if folder.id == folder_id:
        return folder
    folder = Folder(id=folder_id, name=name, created_at=created_at, series_id=series_id)
    folders.append(folder)
    self._save_folders(folders)
    logger.info("Created folder %s (%s)", folder_id, name)
    return folder

  def add_to_folder(self, folder_id: str, lesson_id: str) -> None:
    folders = self.folders()
    for folder in folders:
      if folder.id == folder_id:
        if lesson_id not in folder.lesson_ids:
          folder.lesson_ids.append(lesson_id)
          self._save_folders(folders)
        return
    raise KeyError(f"Unknown folder: {folder_id}")
