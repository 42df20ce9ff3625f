"""
Photo references for inspections.

Photos arrive as image files (for example a phone's synced camera folder).
They are copied into the app's photos directory as
{hive_id}_{uuid}{ext} and the session keeps the copied path.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Set
from uuid import uuid4

from .types import PhotoItem


IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".heic"}


class PhotoManager:
    """
    Manages photo files for the inspection in progress.

    Usage:
        photos = PhotoManager(config.photos_dir, camera_dir=Path("~/Pictures/Hive").expanduser())
        item = photos.import_latest(hive_id)
        ...
        photos.clear()  # inspection discarded
    """

    def __init__(self, photos_dir: Path, camera_dir: Optional[Path] = None):
        self.photos_dir = Path(photos_dir)
        self.camera_dir = Path(camera_dir) if camera_dir else None
        self.selected: List[PhotoItem] = []
        self._imported_sources: Set[Path] = set()

    def import_photo(self, source: Path, hive_id: str) -> PhotoItem:
        """Copy an image into the photos directory and select it."""
        source = Path(source)
        self.photos_dir.mkdir(parents=True, exist_ok=True)
        target = self.photos_dir / f"{hive_id}_{uuid4()}{source.suffix.lower() or '.jpg'}"

        # Atomic write: copy to temp, then replace
        fd, temp_path = tempfile.mkstemp(dir=self.photos_dir, suffix=".tmp")
        os.close(fd)
        try:
            shutil.copyfile(source, temp_path)
            os.replace(temp_path, target)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        item = PhotoItem(path=str(target))
        self.selected.append(item)
        self._imported_sources.add(source.resolve())
        return item

    def import_latest(self, hive_id: str) -> Optional[PhotoItem]:
        """
        Import the newest not-yet-imported image from the camera folder.

        Returns None when there is no camera folder or no new image.
        """
        if self.camera_dir is None or not self.camera_dir.is_dir():
            return None

        candidates = [
            p for p in self._images(self.camera_dir.iterdir())
            if p.resolve() not in self._imported_sources
        ]
        if not candidates:
            return None

        newest = max(candidates, key=lambda p: p.stat().st_mtime)
        return self.import_photo(newest, hive_id)

    @staticmethod
    def _images(paths: Iterable[Path]) -> List[Path]:
        return [p for p in paths if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES]

    def remove(self, item: PhotoItem) -> None:
        self._delete(item.path)
        self.selected = [p for p in self.selected if p.id != item.id]

    def clear(self) -> None:
        """Delete every selected photo file (inspection discarded)."""
        for item in self.selected:
            self._delete(item.path)
        self.selected = []

    def release(self) -> List[str]:
        """Hand the selected paths to a saved inspection and forget them."""
        paths = [item.path for item in self.selected]
        self.selected = []
        return paths

    @staticmethod
    def _delete(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
