import collections
import json
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from PIL import Image
from loguru import logger

from imgx import config
from imgx.errors import ImgxError, RecentsError
from imgx.file_io import decode_image, encode_data_url, encode_image, from_data_url, to_data_url
from imgx.models import ImageFormat, SourceImage


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RecentImage:
    """
    One remembered upload.

    Fields:
        id: uuid4 hex
        name: display name of the source
        data_url: the full image as a data URL
        thumbnail_data_url: small JPEG preview (or the full data URL when
            the thumbnail could not be made)
        created_at: milliseconds since the epoch
    """
    id: str
    name: str
    data_url: str
    thumbnail_data_url: str
    created_at: int


def create_thumbnail(data_url: str, source: SourceImage, max_size: int = config.THUMBNAIL_SIZE) -> str:
    """
    Downscale so the longest side is at most `max_size` and encode as JPEG.
    Images already small enough keep their size. Falls back to `data_url`.
    """
    try:
        img = decode_image(source.data)
        width, height = img.size
        if width > max_size or height > max_size:
            if width > height:
                height = height / width * max_size
                width = max_size
            else:
                width = width / height * max_size
                height = max_size
        size = (max(1, int(width)), max(1, int(height)))
        if size != img.size:
            img = img.resize(size, Image.Resampling.BICUBIC)
        data = encode_image(img, ImageFormat.JPEG, config.THUMBNAIL_QUALITY)
    except ImgxError as e:
        logger.warning(f"[Recents] Thumbnail failed for {source.name}: {e}")
        return data_url

    return encode_data_url(data, ImageFormat.JPEG)


class RecentImagesStore:
    """
    Thread-safe bounded store of recent sources, persisted as JSON.

    `path=None` keeps everything in memory.
    """
    def __init__(
        self,
        path: Optional[Union[str, os.PathLike]] = None,
        max_items: int = config.MAX_RECENTS,
        clock: Callable[[], int] = _now_ms,
    ):
        self.path = Path(path) if path is not None else None
        self.max_items = max_items
        self.clock = clock
        self.items = collections.OrderedDict()
        self.lock = threading.Lock()
        self._read()

    def list(self) -> List[RecentImage]:
        """Newest first; for equal timestamps the later insertion comes first."""
        with self.lock:
            return self._sorted()

    def get(self, image_id: str) -> Optional[RecentImage]:
        with self.lock:
            return self.items.get(image_id)

    def load(self, image_id: str) -> SourceImage:
        """Rebuild the SourceImage of a stored entry."""
        record = self.get(image_id)
        if record is None:
            raise RecentsError(f"No recent image with id {image_id}")
        return from_data_url(record.data_url, name=record.name)

    def add(self, source: SourceImage) -> RecentImage:
        data_url = to_data_url(source)
        record = RecentImage(
            id=uuid.uuid4().hex,
            name=source.name or "image",
            data_url=data_url,
            thumbnail_data_url=create_thumbnail(data_url, source),
            created_at=int(self.clock()),
        )
        with self.lock:
            self.items[record.id] = record
            self._evict_if_needed()
            self._write()
        logger.debug(f"[Recents] Added {record.name} ({record.id}). Items: {len(self.items)}")
        return record

    def clear(self):
        with self.lock:
            self.items.clear()
            self._write()
        logger.debug("[Recents] Cleared")

    def _sorted(self) -> List[RecentImage]:
        return sorted(reversed(self.items.values()), key=lambda r: r.created_at, reverse=True)

    def _evict_if_needed(self):
        for record in self._sorted()[self.max_items:]:
            del self.items[record.id]
            logger.debug(f"[Recents] Evicted {record.name} ({record.id})")

    def _read(self):
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            records = [RecentImage(**entry) for entry in data.get('images', [])]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise RecentsError(f"Failed to read recents from {self.path}: {e}") from e

        for record in sorted(records, key=lambda r: r.created_at):
            self.items[record.id] = record
        self._evict_if_needed()

    def _write(self):
        if self.path is None:
            return
        payload = {'version': 1, 'images': [asdict(r) for r in self.items.values()]}
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise RecentsError(f"Failed to write recents to {self.path}: {e}") from e
