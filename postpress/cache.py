from __future__ import annotations

import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import Optional

from . import __version__
from .markup import RenderResult, locate_image

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
CACHE_NAME = ".postpress-cache.json"


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def load_lock(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}


def write_lock(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=True), encoding="utf-8")


class RenderCache:
    """Rendered fragments keyed by a hash of the body and renderer settings.

    Only fragments without missing assets are stored, and a hit is dropped
    when one of the images it referenced has since been removed.
    """

    def __init__(self, path: Path, site_root: Path, images_dir: str = "", baseurl: str = "") -> None:
        self.path = path
        self.site_root = site_root
        self.images_dir = images_dir
        self.baseurl = baseurl
        self._lock = threading.Lock()
        self._entries: dict[str, dict] = {}
        self._used: set[str] = set()
        state = load_lock(path)
        if isinstance(state, dict) and state.get("version") == CACHE_VERSION:
            entries = state.get("entries")
            if isinstance(entries, dict):
                self._entries = entries
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key_for(body: str, settings_key: str) -> str:
        return hash_text("\0".join([__version__, settings_key, body]))

    def _image_exists(self, src: str) -> bool:
        return locate_image(self.site_root, src, self.images_dir, self.baseurl) is not None

    def get(self, key: str) -> Optional[RenderResult]:
        with self._lock:
            entry = self._entries.get(key)
        if not entry:
            with self._lock:
                self.misses += 1
            return None
        images = entry.get("images") or []
        if not all(self._image_exists(src) for src in images):
            logger.debug("Cached fragment %s references a removed image", key[:12])
            with self._lock:
                self.misses += 1
            return None
        with self._lock:
            self.hits += 1
            self._used.add(key)
        return RenderResult(html=entry.get("html", ""), toc=entry.get("toc", ""), images=list(images))

    def put(self, key: str, result: RenderResult) -> None:
        if result.missing_assets:
            return
        with self._lock:
            self._entries[key] = {"html": result.html, "toc": result.toc, "images": result.images}
            self._used.add(key)

    def save(self) -> None:
        with self._lock:
            entries = {key: value for key, value in self._entries.items() if key in self._used}
        write_lock(self.path, {"version": CACHE_VERSION, "entries": entries})
