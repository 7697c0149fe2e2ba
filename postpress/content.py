from __future__ import annotations

import datetime as dt
import html as html_lib
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

from .errors import PostpressError

ASCIIDOC_SUFFIXES = {".adoc", ".asciidoc"}
CONTENT_SUFFIXES = {".md", ".markdown", *ASCIIDOC_SUFFIXES}
COLLECTIONS = {"_posts": "posts", "_drafts": "drafts", "_pages": "pages"}
FILENAME_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-(?P<slug>.+)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")


class FrontMatterError(PostpressError):
    """The metadata header of a content file is not valid YAML or holds an impossible value."""


@dataclass(frozen=True)
class RawDocument:
    """A content file as discovered, before any defaulting."""

    source: str
    path: Path
    content_type: str
    meta: Mapping[str, Any]
    body: str
    filename_date: Optional[dt.date] = None
    filename_slug: str = ""


@dataclass(frozen=True)
class Post:
    source: str
    content_type: str
    title: str
    date: dt.datetime
    slug: str
    body: str
    excerpt: str = ""
    tags: frozenset = frozenset()
    categories: tuple[str, ...] = ()
    front_matter: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    explicit: frozenset = frozenset()

    def get(self, key: str, default: Any = None) -> Any:
        return self.front_matter.get(key, default)

    @property
    def is_post(self) -> bool:
        return self.content_type in {"posts", "drafts"}


def parse_front_matter(text: str, source: str = "") -> tuple[dict, str]:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() in {"---", "..."}:
            end = i
            break
    if end is None:
        return {}, clean_text

    header = "\n".join(lines[1:end])
    try:
        meta = yaml.safe_load(header) if header.strip() else {}
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"invalid front matter: {exc}", source) from exc
    except ValueError as exc:
        # yaml builds timestamps eagerly, so an impossible date fails here
        raise FrontMatterError(f"invalid front matter value: {exc}", source) from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise FrontMatterError("front matter must be a mapping", source)
    meta = {str(key).strip().lower(): value for key, value in meta.items()}
    body = "\n".join(lines[end + 1 :])
    if clean_text.endswith("\n"):
        body += "\n"
    return meta, body


def is_asciidoc(source: str) -> bool:
    return Path(source).suffix.lower() in ASCIIDOC_SUFFIXES


def split_filename(stem: str) -> tuple[Optional[dt.date], str]:
    match = FILENAME_RE.match(stem)
    if not match:
        return None, stem
    try:
        date = dt.date.fromisoformat(match.group("date"))
    except ValueError:
        return None, stem
    return date, match.group("slug")


def discover(site_root: Path, include_drafts: bool = False) -> list[Path]:
    """Return content files in a stable order: collections first, then by path."""
    found = []
    for directory in COLLECTIONS:
        if directory == "_drafts" and not include_drafts:
            continue
        root = site_root / directory
        if not root.is_dir():
            continue
        for path in root.rglob("*"):
            if path.is_file() and path.suffix.lower() in CONTENT_SUFFIXES:
                found.append(path)
    return sorted(found, key=lambda p: p.relative_to(site_root).as_posix())


def read_document(path: Path, site_root: Path, encoding: str = "utf-8") -> RawDocument:
    source = path.relative_to(site_root).as_posix()
    collection = source.split("/", 1)[0]
    content_type = COLLECTIONS.get(collection, "pages")
    raw_text = path.read_text(encoding=encoding)
    meta, body = parse_front_matter(raw_text, source)
    filename_date, filename_slug = split_filename(path.stem)
    return RawDocument(
        source=source,
        path=path,
        content_type=content_type,
        meta=MappingProxyType(meta),
        body=body,
        filename_date=filename_date,
        filename_slug=filename_slug,
    )


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count
