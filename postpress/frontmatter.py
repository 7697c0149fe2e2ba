"""Merge explicit front matter with scope defaults and derive post fields."""

from __future__ import annotations

import datetime as dt
import html
import re
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import markdown

from .config import ScopeRule, SiteConfig
from .content import Post, RawDocument, is_asciidoc
from .errors import UnresolvedFieldError
from .utils import parse_bool, parse_list, strip_tags

MANDATORY_FIELDS = ("title",)
FENCE_LINE_RE = re.compile(r"^\s*(`{3,}|~{3,})")
LISTING_LINE_RE = re.compile(r"^(-{4,}|\.{4,})$")
DIRECTIVE_LINE_RE = re.compile(
    r"^(#{1,6}(\s|$)|={1,6}\s|image::|\||\[\[?[^\]]*\]\]?$|!\[[^\]]*\]\([^)]*\)$)"
)
ASCIIDOC_META_RE = re.compile(r"^(:!?[\w-]+!?:|//|_{4,}$)")
WHITESPACE_RE = re.compile(r"\s+")


def path_matches(prefix: str, source: str) -> bool:
    prefix = prefix.strip("/")
    if not prefix:
        return True
    return source == prefix or source.startswith(prefix + "/")


def type_matches(rule_type: str | None, content_type: str) -> bool:
    if not rule_type:
        return True
    if rule_type == content_type:
        return True
    return rule_type == "posts" and content_type == "drafts"


def matching_rules(rules: Iterable[ScopeRule], source: str, content_type: str) -> list[ScopeRule]:
    return [
        rule
        for rule in rules
        if path_matches(rule.path, source) and type_matches(rule.type, content_type)
    ]


def resolve_front_matter(
    explicit: Mapping[str, Any],
    source: str,
    content_type: str,
    rules: Iterable[ScopeRule],
) -> dict[str, Any]:
    """Fill in fields from every matching rule, in declaration order.

    A field already present, either explicitly or from an earlier rule, is
    never overwritten.
    """
    resolved = dict(explicit)
    for rule in matching_rules(rules, source, content_type):
        for key, value in rule.values.items():
            if key not in resolved:
                resolved[key] = value
    return resolved


def parse_post_date(value: Any, fallback: dt.date | None, mtime: float | None) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time())
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return dt.datetime.fromisoformat(text)
        except ValueError:
            pass
        try:
            return dt.datetime.combine(dt.date.fromisoformat(text[:10]), dt.time())
        except ValueError:
            pass
    if fallback is not None:
        return dt.datetime.combine(fallback, dt.time())
    if mtime is not None:
        return dt.datetime.fromtimestamp(mtime)
    return dt.datetime.now()


def excerpt_source(body: str, separator: str, asciidoc: bool = False) -> str:
    """Markup for the excerpt: text before ``separator``, else the first paragraph.

    Code blocks, headings, tables, images and block attribute lines are
    skipped. A ``----`` line opens a listing only after ``[source]`` or in an
    AsciiDoc file; in Markdown it is a rule and ends the paragraph.
    """
    if separator and separator in body:
        return body.split(separator, 1)[0]
    paragraph: list[str] = []
    in_fence = False
    previous = ""
    for line in body.splitlines():
        stripped = line.strip()
        after_source = previous.startswith("[source")
        previous = stripped or previous
        if in_fence:
            if FENCE_LINE_RE.match(line) or LISTING_LINE_RE.match(stripped):
                in_fence = False
            continue
        if FENCE_LINE_RE.match(line):
            in_fence = True
            continue
        if LISTING_LINE_RE.match(stripped):
            if asciidoc or after_source:
                in_fence = True
                continue
            if paragraph:
                break
            continue
        if not stripped:
            if paragraph:
                break
            continue
        if DIRECTIVE_LINE_RE.match(stripped) or (asciidoc and ASCIIDOC_META_RE.match(stripped)):
            if paragraph:
                break
            continue
        paragraph.append(stripped)
    return "\n".join(paragraph)


def derive_excerpt(body: str, separator: str, length: int, asciidoc: bool = False) -> str:
    text = markdown.markdown(excerpt_source(body, separator, asciidoc))
    text = html.unescape(strip_tags(text))
    text = WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > length:
        text = text[:length].rstrip() + "..."
    return text


def _timezone_naive(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is not None:
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def resolve_post(raw: RawDocument, config: SiteConfig) -> Post:
    resolved = resolve_front_matter(raw.meta, raw.source, raw.content_type, config.defaults)
    for name in MANDATORY_FIELDS:
        value = resolved.get(name)
        if value is None or not str(value).strip():
            raise UnresolvedFieldError(name, raw.source)

    try:
        mtime = raw.path.stat().st_mtime
    except OSError:
        mtime = None
    date = _timezone_naive(parse_post_date(resolved.get("date"), raw.filename_date, mtime))

    explicit_excerpt = resolved.get("excerpt")
    if explicit_excerpt is not None and str(explicit_excerpt).strip():
        excerpt = str(explicit_excerpt).strip()
    else:
        excerpt = derive_excerpt(
            raw.body, config.excerpt_separator, config.excerpt_length, is_asciidoc(raw.source)
        )
    if not excerpt and config.show_excerpts:
        excerpt = str(resolved["title"]).strip()

    tags = parse_list(resolved.get("tags"))
    categories = parse_list(resolved.get("categories") or resolved.get("category"))
    resolved["published"] = parse_bool(resolved.get("published", True))
    return Post(
        source=raw.source,
        content_type=raw.content_type,
        title=str(resolved["title"]).strip(),
        date=date,
        slug=raw.filename_slug,
        body=raw.body,
        excerpt=excerpt,
        tags=frozenset(tags),
        categories=tuple(categories),
        front_matter=MappingProxyType(resolved),
        explicit=frozenset(raw.meta.keys()),
    )
