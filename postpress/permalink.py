from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Sequence

from .content import Post
from .errors import PermalinkCollisionError

TOKEN_RE = re.compile(r":(?P<name>[a-z_]+)")
NON_WORD_RE = re.compile(r"[\W_]+")
DEFAULT_SLUG = "untitled"


def slugify(text: str) -> str:
    """Lowercase slug with single hyphens between runs of letters and digits.

    Any script counts: CJK, Cyrillic and accented titles keep their letters.
    """
    text = unicodedata.normalize("NFKC", str(text)).lower()
    return NON_WORD_RE.sub("-", text).strip("-") or DEFAULT_SLUG


def _tokens(post: Post) -> dict[str, str]:
    return {
        "title": slugify(post.title),
        "slug": slugify(post.get("slug") or post.slug or post.title),
        "year": post.date.strftime("%Y"),
        "month": post.date.strftime("%m"),
        "day": post.date.strftime("%d"),
        "i_month": str(post.date.month),
        "i_day": str(post.date.day),
        "short_year": post.date.strftime("%y"),
        "categories": "/".join(slugify(category) for category in post.categories),
        "output_ext": ".html",
    }


def expand_permalink(pattern: str, post: Post) -> str:
    tokens = _tokens(post)

    def repl(match: re.Match) -> str:
        name = match.group("name")
        if name in tokens:
            return tokens[name]
        return match.group(0)

    url = TOKEN_RE.sub(repl, pattern)
    url = re.sub(r"/{2,}", "/", url)
    if not url.startswith("/"):
        url = "/" + url
    return url


def permalink_for(post: Post, pattern: str) -> str:
    explicit = post.get("permalink")
    if explicit:
        return expand_permalink(str(explicit).strip(), post)
    if not post.is_post:
        return expand_permalink("/:slug/", post)
    return expand_permalink(pattern, post)


def output_path_for(url: str) -> str:
    """Map a URL path to the file that serves it, relative to the output root."""
    path = url.lstrip("/")
    if not path or path.endswith("/"):
        return f"{path}index.html"
    last = path.rsplit("/", 1)[-1]
    if "." in last:
        return path
    return f"{path}.html"


@dataclass(frozen=True)
class Route:
    url: str
    output_path: str
    source: str


def assign_permalinks(
    posts: Sequence[Post], pattern: str, reserved: Iterable[Route] = ()
) -> tuple[dict[str, Route], list[PermalinkCollisionError]]:
    """Route every post; the first claimant of an output path keeps it.

    Returns the routes keyed by post source and one collision error for
    every later claimant.
    """
    claimed: dict[str, Route] = {route.output_path: route for route in reserved}
    routes: dict[str, Route] = {}
    errors: list[PermalinkCollisionError] = []
    for post in posts:
        url = permalink_for(post, pattern)
        route = Route(url=url, output_path=output_path_for(url), source=post.source)
        holder = claimed.get(route.output_path)
        if holder is not None:
            errors.append(PermalinkCollisionError(url, holder.source, post.source))
            continue
        claimed[route.output_path] = route
        routes[post.source] = route
    return routes, errors
