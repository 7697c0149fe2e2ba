"""Build error types.

Structural errors (``ConfigError``, a missing theme) abort a build before any
content is processed.  Per-document errors are collected during the parallel
phase and raised together as ``BuildFailed`` once every post has been tried.
"""

from __future__ import annotations


class PostpressError(Exception):
    """Base class for every error the build reports to the user."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class ConfigError(PostpressError):
    """Configuration is missing, malformed, or names an unusable theme."""


class UnresolvedFieldError(PostpressError):
    """A mandatory front-matter field is still unset after defaulting."""

    def __init__(self, field: str, source: str = "") -> None:
        super().__init__(f"missing required front matter field '{field}'", source)
        self.field = field


class MissingAssetError(PostpressError):
    """A referenced image or include file does not exist."""

    def __init__(self, asset: str, source: str = "") -> None:
        super().__init__(f"referenced asset not found: {asset}", source)
        self.asset = asset


class PermalinkCollisionError(PostpressError):
    """Two documents resolve to the same output path."""

    def __init__(self, url: str, first: str, second: str) -> None:
        super().__init__(f"permalink {url} is already used by {first}", second)
        self.url = url
        self.first = first
        self.second = second


class TemplateMissingError(PostpressError):
    """A layout or include name has no template in the theme."""

    def __init__(self, name: str, kind: str = "layout", source: str = "") -> None:
        super().__init__(f"{kind} '{name}' not found in theme", source)
        self.name = name
        self.kind = kind


class BuildFailed(PostpressError):
    """Raised at the barrier with every error collected during the build."""

    def __init__(self, errors: list[PostpressError]) -> None:
        count = len(errors)
        noun = "error" if count == 1 else "errors"
        super().__init__(f"build failed with {count} {noun}")
        self.errors = errors
