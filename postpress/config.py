from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .errors import ConfigError
from .utils import parse_bool, parse_int

DEFAULT_CONFIG_NAME = "_config.yml"
DEFAULT_PERMALINK = "/:year/:month/:day/:title/"
DEFAULT_THEME = "default"
REQUIRED_KEYS = ("title", "url")


def _frozen(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _frozen(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_frozen(item) for item in value)
    return value


@dataclass(frozen=True)
class Author:
    name: str = ""
    avatar: str = ""
    bio: str = ""
    location: str = ""
    github: str = ""
    linkedin: str = ""
    email: str = ""


@dataclass(frozen=True)
class FooterLink:
    label: str
    url: str = ""
    icon: str = ""


@dataclass(frozen=True)
class CommentsConfig:
    provider: str = ""
    settings: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def enabled(self) -> bool:
        return bool(self.provider)


@dataclass(frozen=True)
class ScopeRule:
    """Front-matter defaults applied to documents under ``path`` of ``type``."""

    path: str = ""
    type: Optional[str] = None
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class SiteConfig:
    title: str
    url: str
    subtitle: str = ""
    description: str = ""
    baseurl: str = ""
    locale: str = "en"
    author: Author = field(default_factory=Author)
    theme: str = DEFAULT_THEME
    remote_theme: str = ""
    permalink: str = DEFAULT_PERMALINK
    defaults: tuple[ScopeRule, ...] = ()
    comments: CommentsConfig = field(default_factory=CommentsConfig)
    search: bool = False
    show_excerpts: bool = True
    enable_copy_code_button: bool = False
    footer_links: tuple[FooterLink, ...] = ()
    copyright: str = ""
    skin: str = ""
    tag_archive_path: str = "/tags/"
    repository: str = ""
    related_limit: int = 4
    excerpt_length: int = 200
    excerpt_separator: str = "<!--more-->"
    feed_limit: int = 20
    images_dir: str = ""
    encoding: str = "utf-8"
    destination: str = "_site"
    strict_assets: bool = False
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def site_url(self) -> str:
        return self.url.rstrip("/") + self.baseurl.rstrip("/")


def read_config_file(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            data = {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    return data


def _parse_author(value: object) -> Author:
    if isinstance(value, str):
        return Author(name=value)
    if not isinstance(value, Mapping):
        return Author()
    return Author(
        name=str(value.get("name") or ""),
        avatar=str(value.get("avatar") or ""),
        bio=str(value.get("bio") or ""),
        location=str(value.get("location") or ""),
        github=str(value.get("github") or ""),
        linkedin=str(value.get("linkedin") or ""),
        email=str(value.get("email") or ""),
    )


def _parse_comments(value: object) -> CommentsConfig:
    if not isinstance(value, Mapping):
        return CommentsConfig()
    provider = str(value.get("provider") or "").strip()
    settings = value.get(provider) if provider else None
    if not isinstance(settings, Mapping):
        settings = {}
    return CommentsConfig(provider=provider, settings=_frozen(settings))


def _parse_defaults(value: object) -> tuple[ScopeRule, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError("'defaults' must be a list of scope rules")
    rules = []
    for index, entry in enumerate(value):
        if not isinstance(entry, Mapping):
            raise ConfigError(f"defaults[{index}] must be a mapping")
        scope = entry.get("scope") or {}
        values = entry.get("values") or {}
        if not isinstance(scope, Mapping) or not isinstance(values, Mapping):
            raise ConfigError(f"defaults[{index}] needs 'scope' and 'values' mappings")
        scope_type = scope.get("type")
        rules.append(
            ScopeRule(
                path=str(scope.get("path") or "").strip("/"),
                type=str(scope_type) if scope_type else None,
                values=_frozen(values),
            )
        )
    return tuple(rules)


def _parse_footer_links(value: object) -> tuple[FooterLink, ...]:
    links = value.get("links") if isinstance(value, Mapping) else None
    if not isinstance(links, list):
        return ()
    parsed = []
    for entry in links:
        if not isinstance(entry, Mapping) or not entry.get("label"):
            continue
        parsed.append(
            FooterLink(
                label=str(entry["label"]),
                url=str(entry.get("url") or "").strip(),
                icon=str(entry.get("icon") or ""),
            )
        )
    return tuple(parsed)


def _resolve_theme(data: Mapping[str, Any]) -> tuple[str, str]:
    for key in ("theme", "remote_theme"):
        if key in data and not str(data.get(key) or "").strip():
            raise ConfigError(f"'{key}' is set but empty")
    theme = str(data.get("theme") or "").strip()
    remote = str(data.get("remote_theme") or "").strip()
    if not theme and not remote:
        theme = DEFAULT_THEME
    return theme, remote


def parse_config(data: Mapping[str, Any]) -> SiteConfig:
    missing = [key for key in REQUIRED_KEYS if not str(data.get(key) or "").strip()]
    if missing:
        raise ConfigError(f"Missing required config keys: {', '.join(missing)}")
    theme, remote_theme = _resolve_theme(data)
    tag_archive = data.get("tag_archive")
    tag_path = "/tags/"
    if isinstance(tag_archive, Mapping) and tag_archive.get("path"):
        tag_path = "/" + str(tag_archive["path"]).strip("/") + "/"
    permalink = str(data.get("permalink") or DEFAULT_PERMALINK).strip()
    if not permalink.startswith("/"):
        permalink = "/" + permalink
    baseurl = str(data.get("baseurl") or "").strip().rstrip("/")
    if baseurl and not baseurl.startswith("/"):
        baseurl = "/" + baseurl
    return SiteConfig(
        title=str(data["title"]).strip(),
        url=str(data["url"]).strip().rstrip("/"),
        subtitle=str(data.get("subtitle") or ""),
        description=str(data.get("description") or ""),
        baseurl=baseurl,
        locale=str(data.get("locale") or "en"),
        author=_parse_author(data.get("author")),
        theme=theme,
        remote_theme=remote_theme,
        permalink=permalink,
        defaults=_parse_defaults(data.get("defaults")),
        comments=_parse_comments(data.get("comments")),
        search=parse_bool(data.get("search")),
        show_excerpts=parse_bool(data.get("show_excerpts", True)),
        enable_copy_code_button=parse_bool(data.get("enable_copy_code_button")),
        footer_links=_parse_footer_links(data.get("footer")),
        copyright=str(data.get("copyright") or ""),
        skin=str(data.get("minimal_mistakes_skin") or data.get("skin") or ""),
        tag_archive_path=tag_path,
        repository=str(data.get("repository") or ""),
        related_limit=max(0, parse_int(data.get("related_limit"), 4)),
        excerpt_length=max(1, parse_int(data.get("excerpt_length"), 200)),
        excerpt_separator=str(data.get("excerpt_separator") or "<!--more-->"),
        feed_limit=max(1, parse_int(data.get("feed_limit"), 20)),
        images_dir=str(data.get("images_dir") or "").strip("/"),
        encoding=str(data.get("encoding") or "utf-8"),
        destination=str(data.get("destination") or "_site"),
        strict_assets=parse_bool(data.get("strict_assets")),
        raw=_frozen(dict(data)),
    )


def load_config(path: Path) -> SiteConfig:
    return parse_config(read_config_file(path))
