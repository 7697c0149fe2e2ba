from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .config import DEFAULT_THEME, SiteConfig
from .content import parse_front_matter
from .errors import ConfigError, TemplateMissingError
from .render import expand_includes, render_template

logger = logging.getLogger(__name__)

BUNDLED_THEMES = Path(__file__).resolve().parent / "themes"
TEMPLATE_SUFFIX = ".html"


@dataclass(frozen=True)
class Template:
    name: str
    text: str
    parent: str = ""


def _theme_name_from_remote(remote: str) -> str:
    name = remote.split("@", 1)[0].rstrip("/")
    return name.rsplit("/", 1)[-1]


class Theme:
    """Layouts and includes looked up first in the site, then in the theme directory."""

    def __init__(self, name: str, theme_dir: Path, site_root: Optional[Path] = None) -> None:
        self.name = name
        self.theme_dir = theme_dir
        self.search_dirs = []
        if site_root is not None:
            self.search_dirs.append(site_root)
        self.search_dirs.append(theme_dir)
        self._cache: dict[tuple[str, str], str] = {}

    @classmethod
    def resolve(cls, config: SiteConfig, site_root: Path) -> "Theme":
        if config.theme:
            local = site_root / "_themes" / config.theme
            if local.is_dir():
                return cls(config.theme, local, site_root)
            bundled = BUNDLED_THEMES / config.theme
            if bundled.is_dir():
                return cls(config.theme, bundled, site_root)
            raise ConfigError(f"Theme not found: {config.theme}")
        name = _theme_name_from_remote(config.remote_theme)
        local = site_root / "_themes" / name
        if name and local.is_dir():
            return cls(name, local, site_root)
        logger.warning(
            "Remote theme %s is not available locally; using the bundled '%s' theme",
            config.remote_theme,
            DEFAULT_THEME,
        )
        return cls(DEFAULT_THEME, BUNDLED_THEMES / DEFAULT_THEME, site_root)

    @property
    def assets_dir(self) -> Path:
        return self.theme_dir / "assets"

    def _read(self, folder: str, name: str, kind: str) -> str:
        key = (folder, name)
        if key in self._cache:
            return self._cache[key]
        filename = name if name.endswith(TEMPLATE_SUFFIX) else name + TEMPLATE_SUFFIX
        for base in self.search_dirs:
            path = base / folder / filename
            if path.is_file():
                text = path.read_text(encoding="utf-8")
                self._cache[key] = text
                return text
        raise TemplateMissingError(name, kind)

    def include(self, name: str) -> str:
        return self._read("_includes", name, "include")

    def layout(self, name: str) -> Template:
        meta, body = parse_front_matter(self._read("_layouts", name, "layout"), name)
        return Template(name=name, text=body, parent=str(meta.get("layout") or ""))

    def render(self, layout: str, context: Mapping[str, object]) -> str:
        """Render ``context['content']`` through ``layout`` and its parents."""
        content = str(context.get("content", ""))
        seen: set[str] = set()
        name = layout
        while name:
            if name in seen:
                raise ConfigError(f"Layout inheritance cycle at '{name}'")
            seen.add(name)
            template = self.layout(name)
            text = expand_includes(template.text, self.include)
            content = render_template(text, {**context, "content": content})
            name = template.parent
        return content
