"""Shared fixtures: a throwaway site tree on disk."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Callable

import pytest
import yaml

from postpress.config import SiteConfig, parse_config
from postpress.content import Post

SITE_CONFIG = {
    "title": "Test TechBlog",
    "subtitle": "Software Engineering & more",
    "description": "A blog used by the test suite",
    "url": "https://blog.example.org",
    "locale": "de-de",
    "permalink": "/:title",
    "author": {
        "name": "Jane Doe",
        "bio": "Senior Software Engineer",
        "github": "janedoe",
        "linkedin": "https://www.linkedin.com/in/jane",
        "location": "Freiburg",
    },
    "comments": {
        "provider": "giscus",
        "giscus": {"repo_id": "R_test", "category_name": "Announcements", "theme": "dark"},
    },
    "defaults": [
        {
            "scope": {"path": "", "type": "posts"},
            "values": {
                "layout": "single",
                "author_profile": True,
                "comments": True,
                "related": True,
                "share": True,
                "show_date": True,
            },
        }
    ],
    "footer": {
        "links": [
            {"label": "GitHub", "icon": "fab fa-github", "url": "https://github.com/janedoe"},
            {"label": "Linkedin", "icon": "fab fa-linkedin", "url": None},
        ]
    },
    "search": True,
    "show_excerpts": True,
    "enable_copy_code_button": True,
    "tag_archive": {"type": "liquid", "path": "/tags/"},
    "repository": "janedoe/janedoe.github.io",
}


@pytest.fixture
def config_data() -> dict:
    return yaml.safe_load(yaml.safe_dump(SITE_CONFIG))


@pytest.fixture
def config(config_data: dict) -> SiteConfig:
    return parse_config(config_data)


@pytest.fixture
def site(tmp_path: Path, config_data: dict) -> Path:
    root = tmp_path / "site"
    (root / "_posts").mkdir(parents=True)
    (root / "_config.yml").write_text(yaml.safe_dump(config_data), encoding="utf-8")
    return root


@pytest.fixture
def write_post(site: Path) -> Callable[..., Path]:
    def _write(name: str, body: str = "Some body text.\n", folder: str = "_posts", **fields) -> Path:
        path = site / folder / name
        path.parent.mkdir(parents=True, exist_ok=True)
        header = yaml.safe_dump(fields, sort_keys=False) if fields else ""
        path.write_text(f"---\n{header}---\n{body}", encoding="utf-8")
        return path

    return _write


def make_post(
    title: str = "Hello World",
    source: str = "_posts/2024-03-05-hello.md",
    date: dt.datetime = dt.datetime(2024, 3, 5),
    tags: tuple = (),
    content_type: str = "posts",
    **front_matter,
) -> Post:
    return Post(
        source=source,
        content_type=content_type,
        title=title,
        date=date,
        slug=Path(source).stem[11:] if Path(source).stem[:4].isdigit() else Path(source).stem,
        body="",
        excerpt=f"About {title}",
        tags=frozenset(tags),
        front_matter={"title": title, **front_matter},
    )


@pytest.fixture
def post_factory() -> Callable[..., Post]:
    return make_post
