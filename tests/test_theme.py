from __future__ import annotations

import pytest

from postpress.config import parse_config
from postpress.errors import ConfigError, TemplateMissingError
from postpress.render import expand_includes, render_template
from postpress.theme import BUNDLED_THEMES, Theme


def write_layout(root, name: str, text: str, folder: str = "_layouts") -> None:
    path = root / folder / f"{name}.html"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def theme_dir(tmp_path):
    root = tmp_path / "theme"
    write_layout(root, "base", "<main>{{> header}}{{content}}</main>")
    write_layout(root, "post", "---\nlayout: base\n---\n<h1>{{page_title}}</h1>{{content}}")
    write_layout(root, "header", "<header>{{site_title}}</header>", folder="_includes")
    return root


class TestRenderTemplate:
    def test_substitutes_known_keys(self) -> None:
        assert render_template("<b>{{ name }}</b>", {"name": "x"}) == "<b>x</b>"

    def test_unknown_keys_become_empty(self) -> None:
        assert render_template("[{{missing}}]", {}) == "[]"

    def test_single_pass(self) -> None:
        rendered = render_template("{{a}}", {"a": "{{b}}", "b": "nested"})
        assert rendered == "{{b}}"

    def test_include_depth_limit(self) -> None:
        with pytest.raises(ConfigError):
            expand_includes("{{> loop}}", lambda name: "{{> loop}}")


class TestTheme:
    def test_inheritance_chain(self, theme_dir) -> None:
        theme = Theme("custom", theme_dir)
        html = theme.render("post", {"content": "<p>body</p>", "page_title": "T", "site_title": "S"})
        assert html == "<main><header>S</header><h1>T</h1><p>body</p></main>"

    def test_site_overrides_theme(self, tmp_path, theme_dir) -> None:
        site = tmp_path / "site"
        write_layout(site, "header", "<header>override</header>", folder="_includes")
        theme = Theme("custom", theme_dir, site)
        assert "override" in theme.render("base", {"content": ""})

    def test_missing_layout(self, theme_dir) -> None:
        with pytest.raises(TemplateMissingError) as excinfo:
            Theme("custom", theme_dir).render("nope", {})
        assert excinfo.value.name == "nope"
        assert excinfo.value.kind == "layout"

    def test_missing_include(self, theme_dir) -> None:
        write_layout(theme_dir, "broken", "{{> nothing}}")
        with pytest.raises(TemplateMissingError) as excinfo:
            Theme("custom", theme_dir).render("broken", {})
        assert excinfo.value.kind == "include"

    def test_inheritance_cycle(self, theme_dir) -> None:
        write_layout(theme_dir, "a", "---\nlayout: b\n---\nA")
        write_layout(theme_dir, "b", "---\nlayout: a\n---\nB")
        with pytest.raises(ConfigError, match="cycle"):
            Theme("custom", theme_dir).render("a", {})

    def test_bundled_layouts_render(self, tmp_path) -> None:
        theme = Theme("default", BUNDLED_THEMES / "default", tmp_path)
        html = theme.render("single", {"content": "<p>Body</p>", "page_title": "Hello", "lang": "en"})
        assert html.startswith("<!doctype html>")
        assert "<p>Body</p>" in html
        assert '<html lang="en"' in html
        assert "{{" not in html


class TestResolveTheme:
    def test_bundled_theme(self, tmp_path) -> None:
        config = parse_config({"title": "T", "url": "https://t.example"})
        theme = Theme.resolve(config, tmp_path)
        assert theme.theme_dir == BUNDLED_THEMES / "default"
        assert theme.assets_dir.is_dir()

    def test_local_theme_directory(self, tmp_path) -> None:
        (tmp_path / "_themes" / "mine" / "_layouts").mkdir(parents=True)
        config = parse_config({"title": "T", "url": "https://t.example", "theme": "mine"})
        assert Theme.resolve(config, tmp_path).theme_dir == tmp_path / "_themes" / "mine"

    def test_unknown_theme(self, tmp_path) -> None:
        config = parse_config({"title": "T", "url": "https://t.example", "theme": "nowhere"})
        with pytest.raises(ConfigError, match="nowhere"):
            Theme.resolve(config, tmp_path)

    def test_remote_theme_falls_back_to_bundled(self, tmp_path, caplog) -> None:
        config = parse_config(
            {"title": "T", "url": "https://t.example", "remote_theme": "mmistakes/minimal-mistakes@4.26.2"}
        )
        with caplog.at_level("WARNING", logger="postpress.theme"):
            theme = Theme.resolve(config, tmp_path)
        assert theme.name == "default"
        assert "mmistakes/minimal-mistakes@4.26.2" in caplog.text

    def test_remote_theme_checked_out_locally(self, tmp_path) -> None:
        (tmp_path / "_themes" / "minimal-mistakes").mkdir(parents=True)
        config = parse_config({"title": "T", "url": "https://t.example", "remote_theme": "mmistakes/minimal-mistakes"})
        assert Theme.resolve(config, tmp_path).name == "minimal-mistakes"
