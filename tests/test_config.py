from __future__ import annotations

import dataclasses

import pytest

from postpress.config import DEFAULT_PERMALINK, load_config, parse_config
from postpress.errors import ConfigError


class TestParseConfig:
    def test_site_metadata(self, config) -> None:
        assert config.title == "Test TechBlog"
        assert config.subtitle == "Software Engineering & more"
        assert config.locale == "de-de"
        assert config.url == "https://blog.example.org"
        assert config.permalink == "/:title"

    def test_author(self, config) -> None:
        assert config.author.name == "Jane Doe"
        assert config.author.github == "janedoe"
        assert config.author.avatar == ""

    def test_scope_rules(self, config) -> None:
        assert len(config.defaults) == 1
        rule = config.defaults[0]
        assert rule.path == ""
        assert rule.type == "posts"
        assert rule.values["comments"] is True

    def test_comments_provider_settings(self, config) -> None:
        assert config.comments.enabled
        assert config.comments.provider == "giscus"
        assert config.comments.settings["repo_id"] == "R_test"

    def test_footer_link_with_empty_url_is_kept_but_blank(self, config) -> None:
        labels = {link.label: link.url for link in config.footer_links}
        assert labels == {"GitHub": "https://github.com/janedoe", "Linkedin": ""}

    def test_feature_flags(self, config) -> None:
        assert config.search is True
        assert config.show_excerpts is True
        assert config.enable_copy_code_button is True
        assert config.tag_archive_path == "/tags/"

    def test_config_is_immutable(self, config) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.title = "Other"  # type: ignore[misc]
        with pytest.raises(TypeError):
            config.defaults[0].values["comments"] = False  # type: ignore[index]
        with pytest.raises(TypeError):
            config.raw["title"] = "Other"  # type: ignore[index]

    def test_defaults_for_optional_keys(self) -> None:
        config = parse_config({"title": "T", "url": "https://t.example"})
        assert config.permalink == DEFAULT_PERMALINK
        assert config.theme == "default"
        assert config.defaults == ()
        assert not config.comments.enabled

    def test_permalink_gets_leading_slash(self) -> None:
        config = parse_config({"title": "T", "url": "https://t.example", "permalink": ":title"})
        assert config.permalink == "/:title"

    def test_remote_theme_is_recorded(self) -> None:
        config = parse_config(
            {"title": "T", "url": "https://t.example", "remote_theme": "mmistakes/minimal-mistakes@4.26.2"}
        )
        assert config.theme == ""
        assert config.remote_theme == "mmistakes/minimal-mistakes@4.26.2"


class TestConfigErrors:
    @pytest.mark.parametrize("missing", ["title", "url"])
    def test_missing_required_key(self, config_data, missing) -> None:
        del config_data[missing]
        with pytest.raises(ConfigError, match=missing):
            parse_config(config_data)

    def test_blank_required_key(self, config_data) -> None:
        config_data["title"] = "   "
        with pytest.raises(ConfigError, match="title"):
            parse_config(config_data)

    @pytest.mark.parametrize("key", ["theme", "remote_theme"])
    def test_empty_theme_identifier(self, config_data, key) -> None:
        config_data[key] = ""
        with pytest.raises(ConfigError, match=key):
            parse_config(config_data)

    def test_defaults_must_be_a_list(self, config_data) -> None:
        config_data["defaults"] = {"scope": {}}
        with pytest.raises(ConfigError, match="defaults"):
            parse_config(config_data)


class TestLoadConfig:
    def test_yaml_file(self, site) -> None:
        config = load_config(site / "_config.yml")
        assert config.title == "Test TechBlog"

    def test_json_file(self, tmp_path) -> None:
        path = tmp_path / "site.json"
        path.write_text('{"title": "J", "url": "https://j.example"}', encoding="utf-8")
        assert load_config(path).title == "J"

    def test_toml_file(self, tmp_path) -> None:
        path = tmp_path / "site.toml"
        path.write_text('title = "T"\nurl = "https://t.example"\n', encoding="utf-8")
        assert load_config(path).url == "https://t.example"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "_config.yml")

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "_config.yml"
        path.write_text("title: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path) -> None:
        path = tmp_path / "_config.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)
