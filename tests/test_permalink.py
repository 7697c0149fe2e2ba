from __future__ import annotations

import datetime as dt

import pytest

from postpress.errors import PermalinkCollisionError
from postpress.permalink import Route, assign_permalinks, expand_permalink, output_path_for, permalink_for, slugify


class TestSlugify:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Hello World", "hello-world"),
            ("  Kotlin: Coroutines & Flows!  ", "kotlin-coroutines-flows"),
            ("Über Straße", "über-straße"),
            ("协程入门", "协程入门"),
            ("Привет, мир", "привет-мир"),
            ("snake_case__name", "snake-case-name"),
            ("ＦＵＬＬ width", "full-width"),
            ("C++ in 2024", "c-in-2024"),
            ("!!!", "untitled"),
            ("", "untitled"),
        ],
    )
    def test_slugs(self, text, expected) -> None:
        assert slugify(text) == expected


class TestExpandPermalink:
    def test_title_token(self, post_factory) -> None:
        assert expand_permalink("/:title", post_factory(title="Hello World")) == "/hello-world"

    def test_date_tokens(self, post_factory) -> None:
        post = post_factory(title="Hello World", date=dt.datetime(2024, 3, 5))
        assert expand_permalink("/:year/:month/:day/:title/", post) == "/2024/03/05/hello-world/"
        assert expand_permalink("/:short_year/:i_month/:i_day/", post) == "/24/3/5/"

    def test_slug_token_uses_filename(self, post_factory) -> None:
        post = post_factory(source="_posts/2024-03-05-my-file.md")
        assert expand_permalink("/posts/:slug/", post) == "/posts/my-file/"

    def test_unknown_token_is_kept(self, post_factory) -> None:
        assert expand_permalink("/:nope/:title", post_factory()) == "/:nope/hello-world"

    def test_leading_slash_and_duplicate_slashes(self, post_factory) -> None:
        assert expand_permalink(":title//x", post_factory()) == "/hello-world/x"


class TestPermalinkFor:
    def test_explicit_permalink_wins(self, post_factory) -> None:
        post = post_factory(permalink="/about-me/")
        assert permalink_for(post, "/:title") == "/about-me/"

    def test_pages_use_their_slug(self, post_factory) -> None:
        post = post_factory(title="About", source="_pages/about.md", content_type="pages")
        assert permalink_for(post, "/:year/:title") == "/about/"

    def test_site_pattern_for_posts(self, post_factory) -> None:
        assert permalink_for(post_factory(), "/:title") == "/hello-world"


class TestOutputPath:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("/", "index.html"),
            ("/hello-world", "hello-world.html"),
            ("/hello-world/", "hello-world/index.html"),
            ("/2024/03/05/x/", "2024/03/05/x/index.html"),
            ("/feed.xml", "feed.xml"),
        ],
    )
    def test_mapping(self, url, expected) -> None:
        assert output_path_for(url) == expected


class TestAssignPermalinks:
    def test_routes_by_source(self, post_factory) -> None:
        posts = [post_factory(title="One", source="_posts/a.md"), post_factory(title="Two", source="_posts/b.md")]
        routes, errors = assign_permalinks(posts, "/:title")
        assert errors == []
        assert routes["_posts/a.md"] == Route("/one", "one.html", "_posts/a.md")
        assert routes["_posts/b.md"].output_path == "two.html"

    def test_collision_names_both_sources(self, post_factory) -> None:
        posts = [
            post_factory(title="Hello World", source="_posts/2024-01-01-a.md"),
            post_factory(title="Hello, World!", source="_posts/2024-02-01-b.md"),
        ]
        routes, errors = assign_permalinks(posts, "/:title")
        assert list(routes) == ["_posts/2024-01-01-a.md"]
        assert len(errors) == 1
        error = errors[0]
        assert isinstance(error, PermalinkCollisionError)
        assert error.first == "_posts/2024-01-01-a.md"
        assert error.second == "_posts/2024-02-01-b.md"
        assert "_posts/2024-01-01-a.md" in str(error)
        assert "_posts/2024-02-01-b.md" in str(error)

    def test_trailing_slash_variants_do_not_collide(self, post_factory) -> None:
        posts = [
            post_factory(title="A", source="_posts/a.md", permalink="/x"),
            post_factory(title="B", source="_posts/b.md", permalink="/x/"),
        ]
        _, errors = assign_permalinks(posts, "/:title")
        assert errors == []

    def test_reserved_routes_are_claimed_first(self, post_factory) -> None:
        reserved = [Route("/feed.xml", "feed.xml", "(generated)")]
        post = post_factory(source="_posts/a.md", permalink="/feed.xml")
        routes, errors = assign_permalinks([post], "/:title", reserved)
        assert routes == {}
        assert errors[0].first == "(generated)"

    def test_deterministic(self, post_factory) -> None:
        posts = [post_factory(title=f"Post {i}", source=f"_posts/{i}.md") for i in range(5)]
        assert assign_permalinks(posts, "/:title") == assign_permalinks(posts, "/:title")

    def test_non_latin_titles_get_distinct_routes(self, post_factory) -> None:
        posts = [
            post_factory(title="协程入门", source="_posts/2024-01-01-a.md"),
            post_factory(title="数据库设计", source="_posts/2024-01-02-b.md"),
        ]
        routes, errors = assign_permalinks(posts, "/:title")
        assert errors == []
        assert routes["_posts/2024-01-01-a.md"].url == "/协程入门"
        assert routes["_posts/2024-01-02-b.md"].output_path == "数据库设计.html"
