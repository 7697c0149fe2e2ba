from __future__ import annotations

import datetime as dt
import html
import json
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence
from urllib.parse import quote

from pygments.formatters import HtmlFormatter

from .config import SiteConfig
from .content import Post, count_words
from .errors import PostpressError, TemplateMissingError
from .permalink import Route, output_path_for, slugify
from .render import render_template
from .theme import Theme
from .utils import iso_date, join_url, parse_bool, strip_tags

DATE_FMT = "%Y-%m-%d"
DEFAULT_LAYOUT = "single"
DARK_SKINS = {"dark", "contrast", "neon", "plum", "sunrise"}
WORDS_PER_MINUTE = 200


@dataclass(frozen=True)
class RoutedPost:
    post: Post
    url: str
    output_path: str
    html: str
    toc: str = ""


@dataclass(frozen=True)
class RenderedPage:
    output_path: str
    html: str
    post: Optional[Post] = None


def sort_by_date(posts: Iterable[RoutedPost]) -> list[RoutedPost]:
    return sorted(posts, key=lambda item: (-item.post.date.timestamp(), item.post.source))


def tag_order(tag: str) -> tuple[str, str]:
    return tag.lower(), tag


def tag_url(config: SiteConfig, slug: str) -> str:
    return f"{config.tag_archive_path}{slug}/"


def tag_slugs(tags: Iterable[str]) -> dict[str, str]:
    """Give every distinct tag its own archive slug.

    Tags that slugify alike (``C#`` and ``C++``) are told apart with a numeric
    suffix. A tag already written in slug form claims its slug first, then the
    rest follow in sorted order.
    """
    slugs: dict[str, str] = {}
    taken: set[str] = set()
    for tag in sorted(set(tags), key=lambda tag: (slugify(tag) != tag, tag)):
        base = slug = slugify(tag)
        suffix = 2
        while slug in taken:
            slug = f"{base}-{suffix}"
            suffix += 1
        taken.add(slug)
        slugs[tag] = slug
    return slugs


def site_tags(posts: Iterable[RoutedPost]) -> dict[str, str]:
    return tag_slugs(tag for item in posts if item.post.is_post for tag in item.post.tags)


def collect_tags(posts: Iterable[RoutedPost]) -> dict[str, list[RoutedPost]]:
    """Map each tag to the posts carrying it, newest first."""
    tag_map: dict[str, list[RoutedPost]] = {}
    for item in posts:
        for tag in item.post.tags:
            tag_map.setdefault(tag, []).append(item)
    return {tag: sort_by_date(items) for tag, items in tag_map.items()}


def synthetic_routes(config: SiteConfig, tags: Iterable[str]) -> list[Route]:
    urls = ["/", "/404.html", "/feed.xml", "/sitemap.xml", config.tag_archive_path]
    if config.search:
        urls.extend(["/search/", "/search.json"])
    urls.extend(tag_url(config, slug) for slug in tag_slugs(tags).values())
    return [Route(url=url, output_path=output_path_for(url), source="(generated)") for url in urls]


def related_posts(item: RoutedPost, posts: Sequence[RoutedPost], limit: int) -> list[RoutedPost]:
    """Other posts ranked by shared tag count, then by newest date."""
    if limit <= 0 or not item.post.tags:
        return []
    scored = []
    for other in posts:
        if other.post.source == item.post.source or not other.post.is_post:
            continue
        shared = len(item.post.tags & other.post.tags)
        if shared:
            scored.append((shared, other))
    scored.sort(key=lambda pair: (-pair[0], -pair[1].post.date.timestamp(), pair[1].post.source))
    return [other for _, other in scored[:limit]]


def href(config: SiteConfig, url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    return f"{config.baseurl}{url}"


def absolute_url(config: SiteConfig, url: str) -> str:
    return join_url(config.site_url, url) if url != "/" else config.site_url + "/"


def build_tag_chips(config: SiteConfig, tags: Iterable[str], slugs: Mapping[str, str]) -> str:
    chips = []
    for tag in sorted(tags, key=tag_order):
        if tag in slugs:
            link = html.escape(href(config, tag_url(config, slugs[tag])))
            chips.append(f'<a class="chip" href="{link}" rel="tag">{html.escape(tag)}</a>')
        else:
            # only carried by pages, so it has no archive
            chips.append(f'<span class="chip">{html.escape(tag)}</span>')
    return f'<div class="post-tags">{" ".join(chips)}</div>' if chips else ""


def build_post_list(config: SiteConfig, posts: Sequence[RoutedPost], slugs: Mapping[str, str]) -> str:
    if not posts:
        return '<p class="archive-empty">No posts yet.</p>'
    rows = []
    for item in posts:
        post = item.post
        excerpt = ""
        if config.show_excerpts and post.excerpt:
            excerpt = f'<p class="archive__item-excerpt">{html.escape(post.excerpt)}</p>'
        rows.append(
            '<article class="archive__item">'
            f'<h2 class="archive__item-title"><a href="{html.escape(href(config, item.url))}">'
            f"{html.escape(post.title)}</a></h2>"
            f'<p class="page__meta"><time datetime="{iso_date(post.date)}">{post.date.strftime(DATE_FMT)}</time></p>'
            f"{excerpt}"
            f"{build_tag_chips(config, post.tags, slugs)}"
            "</article>"
        )
    return "\n".join(rows)


def build_author_profile(theme: Theme, config: SiteConfig) -> str:
    author = config.author
    if not author.name:
        return ""
    links = []
    if author.location:
        links.append(f'<li class="author__location">{html.escape(author.location)}</li>')
    if author.github:
        links.append(
            f'<li><a href="https://github.com/{quote(author.github)}" rel="nofollow noopener">GitHub</a></li>'
        )
    if author.linkedin:
        links.append(f'<li><a href="{html.escape(author.linkedin)}" rel="nofollow noopener">LinkedIn</a></li>')
    if author.email:
        links.append(f'<li><a href="mailto:{html.escape(author.email)}">Email</a></li>')
    avatar = ""
    if author.avatar:
        avatar = (
            f'<div class="author__avatar"><img src="{html.escape(href(config, author.avatar))}" '
            f'alt="{html.escape(author.name)}"></div>'
        )
    return render_template(
        theme.include("author-profile"),
        {
            "author_avatar": avatar,
            "author_name": html.escape(author.name),
            "author_bio": html.escape(author.bio),
            "author_links": "".join(links),
        },
    )


def build_share_links(theme: Theme, config: SiteConfig, item: RoutedPost) -> str:
    page_url = quote(absolute_url(config, item.url), safe="")
    title = quote(item.post.title, safe="")
    return render_template(
        theme.include("share"),
        {
            "share_x": html.escape(f"https://x.com/intent/tweet?text={title}&url={page_url}"),
            "share_facebook": html.escape(f"https://www.facebook.com/sharer/sharer.php?u={page_url}"),
            "share_linkedin": html.escape(f"https://www.linkedin.com/sharing/share-offsite/?url={page_url}"),
        },
    )


def build_comments(theme: Theme, config: SiteConfig) -> str:
    """Placeholder element the provider's client script fills in the browser."""
    comments = config.comments
    if not comments.enabled:
        return ""
    attrs = [f'data-provider="{html.escape(comments.provider)}"']
    if config.repository:
        attrs.append(f'data-repository="{html.escape(config.repository)}"')
    for key, value in sorted(comments.settings.items()):
        name = str(key).replace("_", "-")
        attrs.append(f'data-{html.escape(name)}="{html.escape(str(value))}"')
    return render_template(theme.include("comments"), {"comments_attrs": " ".join(attrs)})


def build_related(config: SiteConfig, related: Sequence[RoutedPost]) -> str:
    if not related:
        return ""
    items = "".join(
        f'<li><a href="{html.escape(href(config, other.url))}">{html.escape(other.post.title)}</a>'
        f'<span class="archive-date">{other.post.date.strftime(DATE_FMT)}</span></li>'
        for other in related
    )
    return (
        '<div class="page__related"><h2 class="page__related-title">You may also enjoy</h2>'
        f'<ul class="related-list">{items}</ul></div>'
    )


def build_footer_links(config: SiteConfig) -> str:
    items = [
        f'<li><a href="{html.escape(link.url)}" rel="nofollow noopener">'
        f'<i class="{html.escape(link.icon)}" aria-hidden="true"></i> {html.escape(link.label)}</a></li>'
        for link in config.footer_links
        if link.url
    ]
    return f'<ul class="social-icons">{"".join(items)}</ul>' if items else ""


def build_nav(config: SiteConfig) -> str:
    links = [("Posts", "/"), ("Tags", config.tag_archive_path)]
    if config.search:
        links.append(("Search", "/search/"))
    return "".join(
        f'<li class="masthead__menu-item"><a href="{html.escape(href(config, url))}">{label}</a></li>'
        for label, url in links
    )


def base_context(config: SiteConfig, page_title: str) -> dict[str, str]:
    year = dt.date.today().year
    copyright_html = ""
    if config.copyright:
        copyright_html = f"&copy; {year} {html.escape(config.copyright)}."
    skin = config.skin or "default"
    return {
        "lang": html.escape(config.locale),
        "title": html.escape(page_title),
        "site_title": html.escape(config.title),
        "site_subtitle": html.escape(config.subtitle),
        "site_description": html.escape(config.description),
        "baseurl": html.escape(config.baseurl),
        "skin": html.escape(skin),
        "nav": build_nav(config),
        "footer_links": build_footer_links(config),
        "copyright": copyright_html,
        "year": str(year),
        "feed_url": html.escape(href(config, "/feed.xml")),
        "extra_head": "",
        "classes": "",
    }


def assemble_post(
    theme: Theme,
    config: SiteConfig,
    item: RoutedPost,
    posts: Sequence[RoutedPost],
    slugs: Optional[Mapping[str, str]] = None,
) -> RenderedPage:
    post = item.post
    if slugs is None:
        slugs = site_tags(posts)
    layout = str(post.get("layout") or DEFAULT_LAYOUT)
    context = base_context(config, f"{post.title} | {config.title}")
    date_html = ""
    if parse_bool(post.get("show_date", post.is_post)):
        date_html = (
            f'<p class="page__date"><time datetime="{iso_date(post.date)}">'
            f"{post.date.strftime(DATE_FMT)}</time></p>"
        )
    if parse_bool(post.get("read_time")):
        minutes = max(1, round(count_words(strip_tags(item.html)) / WORDS_PER_MINUTE))
        date_html += f'<p class="page__read-time">{minutes} minute read</p>'
    toc_html = ""
    if parse_bool(post.get("toc")) and item.toc and "<li" in item.toc:
        toc_html = f'<aside class="toc"><h4 class="nav__title">Contents</h4>{item.toc}</aside>'
    context.update(
        {
            "content": item.html,
            "layout_name": html.escape(layout),
            "page_title": html.escape(post.title),
            "page_url": html.escape(absolute_url(config, item.url)),
            "excerpt": html.escape(post.excerpt),
            "date": date_html,
            "toc": toc_html,
            "tags": build_tag_chips(config, post.tags, slugs),
            "classes": html.escape(str(post.get("classes") or "")),
            "author_profile": build_author_profile(theme, config)
            if parse_bool(post.get("author_profile"))
            else "",
            "related": build_related(config, related_posts(item, posts, config.related_limit))
            if parse_bool(post.get("related"))
            else "",
            "comments": build_comments(theme, config) if parse_bool(post.get("comments")) else "",
            "share": build_share_links(theme, config, item) if parse_bool(post.get("share")) else "",
        }
    )
    try:
        document = theme.render(layout, context)
    except TemplateMissingError as exc:
        raise TemplateMissingError(exc.name, exc.kind, post.source) from exc
    return RenderedPage(output_path=item.output_path, html=document, post=post)


def assemble_posts(
    theme: Theme, config: SiteConfig, items: Sequence[RoutedPost]
) -> tuple[list[RenderedPage], list[PostpressError]]:
    listed = [item for item in items if item.post.is_post]
    slugs = site_tags(listed)
    pages: list[RenderedPage] = []
    errors: list[PostpressError] = []
    for item in items:
        try:
            pages.append(assemble_post(theme, config, item, listed, slugs))
        except TemplateMissingError as exc:
            errors.append(exc)
    return pages, errors


def _listing_page(theme: Theme, config: SiteConfig, layout: str, url: str, title: str, heading: str, body: str) -> RenderedPage:
    context = base_context(config, title)
    context.update({"content": body, "page_title": html.escape(heading), "layout_name": layout})
    return RenderedPage(output_path=output_path_for(url), html=theme.render(layout, context))


def build_index(theme: Theme, config: SiteConfig, posts: Sequence[RoutedPost]) -> RenderedPage:
    body = f'<div class="entries-list">{build_post_list(config, sort_by_date(posts), site_tags(posts))}</div>'
    return _listing_page(theme, config, "home", "/", config.title, "Recent posts", body)


def build_tag_archives(theme: Theme, config: SiteConfig, posts: Sequence[RoutedPost]) -> list[RenderedPage]:
    slugs = site_tags(posts)
    pages = []
    for tag, items in sorted(collect_tags(posts).items(), key=lambda pair: slugs[pair[0]]):
        body = f'<div class="entries-list">{build_post_list(config, items, slugs)}</div>'
        pages.append(
            _listing_page(
                theme,
                config,
                "archive",
                tag_url(config, slugs[tag]),
                f"{tag} | {config.title}",
                f"Posts tagged {tag}",
                body,
            )
        )
    return pages


def build_tag_index(theme: Theme, config: SiteConfig, posts: Sequence[RoutedPost]) -> RenderedPage:
    slugs = site_tags(posts)
    tag_map = collect_tags(posts)
    rows = [
        f'<li><a href="{html.escape(href(config, tag_url(config, slugs[tag])))}">'
        f'{html.escape(tag)}</a><span class="taxonomy__count">{len(items)}</span></li>'
        for tag, items in sorted(tag_map.items(), key=lambda pair: (-len(pair[1]), tag_order(pair[0])))
    ]
    body = (
        f'<ul class="taxonomy__index">{"".join(rows)}</ul>'
        if rows
        else '<p class="archive-empty">No tags yet.</p>'
    )
    return _listing_page(theme, config, "archive", config.tag_archive_path, f"Tags | {config.title}", "Posts by tag", body)


def build_search(theme: Theme, config: SiteConfig) -> RenderedPage:
    body = (
        '<div class="search-bar">'
        '<input id="search-input" class="search-input" type="search" placeholder="Enter your search term..." />'
        '<div id="search-status" class="search-status"></div>'
        "</div>"
        f'<div id="search-results" class="entries-list" data-index="{html.escape(href(config, "/search.json"))}"></div>'
    )
    return _listing_page(theme, config, "archive", "/search/", f"Search | {config.title}", "Search", body)


def build_search_index(config: SiteConfig, posts: Sequence[RoutedPost]) -> RenderedPage:
    index = [
        {
            "title": item.post.title,
            "url": href(config, item.url),
            "excerpt": item.post.excerpt,
            "date": item.post.date.strftime(DATE_FMT),
            "tags": sorted(item.post.tags, key=tag_order),
        }
        for item in sort_by_date(posts)
    ]
    return RenderedPage(output_path="search.json", html=json.dumps(index, indent=2, ensure_ascii=True))


def build_404(theme: Theme, config: SiteConfig) -> RenderedPage:
    body = (
        '<p class="page__lead">Sorry, but the page you were trying to view does not exist.</p>'
        f'<p><a href="{html.escape(href(config, "/"))}">Back to the posts</a></p>'
    )
    return _listing_page(theme, config, "archive", "/404.html", f"Page Not Found | {config.title}", "Page Not Found", body)


def build_atom(config: SiteConfig, posts: Sequence[RoutedPost]) -> RenderedPage:
    site_url = config.site_url
    ordered = sort_by_date(posts)
    updated = iso_date(ordered[0].post.date) if ordered else iso_date(dt.datetime.now(dt.timezone.utc))
    entries = []
    for item in ordered[: config.feed_limit]:
        link = absolute_url(config, item.url)
        categories = "".join(f'<category term="{html.escape(tag)}" />' for tag in sorted(item.post.tags))
        entries.append(
            "\n".join(
                [
                    "<entry>",
                    f"<title>{html.escape(item.post.title)}</title>",
                    f'<link href="{html.escape(link)}" rel="alternate" type="text/html" />',
                    f"<id>{html.escape(link)}</id>",
                    f"<published>{iso_date(item.post.date)}</published>",
                    f"<updated>{iso_date(item.post.date)}</updated>",
                    f"<summary>{html.escape(item.post.excerpt)}</summary>",
                    categories,
                    "</entry>",
                ]
            )
        )
    author = f"<author><name>{html.escape(config.author.name)}</name></author>" if config.author.name else ""
    atom = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{html.escape(config.title)}</title>",
            f"<subtitle>{html.escape(config.subtitle or config.description)}</subtitle>",
            f"<id>{html.escape(site_url)}/</id>",
            f"<updated>{updated}</updated>",
            f'<link href="{html.escape(join_url(site_url, "feed.xml"))}" rel="self" />',
            f'<link href="{html.escape(site_url)}/" />',
            author,
            "\n".join(entries),
            "</feed>",
        ]
    )
    return RenderedPage(output_path="feed.xml", html=atom)


def build_sitemap(config: SiteConfig, items: Sequence[RoutedPost], tags: Iterable[str]) -> RenderedPage:
    urls: list[tuple[str, Optional[dt.datetime]]] = [(absolute_url(config, "/"), None)]
    urls.append((absolute_url(config, config.tag_archive_path), None))
    for slug in sorted(tag_slugs(tags).values()):
        urls.append((absolute_url(config, tag_url(config, slug)), None))
    if config.search:
        urls.append((absolute_url(config, "/search/"), None))
    for item in sort_by_date(items):
        if parse_bool(item.post.get("sitemap", True)):
            urls.append((absolute_url(config, item.url), item.post.date))
    rows = []
    for url, lastmod in urls:
        lastmod_xml = f"\n<lastmod>{lastmod.date().isoformat()}</lastmod>" if lastmod else ""
        rows.append(f"<url>\n<loc>{html.escape(url)}</loc>{lastmod_xml}\n</url>")
    sitemap = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(rows),
            "</urlset>",
        ]
    )
    return RenderedPage(output_path="sitemap.xml", html=sitemap)


def build_syntax_css(config: SiteConfig) -> RenderedPage:
    style = "monokai" if config.skin in DARK_SKINS else "default"
    css = HtmlFormatter(style=style).get_style_defs(".highlight")
    return RenderedPage(output_path="assets/css/syntax.css", html=css + "\n")


def assemble_site(theme: Theme, config: SiteConfig, items: Sequence[RoutedPost]) -> tuple[list[RenderedPage], list[PostpressError]]:
    """Every output page of the site, plus the per-post errors met on the way."""
    pages, errors = assemble_posts(theme, config, items)
    listed = [item for item in items if item.post.is_post]
    pages.append(build_index(theme, config, listed))
    pages.append(build_tag_index(theme, config, listed))
    pages.extend(build_tag_archives(theme, config, listed))
    if config.search:
        pages.append(build_search(theme, config))
        pages.append(build_search_index(config, listed))
    pages.append(build_404(theme, config))
    pages.append(build_atom(config, listed))
    pages.append(build_sitemap(config, items, site_tags(listed)))
    pages.append(build_syntax_css(config))
    return pages, errors
