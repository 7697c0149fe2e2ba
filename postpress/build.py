"""The build pipeline: discover, resolve, render, route, assemble, publish."""

from __future__ import annotations

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cache import CACHE_NAME, RenderCache
from .config import DEFAULT_CONFIG_NAME, SiteConfig, load_config
from .content import CONTENT_SUFFIXES, Post, discover, read_document
from .errors import BuildFailed, PostpressError
from .frontmatter import resolve_post
from .markup import MarkupRenderer, RenderResult
from .pages import RoutedPost, assemble_site, site_tags, synthetic_routes
from .permalink import assign_permalinks
from .render import copy_static, write_text
from .theme import Theme
from .utils import check_output_dir, make_staging_dir, parse_list, swap_into_place

logger = logging.getLogger(__name__)

MAX_WORKERS = 32
STATIC_EXCLUDES = {"Gemfile", "Gemfile.lock", "node_modules", "vendor", "CNAME.example"}
REQUIRED_LAYOUTS = ("home", "archive")


@dataclass
class BuildOptions:
    site_root: Path
    config_path: Optional[Path] = None
    destination: Optional[Path] = None
    drafts: bool = False
    workers: int = 0
    use_cache: bool = True
    strict_assets: Optional[bool] = None


@dataclass
class BuildReport:
    output_dir: Path
    posts: int = 0
    pages: int = 0
    static_files: int = 0
    warnings: list[PostpressError] = field(default_factory=list)
    cache_hits: int = 0
    elapsed: float = 0.0


@dataclass
class ProcessedDocument:
    post: Optional[Post] = None
    result: Optional[RenderResult] = None
    errors: list[PostpressError] = field(default_factory=list)
    warnings: list[PostpressError] = field(default_factory=list)


def resolve_workers(requested: int, jobs: int) -> int:
    workers = requested if requested > 0 else (os.cpu_count() or 1)
    workers = max(1, min(workers, MAX_WORKERS))
    return max(1, min(workers, jobs)) if jobs else 1


def resolve_paths(options: BuildOptions) -> tuple[Path, Path]:
    site_root = options.site_root.resolve()
    config_path = options.config_path or Path(DEFAULT_CONFIG_NAME)
    if not config_path.is_absolute():
        config_path = site_root / config_path
    return site_root, config_path


def output_dir_for(options: BuildOptions, config: SiteConfig, site_root: Path) -> Path:
    destination = options.destination or Path(config.destination)
    if not destination.is_absolute():
        destination = site_root / destination
    return destination


def static_excludes(config: SiteConfig, config_path: Path, output_dir: Path) -> set[str]:
    excludes = set(STATIC_EXCLUDES)
    excludes.update({config_path.name, output_dir.name, CACHE_NAME})
    excludes.update(parse_list(config.raw.get("exclude")))
    return excludes


def copy_site_static(site_root: Path, staging: Path, excludes: set[str]) -> int:
    """Copy top-level files and folders that are not content, config, or hidden."""
    skipped = set(excludes)
    for item in site_root.iterdir():
        if item.name.startswith(("_", ".")):
            skipped.add(item.name)
        elif item.is_file() and item.suffix.lower() in CONTENT_SUFFIXES:
            skipped.add(item.name)
    return copy_static(site_root, staging, exclude=skipped)


class SiteBuilder:
    def __init__(self, options: BuildOptions) -> None:
        self.options = options
        self.site_root, self.config_path = resolve_paths(options)
        self.config = load_config(self.config_path)
        self.theme = Theme.resolve(self.config, self.site_root)
        for name in REQUIRED_LAYOUTS:
            self.theme.layout(name)
        self.output_dir = output_dir_for(options, self.config, self.site_root)
        check_output_dir(self.output_dir, self.site_root)
        self.strict_assets = (
            self.config.strict_assets if options.strict_assets is None else options.strict_assets
        )
        self.renderer = MarkupRenderer.from_config(self.config, self.site_root)
        self.cache = None
        if options.use_cache:
            self.cache = RenderCache(
                self.site_root / CACHE_NAME, self.site_root, self.config.images_dir, self.config.baseurl
            )

    def render_body(self, post: Post) -> RenderResult:
        if self.cache is None:
            return self.renderer.render(post.body, post.source)
        key = RenderCache.key_for(post.body, self.renderer.settings_key_for(post.source))
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = self.renderer.render(post.body, post.source)
        self.cache.put(key, result)
        return result

    def process(self, path: Path) -> ProcessedDocument:
        processed = ProcessedDocument()
        try:
            raw = read_document(path, self.site_root, self.config.encoding)
            post = resolve_post(raw, self.config)
        except PostpressError as exc:
            processed.errors.append(exc)
            return processed
        except (OSError, UnicodeDecodeError) as exc:
            source = path.relative_to(self.site_root).as_posix()
            processed.errors.append(PostpressError(f"cannot read file: {exc}", source))
            return processed
        if not post.get("published", True):
            logger.debug("Skipping unpublished %s", post.source)
            return processed
        result = self.render_body(post)
        for missing in result.missing_assets:
            if self.strict_assets:
                processed.errors.append(missing)
            else:
                processed.warnings.append(missing)
        processed.post = post
        processed.result = result
        return processed

    def process_all(self, files: list[Path]) -> list[ProcessedDocument]:
        workers = resolve_workers(self.options.workers, len(files))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                return list(executor.map(self.process, files))
        return [self.process(path) for path in files]

    def publish(self, pages, excludes: set[str]) -> int:
        staging = make_staging_dir(self.output_dir)
        try:
            static_files = 0
            if self.theme.assets_dir.is_dir():
                static_files += copy_static(self.theme.assets_dir, staging / "assets")
            static_files += copy_site_static(self.site_root, staging, excludes)
            for page in pages:
                write_text(staging / page.output_path, page.html)
            swap_into_place(staging, self.output_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return static_files

    def build(self) -> BuildReport:
        start = time.perf_counter()
        files = discover(self.site_root, include_drafts=self.options.drafts)
        logger.info("Found %d content files in %s", len(files), self.site_root)
        processed = self.process_all(files)

        errors: list[PostpressError] = []
        warnings: list[PostpressError] = []
        posts: list[Post] = []
        results: dict[str, RenderResult] = {}
        for item in processed:
            errors.extend(item.errors)
            warnings.extend(item.warnings)
            if item.post is not None and item.result is not None:
                posts.append(item.post)
                results[item.post.source] = item.result

        listed_tags = {tag for post in posts if post.is_post for tag in post.tags}
        reserved = synthetic_routes(self.config, listed_tags)
        routes, collisions = assign_permalinks(posts, self.config.permalink, reserved)
        errors.extend(collisions)
        items = [
            RoutedPost(
                post=post,
                url=routes[post.source].url,
                output_path=routes[post.source].output_path,
                html=results[post.source].html,
                toc=results[post.source].toc,
            )
            for post in posts
            if post.source in routes
        ]
        pages, assemble_errors = assemble_site(self.theme, self.config, items)
        errors.extend(assemble_errors)
        for warning in warnings:
            logger.warning("%s", warning)
        if errors:
            raise BuildFailed(errors)

        excludes = static_excludes(self.config, self.config_path, self.output_dir)
        static_files = self.publish(pages, excludes)
        if self.cache is not None:
            self.cache.save()
        report = BuildReport(
            output_dir=self.output_dir,
            posts=sum(1 for item in items if item.post.is_post),
            pages=len(pages),
            static_files=static_files,
            warnings=warnings,
            cache_hits=self.cache.hits if self.cache is not None else 0,
            elapsed=time.perf_counter() - start,
        )
        logger.info(
            "Wrote %d pages for %d posts (%d tags) to %s",
            report.pages,
            report.posts,
            len(site_tags(items)),
            self.output_dir,
        )
        return report


def build_site(options: BuildOptions) -> BuildReport:
    return SiteBuilder(options).build()
