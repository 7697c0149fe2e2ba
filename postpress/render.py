from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .errors import ConfigError

PLACEHOLDER_RE = re.compile(r"\{\{\s*(?P<key>[A-Za-z_][\w.]*)\s*\}\}")
INCLUDE_RE = re.compile(r"\{\{>\s*(?P<name>[\w./-]+)\s*\}\}")
MAX_INCLUDE_DEPTH = 10


def render_template(template: str, context: Mapping[str, object]) -> str:
    """Substitute ``{{key}}`` placeholders in one pass; unknown keys become empty."""

    def repl(match: re.Match) -> str:
        value = context.get(match.group("key"))
        return "" if value is None else str(value)

    return PLACEHOLDER_RE.sub(repl, template)


def expand_includes(template: str, load: Callable[[str], str], depth: int = 0) -> str:
    if depth > MAX_INCLUDE_DEPTH:
        raise ConfigError("template include nesting is too deep")

    def repl(match: re.Match) -> str:
        return expand_includes(load(match.group("name")), load, depth + 1)

    return INCLUDE_RE.sub(repl, template)


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def copy_static(static_dir: Path, output_dir: Path, exclude: Iterable[str] = ()) -> int:
    """Copy a static tree into ``output_dir``; returns the number of files copied."""
    skipped = set(exclude)
    copied = 0
    for item in sorted(static_dir.iterdir()):
        if item.name in skipped:
            continue
        dest = output_dir / item.name
        if item.is_dir():
            shutil.copytree(item, dest, dirs_exist_ok=True)
            copied += sum(1 for path in item.rglob("*") if path.is_file())
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, dest)
            copied += 1
    return copied
