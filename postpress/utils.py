from __future__ import annotations

import datetime as dt
import re
import shutil
import tempfile
from pathlib import Path

from .errors import ConfigError


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_list(value: object) -> list[str]:
    """Accept a YAML list, a ``[a, b]`` string, or a comma/space separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(item).strip() for item in value]
        return [item for item in items if item]
    text = str(value).strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
        items = [item.strip().strip("'\"") for item in text.split(",")]
    elif "," in text:
        items = [item.strip() for item in text.split(",")]
    else:
        items = text.split()
    return [item for item in items if item]


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return base
    return f"{base}/{path}"


def iso_date(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


TAG_RE = re.compile(r"<[^>]+>")


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def check_output_dir(output_dir: Path, project_root: Path) -> None:
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise ConfigError("Refusing to write the site into the project root.")
    if root_resolved.is_relative_to(output_resolved):
        raise ConfigError(f"Output directory {output_dir} contains the source tree.")


def make_staging_dir(output_dir: Path) -> Path:
    output_dir.parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{output_dir.name}-staging-", dir=output_dir.parent))


def swap_into_place(staging_dir: Path, output_dir: Path) -> None:
    """Replace ``output_dir`` with ``staging_dir`` using renames on the same filesystem."""
    backup = None
    if output_dir.exists():
        backup = output_dir.with_name(f".{output_dir.name}-previous")
        if backup.exists():
            shutil.rmtree(backup)
        output_dir.rename(backup)
    try:
        staging_dir.rename(output_dir)
    except OSError:
        if backup is not None:
            backup.rename(output_dir)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)
