"""Markup to HTML rendering.

Bodies are rendered with python-markdown plus one extension that walks the
source line by line with an explicit context (``normal``, ``in-fence``,
``in-table``).  Fenced blocks are lifted out before python-markdown normalises
whitespace, so their text reaches the output exactly as written.

Files with an AsciiDoc suffix get the same treatment plus a translation of the
AsciiDoc block and inline constructs a technical blog uses: ``|===`` tables,
``____`` quote blocks, ``*``/``.`` lists, admonition paragraphs, listing
blocks and constrained ``*strong*`` text.
"""

from __future__ import annotations

import html
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import markdown
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor
from markdown.treeprocessors import Treeprocessor
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import is_asciidoc
from .errors import MissingAssetError

logger = logging.getLogger(__name__)

NORMAL = "normal"
IN_FENCE = "in-fence"
IN_TABLE = "in-table"

FENCE_OPEN_RE = re.compile(r"^(?P<indent>[ \t]{0,3})(?P<marker>`{3,}|~{3,})[ \t]*\{?\.?(?P<lang>[\w+#.-]*)")
SOURCE_ATTR_RE = re.compile(r"^\[source\s*(?:,\s*(?P<lang>[\w+#.-]+))?[^\]]*\]\s*$")
LISTING_RE = re.compile(r"^(?P<marker>-{4,}|\.{4,})\s*$")
TABLE_SEP_RE = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)+\|?\s*$|^\s*\|\s*:?-+:?\s*\|\s*$")
IMAGE_DIRECTIVE_RE = re.compile(r"^image::(?P<path>[^\[\s]+)\[(?P<attrs>[^\]]*)\]\s*$")
ADOC_HEADING_RE = re.compile(r"^(?P<level>={1,6})[ \t]+(?P<text>\S.*)$")
LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
DOUBLE_QUOTE_RE = re.compile(r"^(?P<indent>[ \t]*)>>(?!>)(?P<rest>.*)$")
EXTERNAL_SRC = ("http://", "https://", "data:", "//", "#")

BLOCK_ATTR_RE = re.compile(r"^\[\[?[^\[\]]*\]?\]\s*$")
TABLE_DELIM_RE = re.compile(r"^\|={3,}\s*$")
QUOTE_DELIM_RE = re.compile(r"^_{4,}\s*$")
COMMENT_BLOCK_RE = re.compile(r"^/{4,}\s*$")
COMMENT_LINE_RE = re.compile(r"^//(?!/)")
DOC_ATTR_RE = re.compile(r"^:!?[\w-]+!?:(?:\s.*)?$")
BLOCK_TITLE_RE = re.compile(r"^\.(?P<title>[^.\s].*)$")
ADOC_LIST_RE = re.compile(r"^(?P<marker>\*{1,5}|\.{1,5}|-)[ \t]+(?P<text>\S.*)$")
ADMONITION_RE = re.compile(r"^(?P<kind>NOTE|TIP|IMPORTANT|WARNING|CAUTION):[ \t]+(?P<text>.*)$")
COLS_RE = re.compile(r'cols\s*=\s*(?:"(?P<quoted>[^"]*)"|(?P<bare>[^,\]\s]+))')
CODE_SPAN_RE = re.compile(r"(`+)(.+?)\1")
LINK_MACRO_RE = re.compile(r"(?:link:(?P<target>[^\s\[]+)|(?P<url>https?://[^\s\[]+))\[(?P<text>[^\]]*)\]")
CONSTRAINED_STRONG_RE = re.compile(r"(?<![\w*])\*(?=[^\s*])([^*\n]*?[^\s*])\*(?![\w*])")


@dataclass
class RenderResult:
    html: str
    toc: str = ""
    missing_assets: list[MissingAssetError] = field(default_factory=list)
    images: list[str] = field(default_factory=list)


def highlight_code(code: str, lang: str, copy_button: bool = False) -> str:
    """Render a code block; the text content of ``<code>`` equals ``code``."""
    lang = (lang or "").strip().lower()
    body = None
    if lang and lang not in {"text", "plain", "plaintext"}:
        try:
            lexer = get_lexer_by_name(lang, stripnl=False, stripall=False, ensurenl=False)
        except ClassNotFound:
            logger.debug("No lexer for language %r, rendering as plain text", lang)
        else:
            body = highlight(code, lexer, HtmlFormatter(nowrap=True))
            if not code.endswith("\n") and body.endswith("\n"):
                body = body[:-1]
    if body is None:
        body = html.escape(code)
    classes = f"language-{html.escape(lang)} highlighter-pygments" if lang else "highlighter-pygments"
    copy_attr = ' data-copy="true"' if copy_button else ""
    return (
        f'<div class="{classes}"{copy_attr}>'
        f'<div class="highlight"><pre class="highlight"><code>{body}</code></pre></div>'
        "</div>"
    )


def is_table_start(line: str, next_line: str | None) -> bool:
    return "|" in line and next_line is not None and bool(TABLE_SEP_RE.match(next_line))


def image_directive_to_markdown(line: str) -> str | None:
    match = IMAGE_DIRECTIVE_RE.match(line.strip())
    if not match:
        return None
    alt = match.group("attrs").split(",", 1)[0].strip().strip("\"'")
    return f"![{alt}](<{match.group('path')}>)"


def _link_macro(match: re.Match) -> str:
    target = match.group("target") or match.group("url")
    return f"[{match.group('text') or target}](<{target}>)"


def _asciidoc_text(text: str) -> str:
    text = LINK_MACRO_RE.sub(_link_macro, text)
    return CONSTRAINED_STRONG_RE.sub(r"**\1**", text)


def asciidoc_inline(text: str) -> str:
    """Rewrite AsciiDoc inline markup into Markdown, leaving code spans alone."""
    parts = []
    last = 0
    for match in CODE_SPAN_RE.finditer(text):
        parts.append(_asciidoc_text(text[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(_asciidoc_text(text[last:]))
    return "".join(parts)


def inline_html(text: str) -> str:
    rendered = markdown.markdown(text)
    if rendered.startswith("<p>") and rendered.endswith("</p>"):
        rendered = rendered[3:-4]
    return rendered


def table_columns(attrs: str) -> Optional[int]:
    match = COLS_RE.search(attrs)
    if not match:
        return None
    spec = (match.group("quoted") or match.group("bare") or "").strip()
    multiplier = re.match(r"^(\d+)\*", spec)
    if multiplier:
        return int(multiplier.group(1))
    if spec.isdigit():
        return int(spec)
    return len([col for col in spec.split(",") if col.strip()]) or None


def asciidoc_table(lines: list[str], attrs: str = "") -> str:
    """HTML for the body of a ``|===`` table.

    Cells may sit one per line or several per line. The first row is a header
    when the block asks for one or when it is followed by a blank line.
    """
    content = [line.strip() for line in lines]
    filled = [index for index, line in enumerate(content) if line]
    if not filled:
        return "<table></table>"
    first = filled[0]
    implicit_header = first + 1 < len(content) and not content[first + 1] and content[first].startswith("|")
    cells: list[str] = []
    first_count = None
    for line in content:
        if not line:
            continue
        pieces = line.split("|")
        if pieces[0].strip() and cells:
            cells[-1] = f"{cells[-1]} {pieces[0].strip()}"
        cells.extend(piece.strip() for piece in pieces[1:])
        if first_count is None:
            first_count = len(pieces) - 1
    columns = table_columns(attrs) or first_count or 1
    rows = [cells[start : start + columns] for start in range(0, len(cells), columns)]
    if rows and len(rows[-1]) < columns:
        rows[-1] = rows[-1] + [""] * (columns - len(rows[-1]))
    header = rows.pop(0) if rows and ("header" in attrs or implicit_header) else None
    parts = ["<table>"]
    if header is not None:
        heads = "".join(f"<th>{inline_html(asciidoc_inline(cell))}</th>" for cell in header)
        parts.append(f"<thead><tr>{heads}</tr></thead>")
    parts.append("<tbody>")
    for row in rows:
        parts.append("<tr>" + "".join(f"<td>{inline_html(asciidoc_inline(cell))}</td>" for cell in row) + "</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def locate_image(site_root: Path, src: str, images_dir: str = "", baseurl: str = "") -> Optional[Path]:
    """The file under ``site_root`` an image reference points at, if it exists."""
    clean = src.split("#", 1)[0].split("?", 1)[0]
    images_dir = images_dir.strip("/")
    baseurl = baseurl.rstrip("/")
    if clean.startswith("/"):
        relative = clean.lstrip("/")
        if baseurl and clean.startswith(baseurl + "/"):
            relative = clean[len(baseurl) + 1 :]
    elif images_dir:
        relative = f"{images_dir}/{clean}"
    else:
        relative = clean
    path = (site_root / relative).resolve()
    if not path.is_relative_to(site_root.resolve()) or not path.is_file():
        return None
    return path


class ContextPreprocessor(Preprocessor):
    """Single pass over the raw lines tracking the current block context."""

    def __init__(self, md: markdown.Markdown, ext: "PostpressExtension") -> None:
        super().__init__(md)
        self.ext = ext
        self.block_attrs = ""
        self.quoting = False

    def run(self, lines: list[str]) -> list[str]:
        out: list[str] = []
        state = NORMAL
        fence_marker = ""
        fence_lang = ""
        fence_lines: list[str] = []
        self.block_attrs = ""
        self.quoting = False
        i = 0
        while i < len(lines):
            line = lines[i]
            next_line = lines[i + 1] if i + 1 < len(lines) else None

            if state == IN_FENCE:
                if self._closes_fence(line, fence_marker):
                    out.extend(["", self.ext.lift_block(fence_lines, fence_lang), ""])
                    state = NORMAL
                    fence_lines = []
                else:
                    fence_lines.append(line)
                i += 1
                continue

            if state == IN_TABLE:
                if not line.strip():
                    state = NORMAL
                out.append(line)
                i += 1
                continue

            fence_match = FENCE_OPEN_RE.match(line)
            if fence_match:
                state = IN_FENCE
                fence_marker = fence_match.group("marker")
                fence_lang = fence_match.group("lang")
                i += 1
                continue

            source_match = SOURCE_ATTR_RE.match(line)
            if source_match and next_line is not None and LISTING_RE.match(next_line):
                state = IN_FENCE
                fence_marker = LISTING_RE.match(next_line).group("marker")
                fence_lang = source_match.group("lang") or ""
                self.block_attrs = ""
                i += 2
                continue

            if self.ext.asciidoc:
                listing = LISTING_RE.match(line)
                if listing:
                    state = IN_FENCE
                    fence_marker = listing.group("marker")
                    fence_lang = ""
                    self.block_attrs = ""
                    i += 1
                    continue
                consumed = self._asciidoc_block(lines, i, out)
                if consumed:
                    i = consumed
                    continue

            if is_table_start(line, next_line):
                if out and out[-1].strip():
                    out.append("")
                state = IN_TABLE
                out.append(line)
                i += 1
                continue

            if self.ext.asciidoc:
                line = self._asciidoc_line(line)
            line = self._normalize_line(line, out)
            if self.quoting:
                line = f"> {line}" if line.strip() else ">"
            out.append(line)
            i += 1

        if state == IN_FENCE:
            # the final newline of the file is not part of the block
            if fence_lines and not fence_lines[-1]:
                fence_lines.pop()
            out.extend(["", self.ext.lift_block(fence_lines, fence_lang), ""])
        return out

    def _asciidoc_block(self, lines: list[str], i: int, out: list[str]) -> int:
        """Consume an AsciiDoc block construct at ``lines[i]``; 0 when there is none."""
        line = lines[i]
        if COMMENT_BLOCK_RE.match(line):
            return self._find_delimiter(lines, i) + 1
        if COMMENT_LINE_RE.match(line) or DOC_ATTR_RE.match(line):
            return i + 1
        if BLOCK_ATTR_RE.match(line):
            self.block_attrs = line.strip()
            return i + 1
        if TABLE_DELIM_RE.match(line):
            end = self._find_delimiter(lines, i)
            table = asciidoc_table(lines[i + 1 : end], self.block_attrs)
            out.extend(["", self.ext.stash(table), ""])
            self.block_attrs = ""
            return end + 1
        if QUOTE_DELIM_RE.match(line):
            self.quoting = not self.quoting
            self.block_attrs = ""
            out.append("")
            return i + 1
        return 0

    def _asciidoc_line(self, line: str) -> str:
        if line.strip():
            self.block_attrs = ""
        if IMAGE_DIRECTIVE_RE.match(line.strip()):
            return line
        admonition = ADMONITION_RE.match(line)
        if admonition:
            return f"> **{admonition.group('kind').capitalize()}:** {asciidoc_inline(admonition.group('text'))}"
        title = BLOCK_TITLE_RE.match(line)
        if title:
            return f"**{asciidoc_inline(title.group('title'))}**"
        item = ADOC_LIST_RE.match(line)
        if item:
            marker = item.group("marker")
            depth = 1 if marker == "-" else len(marker)
            bullet = "1." if marker.startswith(".") else "-"
            return f"{'    ' * (depth - 1)}{bullet} {asciidoc_inline(item.group('text'))}"
        if line.endswith(" +"):
            line = line[:-2] + "  "
        return asciidoc_inline(line)

    @staticmethod
    def _find_delimiter(lines: list[str], start: int) -> int:
        delimiter = lines[start].strip()
        for index in range(start + 1, len(lines)):
            if lines[index].strip() == delimiter:
                return index
        return len(lines)

    @staticmethod
    def _closes_fence(line: str, marker: str) -> bool:
        stripped = line.strip()
        if marker[0] in "-.":
            return stripped == marker
        return (
            len(stripped) >= len(marker)
            and set(stripped) == {marker[0]}
            and len(line) - len(line.lstrip()) <= 3
        )

    @staticmethod
    def _normalize_line(line: str, out: list[str]) -> str:
        image = image_directive_to_markdown(line)
        if image is not None:
            return image
        heading = ADOC_HEADING_RE.match(line)
        if heading:
            return "#" * len(heading.group("level")) + " " + heading.group("text")
        quote_match = DOUBLE_QUOTE_RE.match(line)
        if quote_match:
            rest = quote_match.group("rest").lstrip()
            line = f'{quote_match.group("indent")}> {rest}' if rest else f'{quote_match.group("indent")}>'
        list_match = LIST_MARKER_RE.match(line)
        if list_match and not list_match.group("indent"):
            if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                out.append("")
        return line


class StashPreprocessor(Preprocessor):
    """Swap lifted-block tokens for raw-HTML placeholders after whitespace normalisation."""

    def __init__(self, md: markdown.Markdown, ext: "PostpressExtension") -> None:
        super().__init__(md)
        self.ext = ext

    def run(self, lines: list[str]) -> list[str]:
        return [
            self.md.htmlStash.store(self.ext.blocks[line.strip()])
            if line.strip() in self.ext.blocks
            else line
            for line in lines
        ]


class ImageTreeprocessor(Treeprocessor):
    """Resolve image sources against the image directory and flag missing files."""

    def __init__(self, md: markdown.Markdown, ext: "PostpressExtension") -> None:
        super().__init__(md)
        self.ext = ext

    def run(self, root):
        for el in list(root.iter("img")):
            src = (el.get("src") or "").strip()
            if not src or src.startswith(EXTERNAL_SRC):
                continue
            public, found = self.ext.resolve_image(src)
            if found:
                el.set("src", public)
                self.ext.images.append(src)
                continue
            self.ext.missing.append(MissingAssetError(src, self.ext.source))
            alt = el.get("alt") or src
            el.tag = "span"
            el.attrib.clear()
            el.set("class", "missing-asset")
            el.set("title", f"missing image: {src}")
            el.text = alt
        return None


class PostpressExtension(Extension):
    def __init__(
        self,
        site_root: Path,
        images_dir: str = "",
        baseurl: str = "",
        copy_button: bool = False,
        source: str = "",
        asciidoc: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.site_root = site_root
        self.images_dir = images_dir.strip("/")
        self.baseurl = baseurl.rstrip("/")
        self.copy_button = copy_button
        self.source = source
        self.asciidoc = asciidoc
        self.token = uuid.uuid4().hex
        self.blocks: dict[str, str] = {}
        self.missing: list[MissingAssetError] = []
        self.images: list[str] = []

    def stash(self, fragment: str) -> str:
        key = f"postpressblock{self.token}x{len(self.blocks)}"
        self.blocks[key] = fragment
        return key

    def lift_block(self, lines: list[str], lang: str) -> str:
        code = "\n".join(lines) + "\n" if lines else ""
        return self.stash(highlight_code(code, lang, self.copy_button))

    def resolve_image(self, src: str) -> tuple[str, bool]:
        path = locate_image(self.site_root, src, self.images_dir, self.baseurl)
        if path is None:
            return src, False
        return f"{self.baseurl}/{path.relative_to(self.site_root.resolve()).as_posix()}", True

    def extendMarkdown(self, md: markdown.Markdown) -> None:
        md.preprocessors.register(ContextPreprocessor(md, self), "postpress_context", 35)
        md.preprocessors.register(StashPreprocessor(md, self), "postpress_stash", 29)
        md.treeprocessors.register(ImageTreeprocessor(md, self), "postpress_images", 15)


class MarkupRenderer:
    def __init__(
        self,
        site_root: Path,
        images_dir: str = "",
        baseurl: str = "",
        copy_button: bool = False,
        toc_depth: str = "2-4",
    ) -> None:
        self.site_root = site_root
        self.images_dir = images_dir
        self.baseurl = baseurl
        self.copy_button = copy_button
        self.toc_depth = toc_depth

    @classmethod
    def from_config(cls, config, site_root: Path) -> "MarkupRenderer":
        return cls(
            site_root,
            images_dir=config.images_dir,
            baseurl=config.baseurl,
            copy_button=config.enable_copy_code_button,
        )

    @property
    def settings_key(self) -> str:
        return "|".join(
            [self.images_dir, self.baseurl, str(self.copy_button), self.toc_depth]
        )

    def settings_key_for(self, source: str) -> str:
        flavor = "asciidoc" if is_asciidoc(source) else "markdown"
        return f"{self.settings_key}|{flavor}"

    def render(self, body: str, source: str = "") -> RenderResult:
        ext = PostpressExtension(
            self.site_root,
            images_dir=self.images_dir,
            baseurl=self.baseurl,
            copy_button=self.copy_button,
            source=source,
            asciidoc=is_asciidoc(source),
        )
        md = markdown.Markdown(
            extensions=[ext, "tables", "sane_lists", "toc"],
            extension_configs={"toc": {"toc_depth": self.toc_depth}},
        )
        html_content = md.convert(body)
        toc_html = md.toc
        md.reset()
        for error in ext.missing:
            logger.debug("%s", error)
        return RenderResult(
            html=html_content,
            toc=toc_html,
            missing_assets=list(ext.missing),
            images=list(ext.images),
        )
