"""Convert card Markdown to HTML for Anki fields.

Uses mistune for Markdown parsing, Pygments for optional syntax highlighting,
and nh3 for HTML sanitization.
"""

from __future__ import annotations

import html
import re

import mistune
import nh3
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name, guess_lexer
from pygments.util import ClassNotFound

from ..obsidian.metadata import FENCE_RE, INLINE_CODE_RE
from ..utils.logging import get_logger

logger = get_logger(__name__)

ALLOWED_TAGS = {
    "p",
    "br",
    "strong",
    "b",
    "em",
    "i",
    "u",
    "s",
    "del",
    "code",
    "pre",
    "ul",
    "ol",
    "li",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "blockquote",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "a",
    "img",
    "div",
    "span",
    "sup",
    "sub",
    "hr",
    "input",
}

_GLOBAL_ATTRIBUTES = {"class", "style"}

# "rel" is set through nh3's link_rel parameter
_TAG_SPECIFIC_ATTRIBUTES = {
    "a": {"href", "title"},
    "img": {"src", "alt", "title", "width", "height"},
    "td": {"colspan", "rowspan", "align"},
    "th": {"colspan", "rowspan", "align"},
    "input": {"type", "checked", "disabled"},
}

ALLOWED_ATTRIBUTES = {
    tag: _GLOBAL_ATTRIBUTES | _TAG_SPECIFIC_ATTRIBUTES.get(tag, set())
    for tag in ALLOWED_TAGS
}

# obsidian:// is needed for source back-links
URL_SCHEMES = {"http", "https", "mailto", "obsidian"}

CLOZE_NUMBER_RE = re.compile(r"\{\{c(\d+)::")
HIGHLIGHT_RE = re.compile(r"==([^=\n]+)==")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


class AnkiRenderer(mistune.HTMLRenderer):
    """mistune renderer that optionally highlights fenced code with Pygments."""

    def __init__(self, highlight_code: bool = False) -> None:
        super().__init__(escape=False)
        self.highlight_code = highlight_code
        self._formatter = HtmlFormatter(cssclass="codehilite", linenos=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        if not self.highlight_code:
            return _plain_code_block(code, lang)

        try:
            lexer = get_lexer_by_name(lang, stripall=True) if lang else guess_lexer(code)
        except ClassNotFound:
            logger.debug("code_lexer_not_found", language=lang)
            return _plain_code_block(code, lang)
        highlighted: str = highlight(code, lexer, self._formatter)
        return highlighted

    def softbreak(self) -> str:
        # Obsidian shows single newlines as line breaks
        return "<br>\n"


def _plain_code_block(code: str, lang: str | None) -> str:
    escaped = html.escape(code)
    if lang:
        return f'<pre><code class="language-{html.escape(lang)}">{escaped}</code></pre>\n'
    return f"<pre><code>{escaped}</code></pre>\n"


class MarkdownConverter:
    """Renders card text to sanitized HTML."""

    def __init__(self, highlight_code: bool = False):
        self.highlight_code = highlight_code
        self._markdown = mistune.create_markdown(
            renderer=AnkiRenderer(highlight_code=highlight_code),
            plugins=["strikethrough", "table", "task_lists"],
        )

    def to_html(self, md_content: str) -> str:
        if not md_content or not md_content.strip():
            return ""
        result = self._markdown(md_content)
        rendered: str = result if isinstance(result, str) else str(result)
        return sanitize_html(rendered.strip())

    def cloze_to_html(self, md_content: str) -> str:
        """Render cloze text, turning ``==x==`` highlights into deletions."""
        return self.to_html(highlights_to_cloze(md_content))


def highlights_to_cloze(text: str) -> str:
    """Number ``==x==`` highlights as ``{{cN::x}}`` after existing deletions.

    Fenced code and inline code are left untouched.
    """
    existing = [int(n) for n in CLOZE_NUMBER_RE.findall(text)]
    counter = max(existing, default=0)

    def number(match: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"{{{{c{counter}::{match.group(1)}}}}}"

    out = []
    fence: str | None = None
    for line in text.splitlines(keepends=True):
        match = FENCE_RE.match(line)
        if fence is None and match:
            fence = match.group(1)
            out.append(line)
            continue
        if fence is not None:
            if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
                fence = None
            out.append(line)
            continue

        pos = 0
        parts = []
        for code in INLINE_CODE_RE.finditer(line):
            parts.append(HIGHLIGHT_RE.sub(number, line[pos : code.start()]))
            parts.append(code.group(0))
            pos = code.end()
        parts.append(HIGHLIGHT_RE.sub(number, line[pos:]))
        out.append("".join(parts))
    return "".join(out)


def sanitize_html(html_text: str) -> str:
    """Sanitize HTML with nh3, keeping what Anki can display."""
    if not html_text:
        return html_text
    return nh3.clean(
        html_text,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        url_schemes=URL_SCHEMES,
        link_rel="noopener noreferrer",
    )


def normalize_field(value: str) -> str:
    """Canonical form of a field value for equality checks.

    HTML entities are unescaped, ``<br>`` variants unified and whitespace
    runs collapsed.
    """
    value = html.unescape(value or "")
    value = _BR_RE.sub("<br>", value)
    return _WHITESPACE_RE.sub(" ", value).strip()
