"""CJK-aware line breaking and shrink-to-fit text layout."""

import logging
import math
import re
from collections import OrderedDict
from typing import Any, Hashable, List, Optional, Sequence

from .models import FitResult
from .primitives import TextRun

logger = logging.getLogger(__name__)

ELLIPSIS = "…"
FULLWIDTH_SPACE = "　"

# Characters after which a line may break.
BREAKABLE_CHARS = set(" \t、。，．,.;:：;・／/()（）「」『』-–—")
# Characters that must not start a line.
FORBIDDEN_LEADING = set("、。，．,・;；:：)）】』〉》\"”』」")
INDENT_CHARS = " \t" + FULLWIDTH_SPACE

_UNSAFE_LEFT = re.compile(r"[0-9.]")
_UNSAFE_RIGHT = re.compile(r"[0-9％%億万千円]")
_WHITESPACE = re.compile(r"\s+")
_INNER_NEWLINE = re.compile(r"\n[ \t　]*")
_CLOSING_GLUE = re.compile(r"(」|』|\)|）)([^\s])")
_QUOTE_HEAD = re.compile(r"^[“”\"「『\s]+")
_QUOTE_TAIL = re.compile(r"[“”\"」』\s]+$")
_QUOTE_TOKEN_SPLIT = re.compile(r"(?<=[。．！!？?、,，])")


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_breakable(prev: str, ch: str) -> bool:
    if ch in ".," and prev.isdigit():
        return False
    return ch in BREAKABLE_CHARS or ch.isspace()


def _is_unsafe_pair(left: str, right: str) -> bool:
    """True when splitting between ``left`` and ``right`` would tear a number or unit."""
    if _UNSAFE_LEFT.match(left) and _UNSAFE_RIGHT.match(right):
        return True
    return left.isdigit() and right == "." or left == "." and right.isdigit()


def line_count(text: str) -> int:
    return len(text.split("\n")) if text else 0


class RenderCache:
    """
    Memo store owned by a single render invocation.

    Wrap and fit results are keyed by their full argument tuples, so identical
    calls return byte-identical output without leaking across invocations.
    """

    def __init__(self, max_entries: int = 4096):
        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Any:
        if key in self._entries:
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return None

    def put(self, key: Hashable, value: Any) -> Any:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return value

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)


class TextFitter:
    """Line breaking, kinsoku correction and shrink-to-fit for slide text."""

    def __init__(self, cache: Optional[RenderCache] = None):
        self.cache = cache if cache is not None else RenderCache()

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    def wrap(self, text: Optional[str], max_chars: int) -> str:
        """
        Greedy wrap at breakable characters, hard-splitting only when needed.

        Existing newlines are kept as paragraph breaks and blank paragraphs
        stay as empty lines. Whitespace inside a paragraph is collapsed, and
        every output line is stripped and at most ``max_chars`` long, which
        makes the operation idempotent.

        Args:
            text: Text to wrap
            max_chars: Maximum characters per line

        Returns:
            Text with '\\n' line breaks
        """
        if not text:
            return ""
        max_chars = max(1, int(max_chars))
        key = ("wrap", max_chars, text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        lines: List[str] = []
        for paragraph in text.split("\n"):
            normalized = _WHITESPACE.sub(" ", paragraph).strip()
            if normalized:
                lines.extend(self._wrap_paragraph(normalized, max_chars))
            else:
                lines.append("")

        return self.cache.put(key, "\n".join(lines))

    def _wrap_paragraph(self, text: str, max_chars: int) -> List[str]:
        lines: List[str] = []
        current = ""
        last_break = 0

        for ch in text:
            prev = current[-1:]
            current += ch
            if _is_breakable(prev, ch):
                last_break = len(current)
            if len(current) <= max_chars:
                continue

            if ch.isspace():
                head, rest = current[:-1], ""
            elif 0 < last_break <= max_chars:
                head, rest = current[:last_break], current[last_break:]
            else:
                split = self._safe_split_position(current, max_chars)
                head, rest = current[:split], current[split:]

            head = head.strip()
            if head:
                lines.append(head)
            current = rest.lstrip()
            last_break = 0
            for idx, rest_ch in enumerate(current):
                if _is_breakable(current[idx - 1] if idx else "", rest_ch):
                    last_break = idx + 1

        current = current.strip()
        if current:
            lines.append(current)
        return lines

    @staticmethod
    def _safe_split_position(line: str, max_chars: int) -> int:
        """Retreat a hard split so that digits, decimals and units stay together."""
        split = max_chars
        while split > 1 and _is_unsafe_pair(line[split - 1], line[split]):
            split -= 1
        return split if split > 1 else max_chars

    # ------------------------------------------------------------------
    # Kinsoku and bullet formatting
    # ------------------------------------------------------------------

    @staticmethod
    def prevent_leading_punctuation(text: Optional[str]) -> str:
        """
        Move forbidden leading punctuation to the end of the previous line.

        Indentation prefixes are preserved. Lines left empty by the move are
        dropped, and forbidden characters at the very start of the text are
        removed since there is no line to carry them.
        """
        if not text:
            return ""
        result: List[str] = []
        for line in text.split("\n"):
            body = line.lstrip(INDENT_CHARS)
            prefix = line[: len(line) - len(body)]
            moved = ""
            while body and body[0] in FORBIDDEN_LEADING:
                moved += body[0]
                body = body[1:]
            if moved and result:
                result[-1] += moved
            if moved and not body.strip():
                continue
            if not result and not body.strip():
                continue
            result.append(prefix + body)
        return "\n".join(result)

    def format_colon_separated_bullet(self, bullet: Optional[str], max_content_chars: int, indent_cols: int = 4) -> str:
        """
        Hang continuation lines of a ``title：content`` bullet under the content.

        Args:
            bullet: Bullet text
            max_content_chars: Wrap width for the content portion
            indent_cols: Full-width spaces prefixed to continuation lines, clamped to [2, 8]

        Returns:
            Formatted, possibly multi-line bullet
        """
        text = _INNER_NEWLINE.sub("", bullet or "")
        idx = text.find("：")
        if idx < 0:
            idx = text.find(":")
        if idx <= 0:
            return self.wrap(text, max_content_chars)

        separator = text[idx]
        title = text[:idx].strip()
        content = _CLOSING_GLUE.sub(r"\1 \2", text[idx + 1:].strip())
        content = _WHITESPACE.sub(" ", content).strip()
        if not content:
            return text.strip()

        indent = FULLWIDTH_SPACE * max(2, min(8, int(indent_cols)))
        first_capacity = max(1, max_content_chars - (len(title) + 1))
        first_line = self.wrap(content, first_capacity).split("\n")[0]
        rest = content[len(first_line):].strip()

        lines = [f"{title}{separator}{first_line}"]
        if rest:
            lines.extend(indent + line for line in self.wrap(rest, max_content_chars).split("\n"))
        return "\n".join(lines)

    def format_bullets_for_colon_separation(
        self, bullets: Sequence[str], max_content_chars: int, indent_cols: int = 4
    ) -> str:
        return "\n".join(self.format_colon_separated_bullet(b, max_content_chars, indent_cols) for b in bullets)

    @staticmethod
    def merge_quoted_continuations(items: Sequence[Optional[str]]) -> List[str]:
        """Join bullets split inside a 「...」 quotation back into one item."""
        merged: List[str] = []
        buffer: Optional[str] = None
        for raw in items or []:
            item = str(raw or "").strip()
            if not item:
                continue
            if buffer is not None:
                buffer += item
                if buffer.count("「") <= buffer.count("」"):
                    merged.append(buffer)
                    buffer = None
                continue
            if item.count("「") > item.count("」") and "」" not in item:
                buffer = item
            else:
                merged.append(item)
        if buffer:
            merged.append(buffer)
        return merged

    @staticmethod
    def prepare_bullets_for_template(bullets: Sequence[str], sub_indent_cols: int = 10) -> List[str]:
        """Indent items that follow a ``header：`` bullet so they read as sub-lines."""
        prepared = []
        seen_header = False
        indent = FULLWIDTH_SPACE * max(2, min(16, int(sub_indent_cols)))
        for raw in bullets or []:
            item = _INNER_NEWLINE.sub("", raw or "")
            if "：" in item:
                seen_header = True
                prepared.append(item)
            elif seen_header:
                prepared.append(indent + item)
            else:
                prepared.append(item)
        return prepared

    def format_quote_lines(self, text: Optional[str], max_chars: int) -> str:
        """
        Reflow a quotation into at most four lines split at punctuation.

        A punctuation-led or quoted fragment may overflow ``max_chars`` by up to
        15% when the current line is not already nearly full.
        """
        if not text:
            return ""
        body = _QUOTE_TAIL.sub("", _QUOTE_HEAD.sub("", text.strip()))
        body = _WHITESPACE.sub(" ", body).strip()
        if not body:
            return ""

        soft = int(math.floor(max_chars * 0.9))
        hard = int(math.floor(max_chars * 1.15))
        lines: List[str] = []
        current = ""
        for token in _QUOTE_TOKEN_SPLIT.split(body):
            chunk = token.strip()
            if not chunk:
                continue
            joiner = " " if current and token[:1].isspace() else ""
            candidate = current + joiner + chunk if current else chunk
            if len(candidate) <= max_chars:
                current = candidate
                continue
            prefer_keep = "「" in chunk or "」" in chunk or chunk[0] in FORBIDDEN_LEADING
            if prefer_keep and current and len(current) <= soft and len(candidate) <= hard:
                lines.append(candidate)
                current = ""
                continue
            if current:
                lines.append(current)
            current = chunk
        if current:
            lines.append(current)

        expanded: List[str] = []
        for line in lines:
            expanded.extend(self.wrap(line, max_chars).split("\n") if len(line) > hard else [line])

        if len(expanded) > 4:
            expanded = expanded[:4]
            last = expanded[3]
            if len(last) > max_chars:
                last = last[: max(0, max_chars - 1)]
            expanded[3] = last + ELLIPSIS
        return "\n".join(expanded)

    # ------------------------------------------------------------------
    # Shrink to fit
    # ------------------------------------------------------------------

    def fit_to_lines(
        self,
        text: Optional[str],
        initial_font_size: float,
        min_font_size: float,
        base_wrap_chars: int,
        max_lines: int,
        hard_char_limit: Optional[int] = None,
        suppress_ellipsis: bool = False,
        min_font_floor: Optional[float] = None,
    ) -> FitResult:
        """
        Shrink font size until the wrapped text fits in ``max_lines``.

        The wrap width scales with the font size:
        ``wrap_chars = max(8, round(base_wrap_chars * size / initial_font_size))``.

        Args:
            text: Text to fit; newlines are treated as spaces
            initial_font_size: Starting font size in points
            min_font_size: Smallest size tried in the normal pass
            base_wrap_chars: Wrap width at the initial font size
            max_lines: Target maximum number of lines
            hard_char_limit: Cap applied to the last line when truncating
            suppress_ellipsis: Return overflowing text instead of truncating
            min_font_floor: Optional lower floor tried after ``min_font_size``

        Returns:
            FitResult with the wrapped text, chosen font size and wrap width
        """
        key = (
            "fit", text, initial_font_size, min_font_size, base_wrap_chars,
            max_lines, hard_char_limit, suppress_ellipsis, min_font_floor,
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        source = self.prevent_leading_punctuation(_WHITESPACE.sub(" ", text or "").strip())
        max_lines = max(1, int(max_lines))
        initial = float(initial_font_size) if initial_font_size else 1.0
        floor = float(min_font_size)
        if min_font_floor is not None and min_font_floor < floor:
            floor = float(min_font_floor)
        floor = max(1.0, min(floor, initial))

        def attempt(size: float):
            wrap_chars = max(8, _round(base_wrap_chars * size / initial))
            wrapped = self.prevent_leading_punctuation(self.wrap(source, wrap_chars))
            return wrapped, wrap_chars

        size = initial
        while True:
            wrapped, wrap_chars = attempt(size)
            if line_count(wrapped) <= max_lines:
                return self.cache.put(key, FitResult(text=wrapped, font_size=size, wrap_chars=wrap_chars))
            if size - 1 < floor:
                break
            size -= 1

        if size != floor:
            size = floor
            wrapped, wrap_chars = attempt(size)
            if line_count(wrapped) <= max_lines:
                return self.cache.put(key, FitResult(text=wrapped, font_size=size, wrap_chars=wrap_chars))

        if suppress_ellipsis:
            result = FitResult(text=wrapped, font_size=size, wrap_chars=wrap_chars)
        else:
            kept = wrapped.split("\n")[:max_lines]
            kept[-1] = self._ellipsize(kept[-1], hard_char_limit)
            result = FitResult(text="\n".join(kept), font_size=size, wrap_chars=wrap_chars)
        logger.debug(f"Text truncated to {max_lines} lines at {size}pt: {result.text[:30]!r}")
        return self.cache.put(key, result)

    @staticmethod
    def _ellipsize(line: str, hard_char_limit: Optional[int]) -> str:
        if hard_char_limit and hard_char_limit > 0 and len(line) > hard_char_limit:
            line = line[: max(0, hard_char_limit - 1)]
        return line + ELLIPSIS

    def fit_bullets_to_lines(
        self,
        bullets: Sequence[str],
        initial_font_size: float,
        min_font_size: float,
        base_wrap_chars: int,
        max_lines_per_bullet: int,
        indent_cols: int = 4,
        hard_char_limit: Optional[int] = None,
    ) -> FitResult:
        """Shrink until no colon-formatted bullet exceeds ``max_lines_per_bullet`` lines."""
        initial = float(initial_font_size) if initial_font_size else 1.0
        size = initial
        floor = max(1.0, min(float(min_font_size), initial))

        def format_all(wrap_chars: int) -> List[str]:
            return [
                self.prevent_leading_punctuation(self.format_colon_separated_bullet(b, wrap_chars, indent_cols))
                for b in bullets
            ]

        while size >= floor:
            wrap_chars = max(8, _round(base_wrap_chars * size / initial))
            formatted = format_all(wrap_chars)
            if max((line_count(t) for t in formatted), default=0) <= max_lines_per_bullet:
                return FitResult(text="\n".join(formatted), font_size=size, wrap_chars=wrap_chars)
            size -= 1

        wrap_chars = max(8, _round(base_wrap_chars * floor / initial))
        formatted = format_all(wrap_chars)
        if hard_char_limit:
            trimmed = []
            for text in formatted:
                lines = text.split("\n")
                if len(lines) > max_lines_per_bullet:
                    lines = lines[:max_lines_per_bullet]
                    lines[-1] = self._ellipsize(lines[-1], hard_char_limit)
                trimmed.append("\n".join(lines))
            formatted = trimmed
        return FitResult(text="\n".join(formatted), font_size=floor, wrap_chars=wrap_chars)


def strip_markdown_bold(text: str) -> str:
    return re.sub(r"\*\*(.+?)\*\*", r"\1", text or "")


def split_bold_runs(text: Optional[str]) -> List[TextRun]:
    """Turn ``**bold**`` markers into alternating text runs."""
    if not text:
        return []
    runs: List[TextRun] = []
    bold = False
    parts = text.split("**")
    for i, part in enumerate(parts):
        if not part:
            bold = not bold
            continue
        runs.append(TextRun(text=part, bold=bold))
        if i < len(parts) - 1:
            bold = not bold
    return runs or [TextRun(text=text)]


def clean_bullet(text: Optional[str]) -> str:
    """Bullet text as drawn by the code-side layouts: one line, no bold markers."""
    return strip_markdown_bold(_INNER_NEWLINE.sub(" ", text or ""))
