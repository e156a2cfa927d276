"""Page and chunk selectable items for transports with message-size limits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from .models import InlineButton, OutboundMessage

BUTTONS_PER_ROW = 2
TRUNCATION_SUFFIX = "..."
DEFAULT_EMPTY_TEXT = "Nothing to show."


@dataclass(frozen=True)
class SelectableItem:
    label: str
    value: str


@dataclass(frozen=True)
class Page:
    index: int
    total: int
    items: tuple[SelectableItem, ...]

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    @property
    def has_next(self) -> bool:
        return self.index + 1 < self.total


@dataclass(frozen=True)
class EmptyPage:
    text: str = DEFAULT_EMPTY_TEXT


def paginate(
    items: Sequence[SelectableItem],
    page_size: int,
    *,
    empty_text: str = DEFAULT_EMPTY_TEXT,
) -> Union[list[Page], EmptyPage]:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if not items:
        return EmptyPage(text=empty_text)
    total = (len(items) + page_size - 1) // page_size
    return [
        Page(
            index=index,
            total=total,
            items=tuple(items[index * page_size : (index + 1) * page_size]),
        )
        for index in range(total)
    ]


def page_at(pages: Union[list[Page], EmptyPage], index: int) -> Union[Page, EmptyPage]:
    """Return page ``index`` clamped into range."""
    if isinstance(pages, EmptyPage):
        return pages
    return pages[min(max(index, 0), len(pages) - 1)]


def button_grid(
    buttons: Sequence[InlineButton], *, per_row: int = BUTTONS_PER_ROW
) -> tuple[tuple[InlineButton, ...], ...]:
    if per_row <= 0:
        raise ValueError("per_row must be positive")
    return tuple(
        tuple(buttons[start : start + per_row])
        for start in range(0, len(buttons), per_row)
    )


def render_page(
    page: Page,
    *,
    text: str,
    callback_kind: str,
    nav_kind: Optional[str] = None,
    per_row: int = BUTTONS_PER_ROW,
) -> OutboundMessage:
    """Render a page as ``text`` plus a grid of ``<callback_kind>:<value>`` buttons.

    With ``nav_kind`` set and more than one page, a final row links to the
    neighbouring pages via ``<nav_kind>:<index>``.
    """
    buttons = [
        InlineButton(text=item.label, callback_data=f"{callback_kind}:{item.value}")
        for item in page.items
    ]
    rows = button_grid(buttons, per_row=per_row)
    if nav_kind and page.total > 1:
        nav: list[InlineButton] = []
        if page.has_previous:
            nav.append(
                InlineButton(text="« Prev", callback_data=f"{nav_kind}:{page.index - 1}")
            )
        if page.has_next:
            nav.append(
                InlineButton(text="Next »", callback_data=f"{nav_kind}:{page.index + 1}")
            )
        rows = rows + (tuple(nav),)
        text = f"{text}\n(page {page.index + 1}/{page.total})"
    return OutboundMessage(text=text, buttons=rows)


def text_length(text: str) -> int:
    """Length in UTF-16 code units, the unit chat transports count limits in."""
    return len(text.encode("utf-16-le")) // 2


def truncate_text(text: str, limit: int, *, suffix: str = TRUNCATION_SUFFIX) -> str:
    """Trim ``text`` to ``limit`` UTF-16 units, ending in ``suffix`` when cut.

    Surrogate pairs are never split.
    """
    if text_length(text) <= limit:
        return text
    if limit <= text_length(suffix):
        return _prefix_within(suffix, limit)
    return _prefix_within(text, limit - text_length(suffix)) + suffix


def _prefix_within(text: str, limit: int) -> str:
    used = 0
    for index, char in enumerate(text):
        used += 2 if ord(char) > 0xFFFF else 1
        if used > limit:
            return text[:index]
    return text


def chunk_entries(
    entries: Sequence[str],
    *,
    max_len: int,
    header: str = "",
    continuation_header: str = "",
    empty_text: str = DEFAULT_EMPTY_TEXT,
) -> list[str]:
    """Pack whole entries into bodies of at most ``max_len`` UTF-16 units.

    Bodies after the first start with ``continuation_header``, formatted with
    ``part`` (1-based). An entry that cannot fit even into an empty body is
    trimmed with ``...``; entries are never split across bodies.
    """
    if max_len <= 0:
        raise ValueError("max_len must be positive")
    if not entries:
        return [empty_text]
    if text_length(header) >= max_len:
        raise ValueError("max_len too small for header")

    chunks: list[str] = []
    body = header
    body_len = text_length(header)
    holds_entry = False
    for entry in entries:
        entry_len = text_length(entry)
        if holds_entry and body_len + entry_len > max_len:
            chunks.append(body)
            body = _continuation(continuation_header, len(chunks) + 1, max_len)
            body_len = text_length(body)
            holds_entry = False
        if body_len + entry_len > max_len:
            entry = truncate_text(entry, max_len - body_len)
            entry_len = text_length(entry)
        body += entry
        body_len += entry_len
        holds_entry = True
    chunks.append(body)
    return chunks


def _continuation(template: str, part: int, max_len: int) -> str:
    rendered = template.replace("{part}", str(part))
    if text_length(rendered) >= max_len:
        raise ValueError("max_len too small for continuation header")
    return rendered
