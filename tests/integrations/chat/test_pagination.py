from __future__ import annotations

import pytest

from device_relay.integrations.chat.models import InlineButton, OutboundMessage
from device_relay.integrations.chat.pagination import (
    EmptyPage,
    Page,
    SelectableItem,
    button_grid,
    chunk_entries,
    page_at,
    paginate,
    render_page,
    text_length,
    truncate_text,
)


def _items(count: int) -> list[SelectableItem]:
    return [SelectableItem(label=f"App {i}", value=f"com.app{i}") for i in range(count)]


def test_paginate_splits_into_fixed_batches() -> None:
    pages = paginate(_items(65), 30)
    assert isinstance(pages, list)
    assert [len(page.items) for page in pages] == [30, 30, 5]
    assert all(page.total == 3 for page in pages)
    assert pages[2].items[-1].value == "com.app64"


def test_paginate_empty_returns_empty_marker() -> None:
    assert paginate([], 30, empty_text="No apps.") == EmptyPage(text="No apps.")


def test_paginate_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        paginate(_items(1), 0)


def test_page_at_clamps_index() -> None:
    pages = paginate(_items(5), 2)
    assert page_at(pages, -3).index == 0
    assert page_at(pages, 99).index == 2
    empty = EmptyPage()
    assert page_at(empty, 4) is empty


def test_button_grid_two_per_row() -> None:
    buttons = [InlineButton(text=str(i), callback_data=str(i)) for i in range(5)]
    rows = button_grid(buttons)
    assert [len(row) for row in rows] == [2, 2, 1]


def test_render_page_without_nav_when_single_page() -> None:
    page = Page(index=0, total=1, items=tuple(_items(3)))
    message = render_page(page, text="Pick:", callback_kind="notiaddpick", nav_kind="nav")
    assert message.text == "Pick:"
    assert message.buttons[0][0] == InlineButton(
        text="App 0", callback_data="notiaddpick:com.app0"
    )
    assert [len(row) for row in message.buttons] == [2, 1]


def test_render_page_adds_nav_row_for_middle_page() -> None:
    page = Page(index=1, total=3, items=tuple(_items(2)))
    message = render_page(page, text="Pick:", callback_kind="pick", nav_kind="picknav")
    assert message.text == "Pick:\n(page 2/3)"
    assert message.buttons[-1] == (
        InlineButton(text="« Prev", callback_data="picknav:0"),
        InlineButton(text="Next »", callback_data="picknav:2"),
    )
    assert isinstance(message, OutboundMessage)
    markup = message.reply_markup()
    assert markup is not None
    assert markup["inline_keyboard"][0][0] == {"text": "App 0", "callback_data": "pick:com.app0"}


def test_chunk_entries_never_splits_an_entry() -> None:
    entries = [f"{i}. entry\n" for i in range(1, 8)]
    chunks = chunk_entries(
        entries,
        max_len=30,
        header="Head:\n",
        continuation_header="Part {part}:\n",
    )
    assert chunks[0].startswith("Head:\n")
    assert chunks[1].startswith("Part 2:\n")
    assert all(len(chunk) <= 30 for chunk in chunks)
    assert "".join(chunks).count("entry") == 7
    for entry in entries:
        assert any(entry in chunk for chunk in chunks)


def test_chunk_entries_trims_oversized_entry() -> None:
    chunks = chunk_entries(["x" * 50], max_len=20, header="H:")
    assert chunks == ["H:" + "x" * 15 + "..."]


def test_chunk_entries_empty() -> None:
    assert chunk_entries([], max_len=10, empty_text="none") == ["none"]


def test_chunk_entries_rejects_oversized_header() -> None:
    with pytest.raises(ValueError):
        chunk_entries(["a"], max_len=3, header="long header")


def test_text_length_counts_utf16_units() -> None:
    assert text_length("abc") == 3
    assert text_length("é") == 1
    assert text_length("😀") == 2


def test_truncate_text_never_splits_surrogate_pairs() -> None:
    assert truncate_text("😀" * 10, 8) == "😀😀..."
    assert truncate_text("a😀b", 4) == "a😀b"
    assert truncate_text("a😀bcd", 5) == "a..."
    assert truncate_text("abcdef", 2) == ".."


def test_chunk_entries_measures_astral_characters_as_two_units() -> None:
    chunks = chunk_entries(["😀" * 100 + "\n\n"] * 60, max_len=4096, header="h\n")

    assert len(chunks) == 3
    assert all(text_length(chunk) <= 4096 for chunk in chunks)
    assert sum(chunk.count("😀" * 100) for chunk in chunks) == 60


def test_chunk_entries_trims_astral_entry_to_limit() -> None:
    [body] = chunk_entries(["😀" * 50], max_len=21, header="H:")

    assert text_length(body) <= 21
    assert body == "H:" + "😀" * 8 + "..."
