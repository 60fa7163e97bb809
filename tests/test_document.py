"""Tests for the in-memory edit target."""

import pytest


def test_insert_at_cursor():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("Fígado normal")
    assert doc.selection == (13, 13)
    doc.insert_text(".")
    assert doc.text == "Fígado normal."
    assert doc.size == 14


def test_insert_replaces_selection():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("medindo [medida] cm")
    doc.set_selection(8, 16)
    doc.insert_text("2,3")
    assert doc.text == "medindo 2,3 cm"
    assert doc.selection == (11, 11)


def test_invalid_ranges_raise():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("abc")
    with pytest.raises(ValueError):
        doc.replace_range(2, 10, "x")
    with pytest.raises(ValueError):
        doc.set_selection(3, 1)
    assert doc.text == "abc"


def test_current_block():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("linha um\nlinha dois\nlinha tres")
    doc.set_selection(12)
    assert doc.current_block() == (9, 19)
    doc.set_selection(0)
    assert doc.current_block() == (0, 8)


def test_undo_redo():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument()
    assert not doc.undo()
    doc.insert_text("um")
    doc.insert_text(" dois")
    assert doc.undo()
    assert doc.text == "um"
    assert doc.redo()
    assert doc.text == "um dois"
    assert not doc.redo()


def test_marks_and_alignment():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("IMPRESSÃO")
    doc.select_all()
    doc.toggle_mark("bold")
    assert (0, 9, "bold") in doc.marks
    doc.toggle_mark("bold")
    assert doc.marks == []

    doc.set_alignment("center")
    assert doc.alignments == {0: "center"}


def test_text_between_is_clamped():
    from radvoice.engine.document import InMemoryDocument

    doc = InMemoryDocument("abc")
    assert doc.text_between(-5, 2) == "ab"
    assert doc.text_between(1, 99) == "bc"
