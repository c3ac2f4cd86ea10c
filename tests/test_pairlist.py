from __future__ import annotations

from errorlog.services import pairlist


def test_pairlist_keeps_order_and_duplicate_keys() -> None:
    pairs = [("b", "2"), ("a", "1"), ("b", "3")]
    text = pairlist.serialize(pairs)
    assert pairlist.deserialize(text) == pairs


def test_pairlist_handles_separators_and_unicode_in_values() -> None:
    pairs = [("q", "a=1&b=2; c"), ("name", "Łódź \"quoted\"\nnext line"), ("", "")]
    assert pairlist.deserialize(pairlist.serialize(pairs)) == pairs


def test_pairlist_empty_input_encodes_to_empty_text() -> None:
    assert pairlist.serialize([]) == ""
    assert pairlist.serialize(None) == ""
    assert pairlist.deserialize("") == []
    assert pairlist.deserialize(None) == []


def test_pairlist_malformed_text_yields_empty_list() -> None:
    assert pairlist.deserialize("not json") == []
    assert pairlist.deserialize('{"a": "b"}') == []
    assert pairlist.deserialize('[["a", "b"], ["only-one"]]') == []
    assert pairlist.deserialize('[["a", 1]]') == []
