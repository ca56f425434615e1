import pytest

from tools.dsh.keys import merge_keys, split_keys


def test_merge_appends_discovered_key_after_existing_content():
    assert merge_keys("userauthkeys", ["admingrouppubkey"]) == "userauthkeys\nadmingrouppubkey"


def test_merge_of_empty_inputs_is_empty_string():
    assert merge_keys("", []) == ""
    assert merge_keys(None, []) == ""


@pytest.mark.parametrize(
    "existing, discovered",
    [
        ("", ["a"]),
        ("a\nb\n", ["b", "c", "a"]),
        ("a\n\n\nb", ["c", "c"]),
        ("x", []),
    ],
)
def test_merge_is_idempotent(existing, discovered):
    once = merge_keys(existing, discovered)
    assert merge_keys(once, discovered) == once


def test_merge_never_produces_duplicate_lines():
    merged = merge_keys("k1\nk2\nk1", ["k2", "k3", "k3", "k1"])
    lines = merged.split("\n")
    assert lines == ["k1", "k2", "k3"]


def test_merge_drops_repeated_existing_lines_without_discovered_keys():
    assert merge_keys("a\na", []) == "a"
    assert merge_keys("b\na\nb\na", []) == "b\na"


def test_merge_keeps_existing_order_and_drops_blank_lines():
    assert merge_keys("\nk2\n\nk1\n", ["k0"]) == "k2\nk1\nk0"


def test_merge_compares_whole_lines():
    merged = merge_keys("ssh-rsa AAAA user@a", ["ssh-rsa AAAA", "ssh-rsa AAAA user@a"])
    assert merged == "ssh-rsa AAAA user@a\nssh-rsa AAAA"


def test_merge_ignores_empty_discovered_keys():
    assert merge_keys("k1", [None, "", "  ", "k2"]) == "k1\nk2"


def test_merged_output_has_no_trailing_newline():
    assert not merge_keys("k1\n", ["k2"]).endswith("\n")


def test_split_keys_skips_blank_lines():
    assert split_keys("a\n\n  \nb\n") == ["a", "b"]
    assert split_keys("") == []
