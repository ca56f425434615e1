import pytest

from tools.dsh.errors import ConfigurationError
from tools.dsh.known_hosts import build_known_hosts, parse_known_hosts, render_known_hosts
from tools.dsh.models import NodeRecord

from .conftest import member_node


def test_member_entries_precede_local_entry():
    members = [member_node("member1", "testing", "memberuser", "memberhost", "memberhostkey")]

    table = build_known_hosts(members, "testing", "127.0.0.1", "hostpubkey")

    assert render_known_hosts(table) == "memberhost memberhostkey\n127.0.0.1 hostpubkey\n"


def test_local_entry_overrides_members_with_same_access_name():
    members = [
        member_node("a", "testing", "u", "shared", "key-a"),
        member_node("b", "testing", "u", "shared", "key-b"),
        member_node("c", "testing", "u", "other", "key-c"),
    ]

    table = build_known_hosts(members, "testing", "shared", "local-key")

    rows = render_known_hosts(table).splitlines()
    assert [row for row in rows if row.startswith("shared ")] == ["shared local-key"]
    assert rows == ["other key-c", "shared local-key"]


def test_later_member_wins_on_duplicate_access_name():
    members = [
        member_node("a", "testing", "u", "dup", "old"),
        member_node("b", "testing", "u", "dup", "new"),
    ]

    table = build_known_hosts(members, "testing", "self", "selfkey")

    assert table.get("dup") == "new"
    assert len(table) == 2


def test_members_without_host_key_or_access_name_are_skipped():
    members = [
        member_node("nokey", "testing", "u", "nokeyhost", None),
        member_node("noname", "testing", "u", None, "key"),
        NodeRecord(name="othergroup", host_key="k"),
        member_node("ok", "testing", "u", "okhost", "okkey"),
    ]

    table = build_known_hosts(members, "testing", "self", "selfkey")

    assert [entry.access_name for entry in table] == ["okhost", "self"]


def test_missing_local_host_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        build_known_hosts([], "testing", "self", None)


def test_host_keys_are_stripped():
    members = [member_node("m", "testing", "u", "m", "ssh-rsa AAAA\n")]

    table = build_known_hosts(members, "testing", "self", " selfkey\n")

    assert render_known_hosts(table) == "m ssh-rsa AAAA\nself selfkey\n"


def test_parse_reads_back_rendered_table():
    text = "memberhost ssh-rsa AAAA comment\n# note\n\n127.0.0.1 hostpubkey\n"

    table = parse_known_hosts(text)

    assert table.get("memberhost") == "ssh-rsa AAAA comment"
    assert table.get("127.0.0.1") == "hostpubkey"
    assert table.get("missing") is None
