import pytest

from tools.dsh.errors import DirectoryQueryError
from tools.dsh.group_file import parse_group_file, render_group_file
from tools.dsh.models import GroupMembership, NodeRecord

from .conftest import member_node


def test_renders_one_line_per_member():
    members = [member_node("member1", "testing", "memberuser", "memberhost", "memberhostkey")]

    assert render_group_file(members, "testing") == "memberuser@memberhost\n"


def test_keeps_directory_order_and_repeats():
    members = [
        member_node("b", "testing", "ub", "hb"),
        member_node("a", "testing", "ua", "ha"),
        member_node("b", "testing", "ub", "hb"),
    ]

    text = render_group_file(members, "testing")

    assert text.splitlines() == ["ub@hb", "ua@ha", "ub@hb"]


def test_members_without_host_key_are_still_listed():
    members = [member_node("nokey", "testing", "u", "h", host_key=None)]

    assert render_group_file(members, "testing") == "u@h\n"


def test_records_without_the_group_are_ignored():
    members = [NodeRecord(name="x"), member_node("y", "other", "u", "h")]

    assert render_group_file(members, "testing") == ""


@pytest.mark.parametrize("user, access_name", [(None, "h"), ("u", None)])
def test_incomplete_membership_is_reported_not_dropped(user, access_name):
    members = [member_node("broken", "testing", user, access_name), member_node("ok", "testing", "u", "h2")]

    with pytest.raises(DirectoryQueryError) as exc_info:
        render_group_file(members, "testing")

    assert exc_info.value.group == "testing"
    assert "broken" in str(exc_info.value)


def test_parse_group_file():
    memberships = parse_group_file("memberuser@memberhost\n\nbroken\nu@10.0.0.1\n", "testing")

    assert memberships == [
        GroupMembership("testing", "memberuser", "memberhost"),
        GroupMembership("testing", "u", "10.0.0.1"),
    ]
