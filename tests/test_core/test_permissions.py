"""
Tests the group role to permission mapping.
"""

import pytest

from gearshare.core.group import GroupPermissions, GroupRole, permissions_for


@pytest.mark.parametrize(
    "role,expected",
    [
        (GroupRole.OWNER, (True, True, True, True, True)),
        (GroupRole.ADMIN, (True, False, True, True, False)),
        (GroupRole.MEMBER, (False, False, False, False, False)),
        (None, (False, False, False, False, False)),
    ],
)
def test_permissions_for(role, expected):
    permissions = permissions_for(role)

    assert (
        permissions.can_edit,
        permissions.can_delete,
        permissions.can_invite,
        permissions.can_remove_members,
        permissions.can_transfer_ownership,
    ) == expected


def test_roles_are_ranked():
    assert GroupRole.OWNER.outranks(GroupRole.ADMIN)
    assert GroupRole.ADMIN.outranks(GroupRole.MEMBER)
    assert not GroupRole.ADMIN.outranks(GroupRole.ADMIN)
    assert not GroupRole.MEMBER.outranks(GroupRole.OWNER)

    assert sorted(GroupRole, key=lambda r: r.rank, reverse=True) == [
        GroupRole.OWNER,
        GroupRole.ADMIN,
        GroupRole.MEMBER,
    ]


def test_roles_parse_from_strings():
    assert GroupRole("admin") is GroupRole.ADMIN

    with pytest.raises(ValueError):
        GroupRole("superuser")

    assert GroupPermissions() == permissions_for(None)
