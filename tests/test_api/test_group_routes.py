"""
Tests the group management endpoints.
"""

import pytest


async def _group(client, owner, *members) -> str:
    response = await client.post(
        "/api/groups",
        json={"user_id": owner["user_id"], "name": "Cyclists", "description": "Bikes"},
    )
    assert response.status_code == 201
    group = response.json()
    assert group["member_count"] == 1

    for member in members:
        response = await client.post(
            f"/api/groups/{group['group_id']}/invite",
            json={"user_id": owner["user_id"], "email": member["email"]},
        )
        assert response.status_code == 201

    return group["group_id"]


@pytest.mark.asyncio(loop_scope="session")
async def test_group_pages(client, register):
    owner = await register()
    member = await register()
    outsider = await register()
    group_id = await _group(client, owner, member)

    response = await client.get(
        f"/api/groups/{group_id}", params={"user_id": member["user_id"]}
    )
    assert response.status_code == 200
    assert response.json()["member_count"] == 2
    assert response.json()["role"] == "member"
    assert "members" not in response.json()

    response = await client.get(
        f"/api/groups/{group_id}/details", params={"user_id": owner["user_id"]}
    )
    assert response.status_code == 200
    details = response.json()
    assert details["user_permissions"]["can_delete"] is True
    assert [m["user_id"] for m in details["members"]] == [
        owner["user_id"],
        member["user_id"],
    ]

    response = await client.get(
        f"/api/groups/{group_id}/members", params={"user_id": outsider["user_id"]}
    )
    assert response.status_code == 403
    assert response.json()["error"] == "not_group_member"

    response = await client.get(
        "/api/groups", params={"user_id": member["user_id"]}
    )
    assert [g["group_id"] for g in response.json()] == [group_id]


@pytest.mark.asyncio(loop_scope="session")
async def test_invite_errors(client, register):
    owner = await register()
    member = await register()
    group_id = await _group(client, owner, member)

    response = await client.post(
        f"/api/groups/{group_id}/invite",
        json={"user_id": owner["user_id"], "email": "nobody-here@example.com"},
    )
    assert response.status_code == 404
    assert response.json()["error"] == "user_not_found"

    response = await client.post(
        f"/api/groups/{group_id}/invite",
        json={"user_id": owner["user_id"], "email": member["email"]},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "already_member"


@pytest.mark.asyncio(loop_scope="session")
async def test_roles_and_membership(client, register):
    owner = await register()
    admin = await register()
    member = await register()
    group_id = await _group(client, owner, admin, member)

    response = await client.put(
        f"/api/groups/{group_id}/members/{admin['user_id']}/role",
        json={"user_id": owner["user_id"], "role": "admin"},
    )
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    response = await client.put(
        f"/api/groups/{group_id}/members/{member['user_id']}/role",
        json={"user_id": owner["user_id"], "role": "owner"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_role"

    response = await client.put(
        f"/api/groups/{group_id}",
        json={"user_id": admin["user_id"], "name": "Road Cyclists"},
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Road Cyclists"
    assert response.json()["member_count"] == 3

    response = await client.delete(
        f"/api/groups/{group_id}/remove-member",
        params={"user_id": admin["user_id"], "target_user_id": owner["user_id"]},
    )
    assert response.status_code == 403

    response = await client.delete(
        f"/api/groups/{group_id}/remove-member",
        params={"user_id": admin["user_id"], "target_user_id": member["user_id"]},
    )
    assert response.status_code == 204

    response = await client.delete(
        f"/api/groups/{group_id}/members/{owner['user_id']}"
    )
    assert response.status_code == 409
    assert response.json()["error"] == "owner_cannot_leave"

    response = await client.delete(
        f"/api/groups/{group_id}/members/{admin['user_id']}"
    )
    assert response.status_code == 204

    response = await client.delete(
        f"/api/groups/{group_id}", params={"user_id": owner["user_id"]}
    )
    assert response.status_code == 204

    response = await client.get(
        f"/api/groups/{group_id}", params={"user_id": owner["user_id"]}
    )
    assert response.status_code == 404
    assert response.json()["error"] == "group_not_found"
