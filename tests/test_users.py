from conftest import PASSWORD, auth

from panodesk.features.comments.models import Comment
from panodesk.features.users.auth import verify_password
from panodesk.features.users.models import Role, User


def new_user(**overrides):
    payload = {
        "email": "fresh@example.com",
        "firstName": "Fresh",
        "lastName": "User",
        "password": PASSWORD,
        "role": "REVIEWER",
    }
    payload.update(overrides)
    return payload


class TestUserAdministration:

    async def test_create_user_is_pre_verified(self, client, system_user):
        resp = await client.post("/api/users", json=new_user(), headers=auth(system_user))
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["emailVerified"] is True
        assert data["role"] == "REVIEWER"
        assert "passwordHash" not in data

    async def test_duplicate_email_leaves_existing_record(self, client, system_user, reviewer, fetch):
        resp = await client.post(
            "/api/users",
            json=new_user(email=reviewer.email, firstName="Impostor"),
            headers=auth(system_user),
        )
        assert resp.status_code == 409
        existing = await fetch(User, id=reviewer.id)
        assert existing.first_name == reviewer.first_name
        assert verify_password(PASSWORD, existing.password_hash)

    async def test_system_user_cannot_create_super_admin(self, client, system_user, count):
        resp = await client.post("/api/users", json=new_user(role="SUPER_ADMIN"), headers=auth(system_user))
        assert resp.status_code == 403
        assert await count(User, email="fresh@example.com") == 0

    async def test_manager_cannot_administer_users(self, client, manager, count):
        resp = await client.post("/api/users", json=new_user(), headers=auth(manager))
        assert resp.status_code == 403
        assert await count(User, email="fresh@example.com") == 0

        listing = await client.get("/api/users", headers=auth(manager))
        assert listing.status_code == 403

    async def test_list_users_with_search_and_role(self, client, system_user, make_user):
        await make_user(Role.REVIEWER, email="alice@example.com", first_name="Alice")
        await make_user(Role.ORGANIZATION_MANAGER, email="bob@example.com", first_name="Bob")

        resp = await client.get("/api/users", params={"search": "alice"}, headers=auth(system_user))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [u["email"] for u in data["items"]] == ["alice@example.com"]
        assert data["pagination"] == {"total": 1, "page": 1, "pages": 1, "limit": 10}

        resp = await client.get("/api/users", params={"role": "ORGANIZATION_MANAGER"}, headers=auth(system_user))
        assert [u["email"] for u in resp.json()["data"]["items"]] == ["bob@example.com"]

    async def test_pagination_bounds(self, client, system_user):
        assert (await client.get("/api/users", params={"page": 0}, headers=auth(system_user))).status_code == 400
        assert (await client.get("/api/users", params={"limit": 101}, headers=auth(system_user))).status_code == 400

    async def test_get_user_detail(self, client, system_user, manager, organization, project, make_user, db):
        resp = await client.get(f"/api/users/{manager.id}", headers=auth(system_user))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [org["id"] for org in data["managedOrganizations"]] == [organization.id]

    async def test_get_missing_user(self, client, system_user):
        resp = await client.get("/api/users/01HZZZZZZZZZZZZZZZZZZZZZZZ", headers=auth(system_user))
        assert resp.status_code == 404

    async def test_update_user(self, client, system_user, reviewer, fetch):
        resp = await client.put(
            f"/api/users/{reviewer.id}",
            json={"firstName": "Renamed", "role": "ORGANIZATION_MANAGER"},
            headers=auth(system_user),
        )
        assert resp.status_code == 200
        user = await fetch(User, id=reviewer.id)
        assert user.first_name == "Renamed"
        assert user.role == Role.ORGANIZATION_MANAGER

    async def test_update_ignores_password_fields(self, client, system_user, reviewer, fetch):
        resp = await client.put(
            f"/api/users/{reviewer.id}",
            json={"passwordHash": "x", "password": "hijacked-pw"},
            headers=auth(system_user),
        )
        assert resp.status_code == 200
        user = await fetch(User, id=reviewer.id)
        assert verify_password(PASSWORD, user.password_hash)

    async def test_update_email_collision(self, client, system_user, reviewer, manager):
        resp = await client.put(
            f"/api/users/{reviewer.id}", json={"email": manager.email}, headers=auth(system_user)
        )
        assert resp.status_code == 409

    async def test_system_user_cannot_touch_super_admin(self, client, system_user, super_admin):
        resp = await client.put(
            f"/api/users/{super_admin.id}", json={"firstName": "Nope"}, headers=auth(system_user)
        )
        assert resp.status_code == 403

    async def test_delete_user(self, client, system_user, reviewer, count):
        resp = await client.delete(f"/api/users/{reviewer.id}", headers=auth(system_user))
        assert resp.status_code == 200
        assert await count(User, id=reviewer.id) == 0

    async def test_cannot_delete_self(self, client, system_user):
        resp = await client.delete(f"/api/users/{system_user.id}", headers=auth(system_user))
        assert resp.status_code == 400

    async def test_cannot_delete_referenced_user(self, client, system_user, manager, organization, count):
        resp = await client.delete(f"/api/users/{manager.id}", headers=auth(system_user))
        assert resp.status_code == 409
        assert await count(User, id=manager.id) == 1

    async def test_cannot_delete_comment_author(self, client, system_user, reviewer, tour, db, count):
        db.add(Comment(content="Nice view", tour_id=tour.id, author_id=reviewer.id))
        await db.commit()
        resp = await client.delete(f"/api/users/{reviewer.id}", headers=auth(system_user))
        assert resp.status_code == 409
        assert await count(User, id=reviewer.id) == 1


class TestProfile:

    async def test_get_me(self, client, reviewer):
        resp = await client.get("/api/users/me", headers=auth(reviewer))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["id"] == reviewer.id
        assert data["organizations"] == []

    async def test_update_me(self, client, reviewer, fetch):
        resp = await client.put("/api/users/me", json={"firstName": "Self"}, headers=auth(reviewer))
        assert resp.status_code == 200
        assert (await fetch(User, id=reviewer.id)).first_name == "Self"

    async def test_cannot_change_own_role_through_profile(self, client, reviewer, fetch):
        resp = await client.put("/api/users/me", json={"role": "SUPER_ADMIN"}, headers=auth(reviewer))
        assert resp.status_code == 200
        assert (await fetch(User, id=reviewer.id)).role == Role.REVIEWER


class TestPasswordChange:

    async def test_own_password_needs_current(self, client, reviewer, fetch):
        url = f"/api/users/{reviewer.id}/password"
        resp = await client.put(url, json={"newPassword": "another-pw"}, headers=auth(reviewer))
        assert resp.status_code == 400

        resp = await client.put(
            url, json={"currentPassword": PASSWORD, "newPassword": "another-pw"}, headers=auth(reviewer)
        )
        assert resp.status_code == 200
        assert verify_password("another-pw", (await fetch(User, id=reviewer.id)).password_hash)

    async def test_admin_sets_password_without_current(self, client, system_user, reviewer, fetch):
        resp = await client.put(
            f"/api/users/{reviewer.id}/password", json={"newPassword": "admin-set-pw"}, headers=auth(system_user)
        )
        assert resp.status_code == 200
        assert verify_password("admin-set-pw", (await fetch(User, id=reviewer.id)).password_hash)

    async def test_reviewer_cannot_change_someone_else(self, client, reviewer, make_user, fetch):
        other = await make_user()
        resp = await client.put(
            f"/api/users/{other.id}/password", json={"newPassword": "hijacked-pw"}, headers=auth(reviewer)
        )
        assert resp.status_code == 403
        assert verify_password(PASSWORD, (await fetch(User, id=other.id)).password_hash)

    async def test_reviewer_gets_same_answer_for_unknown_user(self, client, reviewer, make_user):
        other = await make_user()
        known = await client.put(
            f"/api/users/{other.id}/password", json={"newPassword": "hijacked-pw"}, headers=auth(reviewer)
        )
        unknown = await client.put(
            "/api/users/does-not-exist/password", json={"newPassword": "hijacked-pw"}, headers=auth(reviewer)
        )
        assert known.status_code == unknown.status_code == 403
        assert known.json() == unknown.json()
