from conftest import auth


class TestPermissionRoutes:

    async def test_my_permissions_for_manager(self, client, manager):
        resp = await client.get("/api/permissions/me", headers=auth(manager))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["role"] == "ORGANIZATION_MANAGER"
        assert "send_invitations" in data["capabilities"]
        assert "manage_users" not in data["capabilities"]
        assert data["grantableRoles"] == ["ORGANIZATION_MANAGER", "REVIEWER"]

    async def test_reviewer_grants_nothing(self, client, reviewer):
        resp = await client.get("/api/permissions/me", headers=auth(reviewer))
        assert resp.json()["data"]["grantableRoles"] == []

    async def test_policy_table(self, client, reviewer):
        resp = await client.get("/api/permissions/policy", headers=auth(reviewer))
        assert resp.status_code == 200
        entries = {entry["capability"]: entry["roles"] for entry in resp.json()["data"]}
        assert entries["manage_users"] == ["SUPER_ADMIN", "SYSTEM_USER"]

    async def test_audit_log_is_staff_only(self, client, manager):
        resp = await client.get("/api/permissions/audit-logs", headers=auth(manager))
        assert resp.status_code == 403

    async def test_audit_log_records_invitations(self, client, system_user):
        resp = await client.post(
            "/api/invitations", json={"email": "audited@x.com", "role": "REVIEWER"}, headers=auth(system_user)
        )
        assert resp.status_code == 201

        logs = await client.get(
            "/api/permissions/audit-logs", params={"resourceType": "invitation"}, headers=auth(system_user)
        )
        assert logs.status_code == 200
        items = logs.json()["data"]["items"]
        assert len(items) == 1
        assert items[0]["action"] == "create"
        assert items[0]["userId"] == system_user.id
        assert items[0]["details"]["email"] == "audited@x.com"


class TestApp:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.json() == {"status": "healthy"}

    async def test_validation_errors_use_envelope(self, client):
        resp = await client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert "email" in body["errors"]
