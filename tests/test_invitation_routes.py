from datetime import timedelta

import pytest
from conftest import PASSWORD, auth

from panodesk.features.invitations.models import Invitation, InvitationStatus
from panodesk.features.users.models import Role, User
from panodesk.utils import utcnow


async def invite(client, sender, url="/api/invitations", **payload):
    payload.setdefault("role", "REVIEWER")
    resp = await client.post(url, json=payload, headers=auth(sender))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestSenderRoutes:

    async def test_invite_then_register_through_the_api(self, client, system_user, project, fetch, outbox):
        data = await invite(client, system_user, email="a@x.com", projectId=project.id)
        assert data["status"] == "PENDING"
        assert data["project"]["id"] == project.id
        assert "token" not in data

        token = (await fetch(Invitation, id=data["id"])).token
        assert token in outbox[0].body

        verify = await client.get("/api/auth/verify-invitation", params={"token": token})
        assert verify.status_code == 200
        info = verify.json()["data"]
        assert info["needsRegistration"] is True
        assert info["email"] == "a@x.com"
        assert info["role"] == "REVIEWER"
        assert info["invitedBy"]["id"] == system_user.id
        assert info["project"]["id"] == project.id

        accept = await client.post("/api/auth/accept-invitation", json={
            "token": token, "firstName": "Ann", "lastName": "Lee",
            "password": PASSWORD, "confirmPassword": PASSWORD,
        })
        assert accept.status_code == 200
        assert accept.json()["data"]["role"] == "REVIEWER"
        assert accept.json()["data"]["emailVerified"] is True

        login = await client.post("/api/auth/login", json={"email": "a@x.com", "password": PASSWORD})
        assert login.status_code == 200

        again = await client.post("/api/auth/accept-invitation", json={
            "token": token, "firstName": "Ann", "lastName": "Lee", "password": PASSWORD,
        })
        assert again.status_code == 404

    async def test_send_alias_and_blank_fields(self, client, system_user):
        data = await invite(client, system_user, url="/api/invitations/send",
                            email="b@x.com", userId="", projectId="", organizationId="")
        assert data["projectId"] is None
        assert data["organizationId"] is None

    async def test_ungrantable_role(self, client, system_user, count):
        resp = await client.post(
            "/api/invitations", json={"email": "c@x.com", "role": "SUPER_ADMIN"}, headers=auth(system_user)
        )
        assert resp.status_code == 400
        assert "role" in resp.json()["errors"]
        assert await count(Invitation) == 0

    async def test_missing_invitee(self, client, system_user):
        resp = await client.post("/api/invitations", json={"role": "REVIEWER"}, headers=auth(system_user))
        assert resp.status_code == 400

    async def test_reviewer_cannot_use_invitations(self, client, reviewer):
        resp = await client.post("/api/invitations", json={"email": "d@x.com"}, headers=auth(reviewer))
        assert resp.status_code == 403
        assert (await client.get("/api/invitations", headers=auth(reviewer))).status_code == 403

    async def test_duplicate(self, client, system_user):
        await invite(client, system_user, email="e@x.com")
        resp = await client.post("/api/invitations", json={"email": "e@x.com"}, headers=auth(system_user))
        assert resp.status_code == 409

    async def test_manager_sees_only_their_invitations(self, client, system_user, manager, project):
        mine = await invite(client, manager, email="m@x.com", projectId=project.id)
        staff_to_project = await invite(client, system_user, email="s@x.com", projectId=project.id)
        await invite(client, system_user, email="other@x.com")

        resp = await client.get("/api/invitations", headers=auth(manager))
        ids = {item["id"] for item in resp.json()["data"]["items"]}
        assert ids == {mine["id"], staff_to_project["id"]}

        resp = await client.get("/api/invitations", headers=auth(system_user))
        assert resp.json()["data"]["pagination"]["total"] == 3

    async def test_manager_cannot_read_foreign_invitation(self, client, system_user, manager):
        foreign = await invite(client, system_user, email="f@x.com")
        resp = await client.get(f"/api/invitations/{foreign['id']}", headers=auth(manager))
        assert resp.status_code == 403

    async def test_overdue_invitation_listed_as_expired(self, client, system_user, db):
        data = await invite(client, system_user, email="late@x.com")
        await invite(client, system_user, email="fresh@x.com")
        invitation = await db.get(Invitation, data["id"])
        invitation.expires_at = utcnow() - timedelta(minutes=5)
        await db.commit()

        resp = await client.get("/api/invitations", params={"status": "EXPIRED"}, headers=auth(system_user))
        items = resp.json()["data"]["items"]
        assert [(item["email"], item["status"]) for item in items] == [("late@x.com", "EXPIRED")]

        resp = await client.get("/api/invitations", params={"status": "PENDING"}, headers=auth(system_user))
        assert [item["email"] for item in resp.json()["data"]["items"]] == ["fresh@x.com"]

    async def test_overdue_invitation_is_not_revived_by_resend(self, client, system_user, db):
        data = await invite(client, system_user, email="stale@x.com")
        invitation = await db.get(Invitation, data["id"])
        invitation.expires_at = utcnow() - timedelta(minutes=5)
        await db.commit()

        url = f"/api/invitations/{data['id']}"
        assert (await client.get(url, headers=auth(system_user))).json()["data"]["status"] == "EXPIRED"

        resp = await client.post(f"{url}/resend", headers=auth(system_user))
        assert resp.status_code == 409
        assert (await client.get(url, headers=auth(system_user))).json()["data"]["status"] == "EXPIRED"

    async def test_search_by_email(self, client, system_user):
        await invite(client, system_user, email="findme@x.com")
        await invite(client, system_user, email="other@x.com")
        resp = await client.get("/api/invitations", params={"search": "findme"}, headers=auth(system_user))
        assert [item["email"] for item in resp.json()["data"]["items"]] == ["findme@x.com"]

    async def test_resend_with_rotation(self, client, system_user, fetch, outbox):
        data = await invite(client, system_user, email="r@x.com")
        old_token = (await fetch(Invitation, id=data["id"])).token

        resp = await client.post(
            f"/api/invitations/{data['id']}/resend", params={"rotateToken": "true"}, headers=auth(system_user)
        )
        assert resp.status_code == 200
        new_token = (await fetch(Invitation, id=data["id"])).token
        assert new_token != old_token
        assert new_token in outbox[-1].body

    async def test_revoke_then_resend_conflicts(self, client, system_user, fetch):
        data = await invite(client, system_user, email="v@x.com")
        url = f"/api/invitations/{data['id']}"

        resp = await client.put(f"{url}/status", json={"status": "REJECTED"}, headers=auth(system_user))
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "REJECTED"

        assert (await client.post(f"{url}/resend", headers=auth(system_user))).status_code == 409
        assert (await client.put(
            f"{url}/status", json={"status": "EXPIRED"}, headers=auth(system_user)
        )).status_code == 409

        token = (await fetch(Invitation, id=data["id"])).token
        verify = await client.get("/api/auth/verify-invitation", params={"token": token})
        assert verify.status_code == 404

    async def test_delete(self, client, system_user, count):
        data = await invite(client, system_user, email="gone@x.com")
        resp = await client.delete(f"/api/invitations/{data['id']}", headers=auth(system_user))
        assert resp.status_code == 200
        assert await count(Invitation) == 0
        assert (await client.get(f"/api/invitations/{data['id']}", headers=auth(system_user))).status_code == 404


class TestInviteeRoutes:

    @pytest.fixture
    async def pending(self, client, system_user, fetch):
        data = await invite(client, system_user, email="invitee@x.com")
        return await fetch(Invitation, id=data["id"])

    async def test_unknown_and_expired_tokens_answer_identically(self, client, pending, db):
        invitation = await db.get(Invitation, pending.id)
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        await db.commit()

        unknown = await client.get("/api/auth/verify-invitation", params={"token": "nope"})
        expired = await client.get("/api/auth/verify-invitation", params={"token": pending.token})

        assert unknown.status_code == expired.status_code == 404
        assert unknown.json() == expired.json()

    async def test_password_mismatch_creates_nothing(self, client, pending, count, fetch):
        resp = await client.post("/api/auth/accept-invitation", json={
            "token": pending.token, "firstName": "In", "lastName": "Vitee",
            "password": PASSWORD, "confirmPassword": "not-the-same",
        })
        assert resp.status_code == 400
        assert "confirmPassword" in resp.json()["errors"]
        assert await count(User, email="invitee@x.com") == 0
        assert (await fetch(Invitation, id=pending.id)).status == InvitationStatus.PENDING

    async def test_existing_account_accepts_without_registration(self, client, system_user, make_user, fetch):
        existing = await make_user(Role.REVIEWER, email="known@x.com")
        data = await invite(client, system_user, email="known@x.com", role="ORGANIZATION_MANAGER")
        token = (await fetch(Invitation, id=data["id"])).token

        verify = await client.get("/api/auth/verify-invitation", params={"token": token})
        assert verify.json()["data"]["needsRegistration"] is False

        resp = await client.post("/api/auth/accept-invitation", json={"token": token})
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == existing.id
        assert (await fetch(User, id=existing.id)).role == Role.ORGANIZATION_MANAGER

    async def test_decline(self, client, pending, fetch):
        resp = await client.post("/api/auth/decline-invitation", json={"token": pending.token})
        assert resp.status_code == 200
        assert (await fetch(Invitation, id=pending.id)).status == InvitationStatus.REJECTED

        again = await client.post("/api/auth/decline-invitation", json={"token": pending.token})
        assert again.status_code == 404
