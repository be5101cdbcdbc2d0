import pytest
from conftest import auth

from panodesk.features.comments.models import Comment


@pytest.fixture
async def reviewed_tour(organization, make_project, make_tour, reviewer):
    project = await make_project(organization, name="Reviewed", reviewers=[reviewer])
    return await make_tour(project)


async def post_comment(client, user, tour, content="Looks great", parent_id=None):
    payload = {"content": content, "tourId": tour.id, "parentId": parent_id or ""}
    resp = await client.post("/api/comments", json=payload, headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestComments:

    async def test_reviewer_comments_on_assigned_tour(self, client, reviewer, reviewed_tour):
        data = await post_comment(client, reviewer, reviewed_tour)
        assert data["author"]["id"] == reviewer.id
        assert data["parentId"] is None

    async def test_cannot_comment_outside_scope(self, client, reviewer, tour, count):
        resp = await client.post(
            "/api/comments", json={"content": "Sneaky", "tourId": tour.id}, headers=auth(reviewer)
        )
        assert resp.status_code == 403
        assert await count(Comment, content="Sneaky") == 0

    async def test_replies_are_single_level(self, client, reviewer, reviewed_tour):
        top = await post_comment(client, reviewer, reviewed_tour)
        reply = await post_comment(client, reviewer, reviewed_tour, "Agreed", parent_id=top["id"])
        assert reply["parentId"] == top["id"]

        resp = await client.post(
            "/api/comments",
            json={"content": "Too deep", "tourId": reviewed_tour.id, "parentId": reply["id"]},
            headers=auth(reviewer),
        )
        assert resp.status_code == 400

        listing = await client.get(
            "/api/comments", params={"tourId": reviewed_tour.id, "parentId": top["id"]}, headers=auth(reviewer)
        )
        assert [c["id"] for c in listing.json()["data"]["items"]] == [reply["id"]]

    async def test_author_edits_own_comment(self, client, reviewer, reviewed_tour, fetch):
        comment = await post_comment(client, reviewer, reviewed_tour)
        resp = await client.put(f"/api/comments/{comment['id']}", json={"content": "Edited"}, headers=auth(reviewer))
        assert resp.status_code == 200
        assert (await fetch(Comment, id=comment["id"])).content == "Edited"

    async def test_reviewer_cannot_delete_someone_elses_comment(
        self, client, reviewer, reviewed_tour, make_user, db, count
    ):
        other = await make_user()
        comment = Comment(content="Mine", tour_id=reviewed_tour.id, author_id=other.id)
        db.add(comment)
        await db.commit()

        resp = await client.delete(f"/api/comments/{comment.id}", headers=auth(reviewer))
        assert resp.status_code == 403
        assert await count(Comment, id=comment.id) == 1

        resp = await client.put(f"/api/comments/{comment.id}", json={"content": "Hijack"}, headers=auth(reviewer))
        assert resp.status_code == 403

    async def test_manager_moderates_own_organization(self, client, manager, reviewer, reviewed_tour, count):
        comment = await post_comment(client, reviewer, reviewed_tour)
        resp = await client.delete(f"/api/comments/{comment['id']}", headers=auth(manager))
        assert resp.status_code == 200
        assert await count(Comment, id=comment["id"]) == 0

    async def test_deleting_a_comment_removes_replies(self, client, reviewer, reviewed_tour, count):
        top = await post_comment(client, reviewer, reviewed_tour)
        await post_comment(client, reviewer, reviewed_tour, "Reply", parent_id=top["id"])

        resp = await client.delete(f"/api/comments/{top['id']}", headers=auth(reviewer))
        assert resp.status_code == 200
        assert await count(Comment, tour_id=reviewed_tour.id) == 0
