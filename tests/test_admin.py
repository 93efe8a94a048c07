import pytest
from conftest import publish

from inkwell.cache import post_cache, search_cache


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/admin/users"),
        ("get", "/api/admin/reports"),
        ("get", "/api/admin/logs"),
        ("get", "/api/admin/performance"),
        ("get", "/api/admin/cache"),
        ("delete", "/api/admin/cache"),
        ("get", "/api/admin/health"),
    ],
)
def test_non_admins_are_forbidden(reader, anon, method, path):
    assert getattr(reader, method)(path).status_code == 403
    assert getattr(anon, method)(path).status_code == 401


def test_list_and_search_users(admin, author, reader):
    publish(author)
    listing = admin.get("/api/admin/users").json()
    assert listing["pagination"]["total"] == 3
    found = admin.get("/api/admin/users?search=ada").json()["users"]
    assert [u["email"] for u in found] == ["author@example.com"]
    assert found[0]["counts"] == {"posts": 1, "comments": 0, "reactions": 0}
    assert [u["email"] for u in admin.get("/api/admin/users?role=ADMIN").json()["users"]] == ["admin@example.com"]


def test_change_role_and_ban(admin, reader):
    uid = reader.user["id"]
    res = admin.patch("/api/admin/users", json={"user_id": uid, "role": "AUTHOR"})
    assert res.json()["role"] == "AUTHOR"

    res = admin.patch("/api/admin/users", json={"user_id": uid, "action": "ban"})
    assert res.json()["banned"] is True
    assert reader.get("/api/profile").status_code == 403

    admin.patch("/api/admin/users", json={"user_id": uid, "action": "unban"})
    assert reader.get("/api/profile").status_code == 200


def test_admin_update_validation(admin):
    assert admin.patch("/api/admin/users", json={"user_id": "x"}).status_code == 400
    assert admin.patch("/api/admin/users", json={"user_id": admin.user["id"], "action": "ban"}).status_code == 400
    assert admin.patch("/api/admin/users", json={"user_id": "missing", "action": "ban"}).status_code == 404


def test_report_approve_unpublishes_post(admin, author, reader, anon):
    post = publish(author, title="Spammy")
    res = reader.post("/api/reports", json={"target_type": "post", "target_id": post["id"], "reason": "spam links"})
    assert res.status_code == 201
    report = res.json()
    assert report["status"] == "pending"

    pending = admin.get("/api/admin/reports?status=pending").json()
    assert [r["id"] for r in pending["reports"]] == [report["id"]]

    reviewed = admin.post("/api/admin/reports", json={"report_id": report["id"], "action": "approve", "reason": "spam"})
    assert reviewed.json()["status"] == "approved"
    assert reviewed.json()["resolution"] == "spam"
    assert anon.get(f"/api/posts/{post['id']}").status_code == 404
    assert admin.get("/api/admin/reports?status=pending").json()["reports"] == []


def test_report_approve_deletes_comment(admin, author, reader):
    post = publish(author)
    comment = author.post(f"/api/posts/{post['id']}/comments", json={"content": "buy now"}).json()
    report = reader.post(
        "/api/reports", json={"target_type": "comment", "target_id": comment["id"], "reason": "spam"}
    ).json()
    admin.post("/api/admin/reports", json={"report_id": report["id"], "action": "approve"})
    assert reader.get(f"/api/posts/{post['id']}/comments").json()["comments"] == []


def test_report_ban_user_and_reject(admin, author, reader):
    post = publish(author)
    first = reader.post("/api/reports", json={"target_type": "post", "target_id": post["id"], "reason": "abuse"}).json()
    second = reader.post("/api/reports", json={"target_type": "post", "target_id": post["id"], "reason": "dupe"}).json()

    assert admin.post("/api/admin/reports", json={"report_id": second["id"], "action": "reject"}).json()["status"] == "rejected"
    assert admin.post("/api/admin/reports", json={"report_id": first["id"], "action": "ban_user"}).json()["status"] == "resolved"
    assert author.get("/api/profile").status_code == 403


def test_report_requires_existing_target(reader):
    res = reader.post("/api/reports", json={"target_type": "comment", "target_id": "nope", "reason": "spam"})
    assert res.status_code == 404


def test_logs_performance_and_cache(admin, author):
    publish(author, title="Logged")
    logs = admin.get("/api/admin/logs?limit=50").json()["items"]
    assert any(item["action"] == "POST_CREATED" for item in logs)

    report = admin.get("/api/admin/performance").json()
    assert report["metrics"]["api_response"]["count"] >= 1
    assert set(report["cache_stats"]) == {"users", "posts", "search"}

    post_cache.set("x", 1)
    search_cache.set("y", 2)
    assert admin.get("/api/admin/cache").json()["posts"]["size"] == 1
    assert admin.delete("/api/admin/cache?name=posts").json() == {"cleared": ["posts"]}
    assert post_cache.get("x") is None
    assert search_cache.get("y") == 2
    admin.delete("/api/admin/cache")
    assert search_cache.get("y") is None


def test_admin_health(admin):
    body = admin.get("/api/admin/health").json()
    assert body["status"] == "ok"
    assert body["env"] == "test"
