"""
HTTP tests for the avatar routes.

Runs the real lifespan (database, service wiring, background reconciliation)
against temporary directories and the in-memory identity provider.
"""

import dataclasses
import os

import pytest
from fastapi.testclient import TestClient

from conftest import InMemoryIdentity, make_image_bytes
from main import create_app


@pytest.fixture
def identity():
    ident = InMemoryIdentity()
    ident.add("alice")
    return ident


@pytest.fixture
def client(settings, identity):
    # Keep the startup pass out of the way of the assertions below.
    app = create_app(dataclasses.replace(settings, reconcile_delay_seconds=3600), identity=identity)
    with TestClient(app) as c:
        yield c


def _upload(client, filename="cat.png", data=None, content_type="image/png"):
    data = make_image_bytes() if data is None else data
    return client.post("/avatars", files={"file": (filename, data, content_type)})


class TestAvatarRoutes:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body == {"ok": True, "db_initialized": True, "avatar_service": True}

    def test_upload_list_and_fetch_image(self, client):
        data = make_image_bytes((1, 2, 3))
        uploaded = _upload(client, data=data).json()

        listed = client.get("/avatars").json()
        assert [a["id"] for a in listed] == [uploaded["id"]]
        assert listed[0]["name"] == "cat"
        assert listed[0]["url"] == f"/avatars/{uploaded['id']}/image"

        image = client.get(uploaded["url"])
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"
        assert image.content == data

    def test_upload_rejects_bad_extension(self, client):
        resp = _upload(client, filename="notes.txt", content_type="text/plain")
        assert resp.status_code == 400

    def test_unknown_avatar_image_is_404(self, client):
        assert client.get("/avatars/nope/image").status_code == 404

    def test_delete_avatar(self, client):
        avatar_id = _upload(client).json()["id"]

        assert client.delete(f"/avatars/{avatar_id}").status_code == 200
        assert client.delete(f"/avatars/{avatar_id}").status_code == 404
        assert client.get("/avatars").json() == []

    def test_bind_lookup_and_unbind(self, client, identity):
        avatar_id = _upload(client).json()["id"]

        resp = client.put("/users/alice/avatar", json={"avatar_id": avatar_id})
        assert resp.status_code == 200
        assert client.get("/users/alice/avatar").json()["avatar_id"] == avatar_id
        assert os.path.exists(identity.pointer("alice"))

        resp = client.delete("/users/alice/avatar")
        assert resp.status_code == 200
        assert resp.json()["changed"] is True
        assert client.get("/users/alice/avatar").status_code == 404
        assert identity.pointer("alice") is None

    def test_user_avatar_image_streams_bound_pool_file(self, client):
        data = make_image_bytes((9, 9, 9))
        avatar_id = _upload(client, data=data).json()["id"]
        assert client.get("/users/alice/avatar/image").status_code == 404

        client.put("/users/alice/avatar", json={"avatar_id": avatar_id})
        assert client.get("/users/alice/avatar").json()["url"] == "/users/alice/avatar/image"

        image = client.get("/users/alice/avatar/image")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"
        assert image.content == data

    def test_user_avatar_image_missing_pool_file_is_404(self, client, settings):
        avatar_id = _upload(client).json()["id"]
        client.put("/users/alice/avatar", json={"avatar_id": avatar_id})
        os.remove(os.path.join(settings.avatar_dir, f"{avatar_id}.png"))

        assert client.get("/users/alice/avatar/image").status_code == 404

    def test_upload_with_mismatched_content_is_400(self, client):
        resp = _upload(client, filename="photo.png", data=make_image_bytes(fmt="JPEG"))
        assert resp.status_code == 400

    def test_bind_errors_map_to_statuses(self, client):
        avatar_id = _upload(client).json()["id"]

        assert client.put("/users/alice/avatar", json={"avatar_id": "nope"}).status_code == 404
        assert client.put("/users/ghost/avatar", json={"avatar_id": avatar_id}).status_code == 404
        assert client.put("/users/alice/avatar", json={"avatar_id": ""}).status_code == 400

    def test_pointer_failure_is_500(self, client, identity):
        avatar_id = _upload(client).json()["id"]
        identity.fail_persist = True

        resp = client.put("/users/alice/avatar", json={"avatar_id": avatar_id})

        assert resp.status_code == 500
        assert client.get("/users/alice/avatar").status_code == 404

    def test_maintenance_endpoints(self, client, identity):
        avatar_id = _upload(client).json()["id"]
        client.put("/users/alice/avatar", json={"avatar_id": avatar_id})
        os.remove(identity.pointer("alice"))

        assert client.post("/maintenance/validate").json() == {"repaired": 1}
        assert client.post("/maintenance/orphans").json() == {"deleted": 0}
