from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from useradmin.config import Settings
from useradmin.database import Database
from useradmin.service import create_app, unflatten_form


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "useradmin.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def client(database: Database):
    app = create_app(database=database, settings=Settings(page_length=25))
    with TestClient(app) as test_client:
        yield test_client


def test_unflatten_form_builds_nested_rows() -> None:
    nested = unflatten_form(
        [
            ("action", "edit"),
            ("data[5][name]", "Ada"),
            ("data[5][email]", "ada@example.com"),
            ("data[6][name]", "Grace"),
        ]
    )

    assert nested == {
        "action": "edit",
        "data": {
            "5": {"name": "Ada", "email": "ada@example.com"},
            "6": {"name": "Grace"},
        },
    }


def test_healthcheck(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_redirects_to_users_page(client: TestClient) -> None:
    response = client.get("/", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].endswith("/users")


def test_users_page_wires_grid_assets(client: TestClient) -> None:
    response = client.get("/users")

    assert response.status_code == 200
    assert "datatables.min.js" in response.text
    assert "dataTables.editor.min.js" in response.text

    match = re.search(
        r"<script id=\"users-grid-config\" type=\"application/json\">(.*?)</script>",
        response.text,
        re.DOTALL,
    )
    assert match is not None
    config = json.loads(match.group(1))
    assert config["dataUrl"] == "http://testserver/users/data"
    assert config["editorUrl"] == "http://testserver/users/editor"
    assert config["pageLength"] == 25


def test_editor_json_create_then_data_feed(client: TestClient, database: Database) -> None:
    response = client.post(
        "/users/editor",
        json={
            "action": "create",
            "data": {
                "0": {
                    "email": "a@x.com",
                    "name": "A",
                    "password": "secret",
                    "password_confirmation": "secret",
                }
            },
        },
    )

    assert response.status_code == 200
    row = response.json()["data"][0]
    assert row["email"] == "a@x.com"
    assert "password" not in row
    assert database.get_password_hash(row["id"]) != "secret"

    feed = client.get("/users/data", params={"draw": "1", "start": "0", "length": "10"})
    assert feed.status_code == 200
    payload = feed.json()
    assert payload["draw"] == 1
    assert payload["recordsTotal"] == 1
    assert payload["data"][0]["id"] == row["id"]


def test_editor_form_encoded_edit(client: TestClient, database: Database) -> None:
    user = database.insert_user(name="Ada", email="ada@example.com", password="hash")

    response = client.post(
        "/users/editor",
        data={"action": "edit", f"data[{user.id}][name]": "Ada Lovelace"},
    )

    assert response.status_code == 200
    assert response.json()["data"][0]["name"] == "Ada Lovelace"
    assert database.get_password_hash(user.id) == "hash"


def test_editor_validation_errors_are_returned_as_data(client: TestClient) -> None:
    response = client.post(
        "/users/editor",
        json={
            "action": "create",
            "data": {
                "0": {
                    "email": "a@x.com",
                    "name": "A",
                    "password": "secret",
                    "password_confirmation": "other",
                }
            },
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "data": [],
        "fieldErrors": [{"name": "password", "status": "The password confirmation does not match."}],
    }


def test_editor_rejects_non_object_json(client: TestClient) -> None:
    response = client.post("/users/editor", json=["create"])

    assert response.status_code == 200
    assert response.json()["error"] == "Request body must be a JSON object"


def test_editor_remove(client: TestClient, database: Database) -> None:
    user = database.insert_user(name="Ada", email="ada@example.com", password="hash")

    response = client.post(
        "/users/editor",
        data={"action": "remove", f"data[row_{user.id}][id]": str(user.id)},
    )

    assert response.json() == {"data": []}
    assert database.get_user(user.id) is None


def test_token_auth_guards_json_endpoints(database: Database) -> None:
    app = create_app(database=database, settings=Settings(api_tokens=("s3cret",)))

    with TestClient(app) as client:
        assert client.get("/users/data").status_code == 401
        assert client.get(
            "/users/data", headers={"Authorization": "Bearer wrong"}
        ).status_code == 403
        allowed = client.get("/users/data", headers={"Authorization": "Bearer s3cret"})
        assert allowed.status_code == 200

        denied = client.post("/users/editor", json={"action": "remove", "data": {"1": {}}})
        assert denied.status_code == 401

        # The page shell itself stays reachable.
        assert client.get("/users").status_code == 200
