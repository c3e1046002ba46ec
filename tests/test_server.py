"""
Tests for hub_server.py: API key gate, auth routes, REST surface and
per-user scoping (Flask test client).
"""
import pytest

import hub_server

API_KEY = "test-key"


@pytest.fixture
def client(db_path):
    hub_server.app.config.update(DB_PATH=db_path, API_KEY=API_KEY, TESTING=True)
    with hub_server.app.test_client() as c:
        yield c


def _signup(client, email="alice@example.com", password="secret1"):
    r = client.post("/auth/v1/signup", json={"email": email, "password": password},
                    headers={"apikey": API_KEY})
    assert r.status_code == 200, r.get_json()
    return r.get_json()


def _headers(session):
    return {"apikey": API_KEY, "Authorization": f"Bearer {session['access_token']}"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Gatekeeping
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestApiKey:

    def test_health_is_open(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.get_json()["status"] == "ok"

    def test_missing_key(self, client):
        assert client.get("/rest/v1/projects").status_code == 401

    def test_wrong_key(self, client):
        assert client.get("/rest/v1/projects", headers={"apikey": "nope"}).status_code == 403

    def test_server_without_key(self, client):
        hub_server.app.config["API_KEY"] = ""
        r = client.get("/rest/v1/projects", headers={"apikey": "anything"})
        assert r.status_code == 503

    def test_missing_bearer(self, client):
        r = client.get("/rest/v1/projects", headers={"apikey": API_KEY})
        assert r.status_code == 401


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth routes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAuthRoutes:

    def test_signup_login_user_logout(self, client):
        session = _signup(client)
        assert session["user"]["email"] == "alice@example.com"

        r = client.post("/auth/v1/token?grant_type=password",
                        json={"email": "alice@example.com", "password": "secret1"},
                        headers={"apikey": API_KEY})
        assert r.status_code == 200
        login = r.get_json()

        r = client.get("/auth/v1/user", headers=_headers(login))
        assert r.get_json()["id"] == session["user"]["id"]

        assert client.post("/auth/v1/logout", headers=_headers(login)).status_code == 204
        assert client.get("/auth/v1/user", headers=_headers(login)).status_code == 401

    def test_bad_credentials(self, client):
        _signup(client)
        r = client.post("/auth/v1/token?grant_type=password",
                        json={"email": "alice@example.com", "password": "wrong!!"},
                        headers={"apikey": API_KEY})
        assert r.status_code == 400
        assert r.get_json()["error_description"] == "Invalid login credentials"

    def test_unsupported_grant(self, client):
        r = client.post("/auth/v1/token?grant_type=refresh_token", json={},
                        headers={"apikey": API_KEY})
        assert r.status_code == 400


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REST surface
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRestRoutes:

    @pytest.fixture(autouse=True)
    def _user(self, client):
        self.client = client
        self.session = _signup(client)
        self.headers = _headers(self.session)
        self.user_id = self.session["user"]["id"]

    def _create_project(self, title="Apollo"):
        r = self.client.post("/rest/v1/projects", headers=self.headers,
                             json={"user_id": self.user_id, "title": title})
        assert r.status_code == 201, r.get_json()
        return r.get_json()[0]

    def test_crud_cycle(self):
        project = self._create_project()
        r = self.client.post("/rest/v1/tasks", headers=self.headers,
                             json=[{"project_id": project["id"], "title": "T"}])
        task = r.get_json()[0]
        assert task["status"] == "todo"

        r = self.client.patch(f"/rest/v1/tasks?id=eq.{task['id']}", headers=self.headers,
                              json={"status": "done"})
        assert r.get_json()[0]["status"] == "done"

        r = self.client.get(
            f"/rest/v1/tasks?select=*&project_id=eq.{project['id']}&status=neq.todo"
            "&order=position.asc",
            headers=self.headers,
        )
        assert [t["title"] for t in r.get_json()] == ["T"]

        r = self.client.delete(f"/rest/v1/projects?id=eq.{project['id']}", headers=self.headers)
        assert r.get_json()[0]["id"] == project["id"]
        r = self.client.get("/rest/v1/tasks", headers=self.headers)
        assert r.get_json() == []

    def test_missing_rows_return_empty(self):
        r = self.client.patch("/rest/v1/notes?id=eq.nope", headers=self.headers,
                              json={"title": "x"})
        assert r.status_code == 200
        assert r.get_json() == []
        r = self.client.delete("/rest/v1/notes?id=eq.nope", headers=self.headers)
        assert r.get_json() == []

    def test_null_filter(self):
        project = self._create_project()
        self.client.post("/rest/v1/tasks", headers=self.headers,
                         json={"project_id": project["id"], "title": "Undated"})
        r = self.client.get("/rest/v1/tasks?deadline=eq.null", headers=self.headers)
        assert [t["title"] for t in r.get_json()] == ["Undated"]

    def test_query_errors(self):
        r = self.client.get("/rest/v1/tasks?status=gt.todo", headers=self.headers)
        assert r.status_code == 400
        r = self.client.get("/rest/v1/widgets", headers=self.headers)
        assert r.status_code == 400
        assert r.get_json()["kind"] == "query"
        r = self.client.patch("/rest/v1/tasks?status=eq.todo", headers=self.headers,
                              json={"status": "done"})
        assert r.status_code == 400
        r = self.client.post("/rest/v1/projects", headers=self.headers, data="not json")
        assert r.status_code == 400

    def test_users_only_see_their_rows(self):
        mine = self._create_project("Mine")
        other = _signup(self.client, "bob@example.com", "secret2")
        bob_headers = _headers(other)

        r = self.client.get("/rest/v1/projects", headers=bob_headers)
        assert r.get_json() == []
        r = self.client.patch(f"/rest/v1/projects?id=eq.{mine['id']}", headers=bob_headers,
                              json={"title": "Stolen"})
        assert r.get_json() == []
        r = self.client.post("/rest/v1/projects", headers=bob_headers,
                             json={"user_id": self.user_id, "title": "Forged"})
        assert r.status_code == 400
