"""Tests for the Basic-auth prompt form."""

import base64

import httpx
import pytest

from relaybot.web_server import PromptFormConfig, PromptFormServer, check_basic_auth


def basic(username, password):
    return "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()


@pytest.fixture
def server(storage):
    storage.insert_prompt("Current <prompt>")
    form = PromptFormServer(storage, PromptFormConfig("127.0.0.1", 0, True, "admin", "secret"))
    form.start()
    yield form
    form.stop()


def url(server, path):
    host, port = server.server_address
    return f"http://{host}:{port}{path}"


class TestCheckBasicAuth:
    def test_valid(self):
        assert check_basic_auth(basic("admin", "secret"), "admin", "secret") is True

    def test_wrong_password(self):
        assert check_basic_auth(basic("admin", "nope"), "admin", "secret") is False

    def test_malformed(self):
        assert check_basic_auth("Basic !!!", "admin", "secret") is False
        assert check_basic_auth("Bearer x", "admin", "secret") is False


class TestPromptForm:
    def test_requires_credentials(self, server):
        response = httpx.get(url(server, "/"))
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="Restricted"'

    def test_bad_credentials(self, server):
        response = httpx.get(url(server, "/"), headers={"Authorization": basic("admin", "wrong")})
        assert response.status_code == 401

    def test_form_shows_escaped_prompt(self, server):
        response = httpx.get(url(server, "/"), headers={"Authorization": basic("admin", "secret")})
        assert response.status_code == 200
        assert "Current &lt;prompt&gt;" in response.text
        assert "action='/save'" in response.text

    def test_save_updates_prompt(self, server, storage):
        response = httpx.post(
            url(server, "/save"),
            data={"prompt": "New prompt"},
            headers={"Authorization": basic("admin", "secret")},
        )
        assert response.status_code == 303
        assert response.headers["Location"] == "/"
        assert storage.get_system_prompt() == "New prompt"

    def test_empty_prompt_rejected(self, server, storage):
        response = httpx.post(
            url(server, "/save"),
            data={"prompt": ""},
            headers={"Authorization": basic("admin", "secret")},
        )
        assert response.status_code == 400
        assert storage.get_system_prompt(use_cache=False) == "Current <prompt>"

    def test_get_save_not_allowed(self, server):
        response = httpx.get(url(server, "/save"), headers={"Authorization": basic("admin", "secret")})
        assert response.status_code == 405


class TestLifecycle:
    def test_disabled(self, storage):
        form = PromptFormServer(storage, PromptFormConfig("127.0.0.1", 0, False, "admin", "secret"))
        form.start()
        assert form.server_address is None

    def test_empty_credentials_not_started(self, storage):
        form = PromptFormServer(storage, PromptFormConfig("127.0.0.1", 0, True, "", ""))
        form.start()
        assert form.server_address is None
