"""Tests for the development HTTP server."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from convoy.config import ONE_YEAR
from convoy.pipeline import Pipeline
from convoy.server import create_app, normalize_request_path

APP_JS = "var util;\n//= require ./util\nvar main;"


@pytest.fixture
def project(write_tree) -> Path:
    return write_tree({
        "app/util.js": "var util;",
        "app/main.js": "//= require ./util\nvar main;",
        "public/logo.png": "png",
        "public/.env": "SECRET=1",
        "public/docs/index.html": "<h1>docs</h1>",
        "public/img/icon.svg": "<svg/>",
    })


def make_pipeline(root: Path, **options) -> Pipeline:
    return Pipeline(
        {
            "app.js": {"type": "legacy_javascript", "main": "./app/main", **options},
            "broken.js": {"type": "legacy_javascript", "main": "./app/missing"},
            "assets": {"type": "copy", "root": "public", **options},
        },
        basedir=root,
    )


@pytest.fixture
def client(project: Path):
    with TestClient(create_app(make_pipeline(project))) as client:
        yield client


class TestNormalizeRequestPath:
    """URL path -> output path."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/app.js", "app.js"),
            ("/assets//img/icon.svg", "assets/img/icon.svg"),
            ("/assets/./logo.png", "assets/logo.png"),
            ("/", "index.html"),
            ("/assets/docs/", "assets/docs/index.html"),
        ],
    )
    def test_normalized(self, raw: str, expected: str) -> None:
        assert normalize_request_path(raw) == expected

    @pytest.mark.parametrize("raw", ["/../etc/passwd", "/assets/../../x", "/a\0b"])
    def test_rejected(self, raw: str) -> None:
        assert normalize_request_path(raw) is None


class TestServeBundle:
    """Serving packager output."""

    def test_get(self, client: TestClient) -> None:
        response = client.get("/app.js")

        assert response.status_code == 200
        assert response.text == APP_JS
        assert response.headers["content-type"] == "application/javascript; charset=utf-8"
        assert response.headers["cache-control"] == "public, max-age=0"
        assert response.headers["etag"] == f'"{hashlib.md5(APP_JS.encode()).hexdigest()}"'
        assert "last-modified" in response.headers

    def test_head(self, client: TestClient) -> None:
        response = client.head("/app.js")
        assert response.status_code == 200
        assert response.content == b""
        assert "etag" in response.headers

    def test_if_none_match(self, client: TestClient) -> None:
        etag = client.get("/app.js").headers["etag"]
        response = client.get("/app.js", headers={"If-None-Match": etag})
        assert response.status_code == 304
        assert response.content == b""

    def test_if_none_match_stale(self, client: TestClient) -> None:
        response = client.get("/app.js", headers={"If-None-Match": '"stale"'})
        assert response.status_code == 200

    def test_if_modified_since(self, client: TestClient) -> None:
        last_modified = client.get("/app.js").headers["last-modified"]
        response = client.get("/app.js", headers={"If-Modified-Since": last_modified})
        assert response.status_code == 304

    def test_build_failure(self, client: TestClient) -> None:
        response = client.get("/broken.js")
        assert response.status_code == 500
        assert "Cannot find module './app/missing'" in response.json()["detail"]

    def test_post_not_allowed(self, client: TestClient) -> None:
        assert client.post("/app.js").status_code == 405


class TestServeFiles:
    """Serving copy rules."""

    def test_file(self, client: TestClient) -> None:
        response = client.get("/assets/logo.png")
        assert response.status_code == 200
        assert response.content == b"png"
        assert response.headers["content-type"] == "image/png"
        assert response.headers["etag"] == f'"{hashlib.md5(b"png").hexdigest()}"'

    def test_svg_gets_charset(self, client: TestClient) -> None:
        response = client.get("/assets/img/icon.svg")
        assert response.headers["content-type"] == "image/svg+xml; charset=utf-8"

    def test_directory_index(self, client: TestClient) -> None:
        response = client.get("/assets/docs/")
        assert response.status_code == 200
        assert response.text == "<h1>docs</h1>"

    def test_directory_is_not_found(self, client: TestClient) -> None:
        assert client.get("/assets/img").status_code == 404

    def test_missing(self, client: TestClient) -> None:
        assert client.get("/assets/nope.png").status_code == 404
        assert client.get("/nothing.js").status_code == 404

    def test_hidden_files(self, client: TestClient, project: Path) -> None:
        assert client.get("/assets/.env").status_code == 404
        with TestClient(create_app(make_pipeline(project), hidden=True)) as hidden:
            assert hidden.get("/assets/.env").text == "SECRET=1"


class TestOptions:
    """App options and lifecycle."""

    def test_max_age(self, project: Path) -> None:
        with TestClient(create_app(make_pipeline(project), max_age=60)) as client:
            assert client.get("/app.js").headers["cache-control"] == "public, max-age=60"

    def test_max_age_infinity(self, project: Path) -> None:
        with TestClient(create_app(make_pipeline(project), max_age="infinity")) as client:
            cache_control = client.get("/app.js").headers["cache-control"]
        assert cache_control == f"public, max-age={ONE_YEAR}"

    def test_shutdown_closes_watches(self, project: Path, fake_watcher) -> None:
        pipeline = make_pipeline(project, watch=True, watcher=fake_watcher)
        with TestClient(create_app(pipeline)) as client:
            client.get("/app.js")
            client.get("/assets/logo.png")
            assert fake_watcher.open_paths
        assert fake_watcher.open_paths == []
