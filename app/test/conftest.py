# test/conftest.py
import base64
import hashlib
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from core.config import Settings, get_settings
from core.rate_limit import limiter
from services.github_contents import RemoteFile
from services.submission_service import SubmissionService

TEST_REPO = "acme/plugins"

VALID_SUBMISSION = {
    "id": "newplug",
    "cn_name": "测试",
    "author": "tester",
    "description": "A plugin used in tests",
    "code": "def run():\n    return '你好'\n",
}


class FakeContents:
    """
    In-memory stand-in for GitHubContentsClient with GitHub's sha rules:
    PUT over an existing file without a sha is a 422, with a stale sha a 409.
    """

    def __init__(self):
        self.files = {}
        self.calls = []
        self.put_failures = {}
        self.delete_failures = {}
        self.before_put = {}

    @staticmethod
    def _sha(content: bytes) -> str:
        return hashlib.sha1(content).hexdigest()

    def seed(self, path: str, content: bytes):
        self.files[path] = content

    def seed_index(self, plugins=None, **extra):
        doc = {"version": "1.0.0", "last_updated": "2025-01-01", "plugins": plugins or [], **extra}
        self.seed("plugins.json", json.dumps(doc, ensure_ascii=False).encode("utf-8"))

    def json_file(self, path: str):
        return json.loads(self.files[path].decode("utf-8"))

    def puts(self):
        return [c for c in self.calls if c[0] == "PUT"]

    async def get_file(self, path):
        self.calls.append(("GET", path, None))
        if path not in self.files:
            return None
        content = self.files[path]
        return RemoteFile(path=path, sha=self._sha(content), content=content)

    async def put_file(self, path, content, message, sha=None):
        self.calls.append(("PUT", path, {"message": message, "sha": sha, "content": content}))
        hook = self.before_put.pop(path, None)
        if hook:
            hook(self)
        if path in self.put_failures:
            return httpx.Response(self.put_failures[path], text='{"message": "boom"}')

        current = self.files.get(path)
        if current is not None and sha is None:
            return httpx.Response(422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
        if current is not None and sha != self._sha(current):
            return httpx.Response(409, json={"message": f"{path} does not match {sha}"})

        self.files[path] = content
        status = 200 if current is not None else 201
        return httpx.Response(status, json={"content": {"path": path, "sha": self._sha(content)}})

    async def delete_file(self, path, sha, message):
        self.calls.append(("DELETE", path, {"message": message, "sha": sha}))
        if path in self.delete_failures:
            return httpx.Response(self.delete_failures[path], json={"message": "nope"})
        if path not in self.files or self._sha(self.files[path]) != sha:
            return httpx.Response(409, json={"message": "sha mismatch"})
        del self.files[path]
        return httpx.Response(200, json={"commit": {}})

    async def close(self):
        pass


def decode_b64(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


@pytest.fixture(autouse=True)
def no_rate_limit():
    """Keep the submit rate limit out of the way unless a test turns it on"""
    limiter.enabled = False
    yield
    limiter.enabled = True
    limiter.reset()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        github_token="test-token",
        github_repo=TEST_REPO,
        index_retry_wait=0,
    )


@pytest.fixture
def fake_contents():
    return FakeContents()


@pytest.fixture
def service(fake_contents, settings):
    return SubmissionService(fake_contents, settings)


@pytest.fixture
def valid_submission():
    return dict(VALID_SUBMISSION)


@pytest.fixture
def fixed_today(monkeypatch):
    monkeypatch.setattr("services.submission_service.today_iso", lambda: "2026-10-16")
    return "2026-10-16"


@pytest.fixture
def api(fake_contents, settings):
    """TestClient wired to the fake contents store"""
    from main import app
    from routes.submit import get_submission_service

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_submission_service] = lambda: SubmissionService(fake_contents, settings)
    yield TestClient(app)
    app.dependency_overrides.clear()
