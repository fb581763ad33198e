# tests/fakes.py

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field

import httpx

from arch_bulletin.core.errors import StorageError, UnavailableError
from arch_bulletin.core.ports import DocumentStore
from arch_bulletin.notifications.notifier import Notification
from arch_bulletin.storage.store_models import git_blob_sha


@dataclass(slots=True)
class FakeNotifier:
    """Records notifications instead of delivering them."""

    sent: list[Notification] = field(default_factory=list)

    async def notify(self, notification: Notification) -> None:
        self.sent.append(notification)


class BrokenNotifier:
    """Notifier whose backend is always down."""

    async def notify(self, notification: Notification) -> None:
        raise StorageError(detail="notification backend down")


class FlakyStore:
    """
    Wraps a real store and fails the first `failures` calls of `method`
    with UnavailableError.
    """

    def __init__(self, inner: DocumentStore, *, method: str = "get", failures: int = 1) -> None:
        self.inner = inner
        self.method = method
        self.failures = failures
        self.calls = 0

    @property
    def capabilities(self):
        return self.inner.capabilities

    def __getattr__(self, name: str):
        target = getattr(self.inner, name)
        if name != self.method:
            return target

        async def _maybe_fail(*args, **kwargs):
            self.calls += 1
            if self.calls <= self.failures:
                raise UnavailableError(detail=f"injected failure #{self.calls}")
            return await target(*args, **kwargs)

        return _maybe_fail


class InterferingStore:
    """
    Wraps a real store; before the next `interferences` conditional puts it lets
    `interfere(path, content)` rewrite the document first, so the put lands on a stale token.
    """

    def __init__(self, inner: DocumentStore, interfere, *, interferences: int = 1) -> None:
        self.inner = inner
        self.interfere = interfere
        self.remaining = interferences

    @property
    def capabilities(self):
        return self.inner.capabilities

    def __getattr__(self, name: str):
        return getattr(self.inner, name)

    async def put(self, path, content, *, message, version_token=None):
        if version_token is not None and self.remaining > 0:
            self.remaining -= 1
            await self.interfere(self.inner, path)
        return await self.inner.put(path, content, message=message, version_token=version_token)


class LostAckStore:
    """
    Wraps a real store; the first `failures` puts are committed to the inner store
    but answer with UnavailableError, as if the response never arrived.
    """

    def __init__(self, inner: DocumentStore, *, failures: int = 1) -> None:
        self.inner = inner
        self.failures = failures
        self.puts = 0

    @property
    def capabilities(self):
        return self.inner.capabilities

    def __getattr__(self, name: str):
        return getattr(self.inner, name)

    def _drop_answer(self) -> None:
        self.puts += 1
        if self.puts <= self.failures:
            raise UnavailableError(detail=f"answer to put #{self.puts} lost")

    async def put(self, path, content, *, message, version_token=None):
        token = await self.inner.put(path, content, message=message, version_token=version_token)
        self._drop_answer()
        return token

    async def put_binary(self, path, data, *, message):
        token = await self.inner.put_binary(path, data, message=message)
        self._drop_answer()
        return token


class FakeGitHubContents:
    """
    In-process stand-in for the GitHub contents API, served through httpx.MockTransport.

    Supports GET/PUT/DELETE on /repos/{owner}/{repo}/contents/{path} with the sha rules
    GitHub applies, plus directory listings.
    """

    def __init__(self, owner: str = "acme", repo: str = "board-data") -> None:
        self.prefix = f"/repos/{owner}/{repo}/contents/"
        self.files: dict[str, bytes] = {}
        self.commits: list[str] = []
        self.fail_next: list[int] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url="https://api.github.test", transport=self.transport())

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), json={"message": "injected"})

        path = request.url.path
        if not path.startswith(self.prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rel = path[len(self.prefix) :]

        if request.method == "GET":
            return self._get(rel)
        body = json.loads(request.content or b"{}")
        if request.method == "PUT":
            return self._put(rel, body)
        if request.method == "DELETE":
            return self._delete(rel, body)
        return httpx.Response(405)

    def _get(self, rel: str) -> httpx.Response:
        if rel in self.files:
            data = self.files[rel]
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "name": rel.rsplit("/", 1)[-1],
                    "path": rel,
                    "sha": git_blob_sha(data),
                    "size": len(data),
                    "encoding": "base64",
                    "content": base64.encodebytes(data).decode("ascii"),
                },
            )
        children: dict[str, str] = {}
        for p in self.files:
            if p.startswith(rel + "/"):
                head = p[len(rel) + 1 :].split("/", 1)
                children[head[0]] = "file" if len(head) == 1 else "dir"
        if not children:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(
            200,
            json=[{"type": kind, "name": name, "path": f"{rel}/{name}"} for name, kind in sorted(children.items())],
        )

    def _put(self, rel: str, body: dict) -> httpx.Response:
        current = self.files.get(rel)
        sha = body.get("sha")
        if current is not None and sha is None:
            return httpx.Response(422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if current is None and sha is not None:
            return httpx.Response(404, json={"message": "Not Found"})
        if current is not None and sha != git_blob_sha(current):
            return httpx.Response(409, json={"message": f"{rel} does not match {sha}"})
        data = base64.b64decode(body["content"])
        self.files[rel] = data
        self.commits.append(body["message"])
        return httpx.Response(
            201 if current is None else 200,
            json={"content": {"path": rel, "sha": git_blob_sha(data)}, "commit": {"message": body["message"]}},
        )

    def _delete(self, rel: str, body: dict) -> httpx.Response:
        current = self.files.get(rel)
        if current is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if body.get("sha") != git_blob_sha(current):
            return httpx.Response(409, json={"message": "sha mismatch"})
        del self.files[rel]
        self.commits.append(body["message"])
        return httpx.Response(200, json={"commit": {"message": body["message"]}})
