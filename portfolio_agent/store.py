"""
Portfolio Agent Document Store

Key -> JSON document persistence. A document is always replaced whole;
there is no partial patch at this layer. Only the six portfolio keys
are ever accessed; anything else is rejected at the boundary.

Backends:
  - MemoryStore      tests and dry runs
  - LocalJsonStore   one <key>.json per document, temp file + os.replace
  - GitHubStore      contents API, every replace is a commit
"""

from __future__ import annotations

import base64
import copy
import json
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import aiofiles
import aiofiles.os
import httpx
from loguru import logger

from portfolio_agent.config_loader import StorageConfig
from portfolio_agent.errors import StoreError
from portfolio_agent.models import empty_about, empty_goals, empty_journey


class DocumentKey(str, Enum):
    ABOUT = "about"
    SKILLS = "skills"
    PROJECTS = "projects"
    GOALS = "goals"
    JOURNEY = "journey"
    AUDIT_LOGS = "audit_logs"


_EMPTY_DOCUMENTS: dict[DocumentKey, Callable[[], Any]] = {
    DocumentKey.ABOUT: empty_about,
    DocumentKey.SKILLS: list,
    DocumentKey.PROJECTS: list,
    DocumentKey.GOALS: empty_goals,
    DocumentKey.JOURNEY: empty_journey,
    DocumentKey.AUDIT_LOGS: list,
}


def resolve_key(key: DocumentKey | str) -> DocumentKey:
    """Map a raw key onto the whitelist or refuse it."""
    try:
        return DocumentKey(key)
    except ValueError:
        allowed = ", ".join(k.value for k in DocumentKey)
        raise StoreError(f"Document key not allowed: {key!r} (allowed: {allowed})")


def empty_document(key: DocumentKey | str) -> Any:
    return _EMPTY_DOCUMENTS[resolve_key(key)]()


class DocumentStore(ABC):
    """Async key -> JSON document store with whole-document replace."""

    @abstractmethod
    async def read(self, key: DocumentKey | str) -> Any:
        """Return the document, or its empty default if it does not exist yet."""
        ...

    @abstractmethod
    async def replace(self, key: DocumentKey | str, value: Any, message: str | None = None) -> None:
        """Replace the whole document. `message` is a change note for backends that keep one."""
        ...

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemoryStore(DocumentStore):
    """Documents held in a dict. Reads and writes copy, so callers never alias state."""

    def __init__(self, documents: dict[str, Any] | None = None):
        self._documents: dict[DocumentKey, Any] = {}
        for key, value in (documents or {}).items():
            self._documents[resolve_key(key)] = copy.deepcopy(value)

    async def read(self, key: DocumentKey | str) -> Any:
        key = resolve_key(key)
        if key not in self._documents:
            return empty_document(key)
        return copy.deepcopy(self._documents[key])

    async def replace(self, key: DocumentKey | str, value: Any, message: str | None = None) -> None:
        key = resolve_key(key)
        self._documents[key] = copy.deepcopy(value)


# ---------------------------------------------------------------------------
# Local JSON directory
# ---------------------------------------------------------------------------

class LocalJsonStore(DocumentStore):
    def __init__(self, data_dir: Path, read_only: bool = False):
        self.data_dir = Path(data_dir)
        self.read_only = read_only

    def path_for(self, key: DocumentKey | str) -> Path:
        return self.data_dir / f"{resolve_key(key).value}.json"

    async def read(self, key: DocumentKey | str) -> Any:
        path = self.path_for(key)
        if not path.exists():
            return empty_document(key)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise StoreError(f"Cannot read {path.name}: {e}") from e
        if not content.strip():
            return empty_document(key)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupted document {path.name}: {e}") from e

    async def replace(self, key: DocumentKey | str, value: Any, message: str | None = None) -> None:
        path = self.path_for(key)
        if self.read_only:
            raise StoreError(f"Store is read-only, cannot write {path.name}")
        tmp = path.with_name(path.name + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(value, indent=2, ensure_ascii=False) + "\n")
            await aiofiles.os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Cannot write {path.name}: {e}") from e
        logger.debug(f"[STORE] Wrote {path}")


# ---------------------------------------------------------------------------
# GitHub contents API
# ---------------------------------------------------------------------------

class GitHubStore(DocumentStore):
    """
    Documents live as files in a GitHub repository.

    Reads fetch the file and decode its base64 body. A replace fetches
    the current blob sha and PUTs the new content on top of it, which
    GitHub records as one commit per replace.
    """

    API_URL = "https://api.github.com"

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = "main",
        path_prefix: str = "data",
        client: httpx.AsyncClient | None = None,
    ):
        if not (owner and repo and token):
            raise StoreError("GitHub storage needs an owner, a repo and a token")
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.path_prefix = path_prefix.strip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.API_URL,
            timeout=30.0,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
        )

    def _contents_url(self, key: DocumentKey | str) -> str:
        name = f"{resolve_key(key).value}.json"
        path = f"{self.path_prefix}/{name}" if self.path_prefix else name
        return f"/repos/{self.owner}/{self.repo}/contents/{path}"

    async def _fetch(self, key: DocumentKey | str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(self._contents_url(key), params={"ref": self.branch})
        except httpx.HTTPError as e:
            raise StoreError(f"GitHub read failed for {resolve_key(key).value}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise StoreError(
                f"GitHub read failed for {resolve_key(key).value}: "
                f"{response.status_code} {response.reason_phrase}"
            )
        return response.json()

    async def read(self, key: DocumentKey | str) -> Any:
        body = await self._fetch(key)
        if body is None:
            return empty_document(key)
        try:
            return json.loads(base64.b64decode(body["content"]).decode("utf-8"))
        except (KeyError, ValueError) as e:
            raise StoreError(f"Corrupted document {resolve_key(key).value} on GitHub: {e}") from e

    async def replace(self, key: DocumentKey | str, value: Any, message: str | None = None) -> None:
        key = resolve_key(key)
        existing = await self._fetch(key)
        content = json.dumps(value, indent=2, ensure_ascii=False) + "\n"
        body: dict[str, Any] = {
            "message": message or f"Update {key.value}.json via portfolio agent",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if existing and existing.get("sha"):
            body["sha"] = existing["sha"]

        try:
            response = await self._client.put(self._contents_url(key), json=body)
        except httpx.HTTPError as e:
            raise StoreError(f"GitHub commit failed for {key.value}: {e}") from e
        if response.status_code not in (200, 201):
            raise StoreError(
                f"GitHub commit failed for {key.value}: "
                f"{response.status_code} {response.reason_phrase}"
            )
        sha = response.json().get("commit", {}).get("sha", "?")
        logger.info(f"[STORE] Committed {key.value}.json to GitHub ({sha[:7]})")

    async def aclose(self) -> None:
        await self._client.aclose()


def build_store(storage: StorageConfig) -> DocumentStore:
    """Construct the configured backend from a StorageConfig."""
    backend = storage.backend
    if backend == "memory":
        return MemoryStore()
    if backend == "local":
        return LocalJsonStore(Path(storage.data_dir).expanduser(), read_only=storage.read_only)
    if backend == "github":
        gh = storage.github
        token = os.environ.get(gh.token_env, "")
        return GitHubStore(
            owner=gh.owner,
            repo=gh.repo,
            token=token,
            branch=gh.branch,
            path_prefix=gh.path_prefix,
        )
    raise StoreError(f"Unknown storage backend: {backend}")
