import asyncio
import base64
import json

import httpx
import pytest

from portfolio_agent.config_loader import StorageConfig
from portfolio_agent.errors import StoreError
from portfolio_agent.store import (
    DocumentKey,
    GitHubStore,
    LocalJsonStore,
    MemoryStore,
    build_store,
    empty_document,
    resolve_key,
)


def test_key_whitelist():
    assert resolve_key("projects") is DocumentKey.PROJECTS
    with pytest.raises(StoreError) as exc_info:
        resolve_key("../secrets")
    assert "audit_logs" in str(exc_info.value)


def test_empty_defaults():
    assert empty_document("projects") == []
    assert empty_document("journey") == {"student": [], "entrepreneur": []}
    assert empty_document(DocumentKey.GOALS)["shortTerm"] == []
    assert empty_document("about")["roles"] == []


def test_memory_store_copies_on_read_and_write():
    doc = [{"name": "Go"}]
    store = MemoryStore({"skills": doc})
    doc.append({"name": "leaked"})

    async def scenario():
        first = await store.read("skills")
        first.append({"name": "also leaked"})
        return await store.read("skills")

    assert asyncio.run(scenario()) == [{"name": "Go"}]


def test_memory_store_rejects_unknown_keys():
    with pytest.raises(StoreError):
        asyncio.run(MemoryStore().read("users"))


def test_local_store_round_trip(tmp_path):
    store = LocalJsonStore(tmp_path / "data")

    async def scenario():
        missing = await store.read("goals")
        await store.replace("projects", [{"title": "Ünïcode"}])
        return missing, await store.read("projects")

    missing, projects = asyncio.run(scenario())
    assert missing == empty_document("goals")
    assert projects == [{"title": "Ünïcode"}]
    assert json.loads((tmp_path / "data" / "projects.json").read_text(encoding="utf-8")) == projects
    assert not (tmp_path / "data" / "projects.json.tmp").exists()


def test_local_store_corrupt_document(tmp_path):
    (tmp_path / "skills.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError) as exc_info:
        asyncio.run(LocalJsonStore(tmp_path).read("skills"))
    assert "Corrupted document skills.json" in str(exc_info.value)


def test_local_store_read_only(tmp_path):
    with pytest.raises(StoreError):
        asyncio.run(LocalJsonStore(tmp_path, read_only=True).replace("about", {}))


def _github_handler(files, puts):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET":
            if path not in files:
                return httpx.Response(404, json={"message": "Not Found"})
            content = base64.b64encode(json.dumps(files[path]).encode()).decode()
            return httpx.Response(200, json={"content": content, "sha": "abc123"})
        body = json.loads(request.content)
        puts.append((path, body))
        files[path] = json.loads(base64.b64decode(body["content"]))
        return httpx.Response(201, json={"commit": {"sha": "def4567890"}})
    return handler


def test_github_store_reads_and_commits():
    files = {"/repos/me/site/contents/data/skills.json": [{"name": "Go"}]}
    puts = []
    client = httpx.AsyncClient(
        base_url="https://api.github.com",
        transport=httpx.MockTransport(_github_handler(files, puts)),
    )
    store = GitHubStore("me", "site", "token", client=client)

    async def scenario():
        skills = await store.read("skills")
        goals = await store.read("goals")
        await store.replace("skills", skills + [{"name": "Rust"}], message="Add skill: Rust")
        await store.replace("goals", goals)
        await store.aclose()
        return skills, goals

    skills, goals = asyncio.run(scenario())
    assert skills == [{"name": "Go"}]
    assert goals == empty_document("goals")

    (skills_path, skills_body), (goals_path, goals_body) = puts
    assert skills_body["message"] == "Add skill: Rust"
    assert skills_body["sha"] == "abc123"
    assert skills_body["branch"] == "main"
    assert files[skills_path] == [{"name": "Go"}, {"name": "Rust"}]
    assert "sha" not in goals_body


def test_github_store_surfaces_http_errors():
    client = httpx.AsyncClient(
        base_url="https://api.github.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    store = GitHubStore("me", "site", "token", client=client)
    with pytest.raises(StoreError) as exc_info:
        asyncio.run(store.read("about"))
    assert "500" in str(exc_info.value)


def test_github_store_needs_credentials():
    with pytest.raises(StoreError):
        GitHubStore("me", "site", "")


def test_build_store(tmp_path):
    assert isinstance(build_store(StorageConfig(backend="memory")), MemoryStore)
    local = build_store(StorageConfig(backend="local", data_dir=str(tmp_path)))
    assert isinstance(local, LocalJsonStore)
    assert local.data_dir == tmp_path
