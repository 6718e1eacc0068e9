"""
Integration tests for conflict checks and the batch review flow over HTTP
"""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_check_conflicts_batch(async_client: AsyncClient, authenticated_headers, add_phrase):
    add_phrase("如果", "rjgl")

    r = await async_client.post(
        "/pull-requests/check-conflicts-batch",
        json={"items": [
            {"id": "a", "action": "Create", "word": "新词", "code": "rjgl", "type": "Phrase"},
            {"id": "b", "action": "Create", "word": "x", "code": "xy", "type": "Phrase"},
            {"id": "c", "action": "Create", "word": "y", "code": "xy", "type": "Phrase"},
        ]},
        headers=authenticated_headers,
    )

    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["has_unresolved_conflicts"] is True
    results = {item["id"]: item for item in data["results"]}
    assert results["a"]["conflict"]["suggested_weight"] == 101
    assert results["a"]["calculated_weight"] == 101
    assert [results["b"]["calculated_weight"], results["c"]["calculated_weight"]] == [100, 101]
    assert results["b"]["conflict"]["kind"] == "batch_collision"


@pytest.mark.asyncio
async def test_check_conflicts_rejects_invalid_code(async_client: AsyncClient, authenticated_headers):
    r = await async_client.post(
        "/pull-requests/check-conflicts",
        json={"action": "Create", "word": "新词", "code": "12"},
        headers=authenticated_headers,
    )

    assert r.status_code == 400
    assert r.json()["error_code"] == "INVALID_CODE"


@pytest.mark.asyncio
async def test_empty_batch_check_is_validation_error(async_client: AsyncClient, authenticated_headers):
    r = await async_client.post("/pull-requests/check-conflicts-batch", json={"items": []}, headers=authenticated_headers)

    assert r.status_code == 422


@pytest.mark.asyncio
async def test_batch_review_flow(async_client: AsyncClient, authenticated_headers, admin_headers):
    r = await async_client.post("/batches", json={"description": "新增常用词"}, headers=authenticated_headers)
    assert r.status_code == 201
    batch_id = r.json()["data"]["id"]

    r = await async_client.post(
        f"/batches/{batch_id}/edits",
        json={"action": "Create", "word": "新词", "code": "xnci"},
        headers=authenticated_headers,
    )
    assert r.status_code == 201, r.text

    r = await async_client.get(f"/batches/{batch_id}/preview", headers=authenticated_headers)
    assert r.json()["data"]["has_unresolved_conflicts"] is False

    r = await async_client.post(f"/batches/{batch_id}/submit", headers=authenticated_headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "Submitted"

    # Contributors cannot review
    r = await async_client.post(f"/admin/batches/{batch_id}/approve", headers=authenticated_headers)
    assert r.status_code == 403

    r = await async_client.get("/admin/batches", headers=admin_headers)
    assert [b["id"] for b in r.json()["data"]] == [batch_id]

    r = await async_client.post(f"/admin/batches/{batch_id}/approve", json={"note": "好"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["status"] == "Approved"
    assert data["pull_requests"][0]["status"] == "Approved"
    assert data["pull_requests"][0]["weight"] == 100

    r = await async_client.get("/phrases/by-code", params={"code": "xnci"})
    assert [p["word"] for p in r.json()["data"]] == ["新词"]

    r = await async_client.delete(f"/batches/{batch_id}", headers=authenticated_headers)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_submit_with_conflict_returns_details(async_client: AsyncClient, authenticated_headers, add_phrase):
    add_phrase("如果", "rjgl")
    r = await async_client.post("/batches", json={"description": ""}, headers=authenticated_headers)
    batch_id = r.json()["data"]["id"]
    await async_client.post(
        f"/batches/{batch_id}/edits",
        json={"action": "Create", "word": "新词", "code": "rjgl"},
        headers=authenticated_headers,
    )

    r = await async_client.post(f"/batches/{batch_id}/submit", headers=authenticated_headers)

    assert r.status_code == 409
    body = r.json()
    assert body["error_code"] == "UNRESOLVED_CONFLICT"
    assert body["details"]["conflicts"][0]["conflict"]["kind"] == "code_occupied"


@pytest.mark.asyncio
async def test_only_creator_can_submit(async_client: AsyncClient, authenticated_headers, other_headers):
    r = await async_client.post("/batches", json={"description": ""}, headers=authenticated_headers)
    batch_id = r.json()["data"]["id"]

    r = await async_client.post(f"/batches/{batch_id}/submit", headers=other_headers)

    assert r.status_code == 403


@pytest.mark.asyncio
async def test_reject_requires_note(async_client: AsyncClient, authenticated_headers, admin_headers):
    r = await async_client.post("/batches", json={"description": ""}, headers=authenticated_headers)
    batch_id = r.json()["data"]["id"]
    await async_client.post(
        f"/batches/{batch_id}/edits",
        json={"action": "Create", "word": "新词", "code": "xnci"},
        headers=authenticated_headers,
    )
    await async_client.post(f"/batches/{batch_id}/submit", headers=authenticated_headers)

    r = await async_client.post(f"/admin/batches/{batch_id}/reject", json={}, headers=admin_headers)
    assert r.status_code == 422

    r = await async_client.post(f"/admin/batches/{batch_id}/reject", json={"note": "编码有误"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["review_note"] == "编码有误"


@pytest.mark.asyncio
async def test_admin_import_and_export(async_client: AsyncClient, admin_headers, authenticated_headers):
    r = await async_client.post(
        "/admin/phrases/import",
        json={"lines": ["如果\trjgl", "坏行"], "type": "Phrase"},
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["imported"] == 1
    assert r.json()["data"]["errors"][0]["line"] == 2

    r = await async_client.post("/admin/phrases/import", json={"lines": ["a\taa"]}, headers=authenticated_headers)
    assert r.status_code == 403

    r = await async_client.get("/phrases/export/Phrase", headers=authenticated_headers)
    assert r.status_code == 200
    assert "如果\trjgl\t100" in r.text
    assert 'filename="phrase.dict.yaml"' in r.headers["content-disposition"]

    r = await async_client.get("/phrases/stats")
    assert r.json()["data"] == [{"type": "Phrase", "count": 1}]
