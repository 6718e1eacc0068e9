"""
Integration tests for issue endpoints
"""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_fetch_issue(async_client: AsyncClient, authenticated_headers, test_user):
    r = await async_client.post(
        "/issues",
        json={"title": "缺少常用词", "content": "请补充「新词」"},
        headers=authenticated_headers,
    )
    assert r.status_code == 201
    issue = r.json()["data"]
    assert issue["status"] == "open"
    assert issue["author_id"] == test_user.id

    r = await async_client.get(f"/issues/{issue['id']}")
    assert r.json()["data"]["title"] == "缺少常用词"

    r = await async_client.get("/issues", params={"status": "closed"})
    assert r.json()["data"] == []


@pytest.mark.asyncio
async def test_missing_issue_is_not_found(async_client: AsyncClient):
    r = await async_client.get("/issues/999")

    assert r.status_code == 404
    assert r.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_comment_on_issue(async_client: AsyncClient, authenticated_headers, other_headers, other_user):
    r = await async_client.post("/issues", json={"title": "词频问题", "content": "「如果」太靠后"}, headers=authenticated_headers)
    issue_id = r.json()["data"]["id"]

    r = await async_client.post(
        f"/issues/{issue_id}/comments", json={"content": "同意，建议调低"}, headers=other_headers
    )
    assert r.status_code == 201
    comment = r.json()["data"]
    assert comment["issue_id"] == issue_id
    assert comment["author_id"] == other_user.id

    await async_client.post(f"/issues/{issue_id}/comments", json={"content": "已处理"}, headers=authenticated_headers)

    r = await async_client.get(f"/issues/{issue_id}/comments")
    assert [c["content"] for c in r.json()["data"]] == ["同意，建议调低", "已处理"]


@pytest.mark.asyncio
async def test_comment_rules(async_client: AsyncClient, authenticated_headers):
    r = await async_client.post("/issues", json={"title": "词频问题", "content": "「如果」太靠后"}, headers=authenticated_headers)
    issue_id = r.json()["data"]["id"]

    r = await async_client.post(f"/issues/{issue_id}/comments", json={"content": "  "}, headers=authenticated_headers)
    assert r.status_code == 400
    assert r.json()["error_code"] == "VALIDATION_ERROR"

    r = await async_client.post(f"/issues/{issue_id}/comments", json={"content": "匿名"})
    assert r.status_code == 401

    r = await async_client.post("/issues/999/comments", json={"content": "你好"}, headers=authenticated_headers)
    assert r.status_code == 404

    r = await async_client.get("/issues/999/comments")
    assert r.status_code == 404
