"""
User endpoint tests: create, list, fetch, update and delete through the
HTTP layer.  Every endpoint requires a bearer token; ``auth_headers``
registers and logs in an account (which occupies id 1).
"""
import pytest
from httpx import AsyncClient

from identity.cache import MemoryCache, user_cache_key


async def _create(client: AsyncClient, headers: dict, i: int = 0):
    return await client.post("/api/v1/users", headers=headers, json={
        "name": f"User {i}",
        "email": f"user{i}@example.com",
        "password": "s3cret-pass",
    })


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_user_endpoints_require_token(async_client: AsyncClient):
    assert (await async_client.get("/api/v1/users")).status_code == 401
    assert (await async_client.get("/api/v1/users/1")).status_code == 401
    assert (await async_client.delete("/api/v1/users/1")).status_code == 401


# ---------------------------------------------------------------------------
# Create / get
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient, auth_headers: dict):
    resp = await _create(async_client, auth_headers)
    assert resp.status_code == 201
    user = resp.json()["data"]
    assert user["email"] == "user0@example.com"
    assert "password" not in user


@pytest.mark.asyncio
async def test_create_user_duplicate_email(async_client: AsyncClient, auth_headers: dict):
    await _create(async_client, auth_headers)
    resp = await _create(async_client, auth_headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_create_user_missing_fields(async_client: AsyncClient, auth_headers: dict):
    resp = await async_client.post("/api/v1/users", headers=auth_headers, json={
        "email": "noname@example.com",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_user(async_client: AsyncClient, auth_headers: dict):
    user_id = (await _create(async_client, auth_headers)).json()["data"]["id"]
    resp = await async_client.get(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "User 0"


@pytest.mark.asyncio
async def test_get_user_served_from_store_after_cache_flush(
    async_client: AsyncClient, auth_headers: dict, memory_cache: MemoryCache
):
    user_id = (await _create(async_client, auth_headers)).json()["data"]["id"]
    memory_cache.flush()

    resp = await async_client.get(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.status_code == 200
    assert await memory_cache.exists(user_cache_key(user_id)) == 1


@pytest.mark.asyncio
async def test_user_not_found(async_client: AsyncClient, auth_headers: dict):
    resp = await async_client.get("/api/v1/users/99999", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "User not found"


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users_envelope(async_client: AsyncClient, auth_headers: dict):
    for i in range(24):
        await _create(async_client, auth_headers, i)

    resp = await async_client.get(
        "/api/v1/users", headers=auth_headers, params={"page": 3, "per_page": 10}
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["items"]) == 5
    assert data["total"] == 25
    assert data["total_pages"] == 3
    assert data["page"] == 3
    assert data["per_page"] == 10


@pytest.mark.asyncio
async def test_list_users_normalizes_paging(async_client: AsyncClient, auth_headers: dict):
    resp = await async_client.get(
        "/api/v1/users", headers=auth_headers, params={"page": 0, "per_page": -5}
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["page"] == 1
    assert data["per_page"] == 10
    assert data["total"] == 1


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_user(async_client: AsyncClient, auth_headers: dict):
    user_id = (await _create(async_client, auth_headers)).json()["data"]["id"]
    resp = await async_client.put(
        f"/api/v1/users/{user_id}", headers=auth_headers, json={"name": "Renamed", "email": ""}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Renamed"
    assert resp.json()["data"]["email"] == "user0@example.com"

    fetched = await async_client.get(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert fetched.json()["data"]["name"] == "Renamed"


@pytest.mark.asyncio
async def test_update_user_to_taken_email(async_client: AsyncClient, auth_headers: dict):
    await _create(async_client, auth_headers, 0)
    other_id = (await _create(async_client, auth_headers, 1)).json()["data"]["id"]
    resp = await async_client.put(
        f"/api/v1/users/{other_id}", headers=auth_headers, json={"email": "user0@example.com"}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize("changes", [{"password": "x"}, {"name": "A"}])
async def test_update_user_enforces_registration_bounds(
    async_client: AsyncClient, auth_headers: dict, changes: dict
):
    user_id = (await _create(async_client, auth_headers)).json()["data"]["id"]
    resp = await async_client.put(f"/api/v1/users/{user_id}", headers=auth_headers, json=changes)
    assert resp.status_code == 422

    login = await async_client.post(
        "/api/v1/auth/login", json={"email": "user0@example.com", "password": "s3cret-pass"}
    )
    assert login.status_code == 200
    assert login.json()["data"]["user"]["name"] == "User 0"


@pytest.mark.asyncio
async def test_update_missing_user(async_client: AsyncClient, auth_headers: dict):
    resp = await async_client.put("/api/v1/users/99999", headers=auth_headers, json={"name": "Xavier"})
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_user(async_client: AsyncClient, auth_headers: dict, memory_cache: MemoryCache):
    user_id = (await _create(async_client, auth_headers)).json()["data"]["id"]
    resp = await async_client.delete(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.status_code == 200
    assert await memory_cache.get(user_cache_key(user_id)) is None

    resp = await async_client.get(f"/api/v1/users/{user_id}", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_missing_user(async_client: AsyncClient, auth_headers: dict):
    resp = await async_client.delete("/api/v1/users/99999", headers=auth_headers)
    assert resp.status_code == 404
