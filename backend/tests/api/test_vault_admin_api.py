"""Tests for the /api/vault admin routes and API key gating."""

import pytest

pytestmark = pytest.mark.integration


class TestApiKeyGate:
    async def test_missing_key_is_401(self, client):
        response = await client.get("/api/vault/secrets")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "API_KEY_MISSING"

    async def test_wrong_key_is_403(self, client):
        response = await client.get("/api/vault/secrets", headers={"X-API-Key": "nope"})

        assert response.status_code == 403
        assert response.json()["code"] == "API_KEY_INVALID"

    async def test_any_configured_key_is_accepted(self, client):
        response = await client.get("/api/vault/secrets", headers={"X-API-Key": "other-key"})

        assert response.status_code == 200

    async def test_no_configured_keys_is_503(self, client, vault):
        await vault.delete_secret("api_keys_valid")

        response = await client.get("/api/vault/secrets", headers={"X-API-Key": "anything"})

        assert response.status_code == 503
        assert response.json()["code"] == "API_KEYS_NOT_CONFIGURED"

    async def test_env_keys_used_when_vault_has_none(self, client, vault, monkeypatch):
        await vault.delete_secret("api_keys_valid")
        monkeypatch.setenv("ADMIN_API_KEYS", "env-key")

        response = await client.get("/api/vault/secrets", headers={"X-API-Key": "env-key"})

        assert response.status_code == 200


class TestSecretRoutes:
    async def test_store_and_inspect_secret_without_leaking_value(self, client, admin_headers):
        created = await client.post(
            "/api/vault/secret",
            json={"name": "stripe_secret_key", "value": "sk_test_supersecret", "description": "Stripe"},
            headers=admin_headers,
        )
        assert created.status_code == 200
        assert created.json() == {
            "success": True,
            "name": "stripe_secret_key",
            "environment": "development",
            "created": True,
            "deleted": None,
        }

        info = await client.get("/api/vault/secret/stripe_secret_key", headers=admin_headers)
        assert info.status_code == 200
        body = info.json()
        assert body["exists"] is True
        assert body["length"] == len("sk_test_supersecret")
        assert body["masked"] == "sk_" + "*" * (len("sk_test_supersecret") - 3)
        assert "sk_test_supersecret" not in info.text

    async def test_list_returns_names_only(self, client, admin_headers):
        await client.post("/api/vault/secret", json={"name": "b_secret", "value": "v"}, headers=admin_headers)
        await client.post("/api/vault/secret", json={"name": "a_secret", "value": "v"}, headers=admin_headers)

        response = await client.get("/api/vault/secrets", headers=admin_headers)

        body = response.json()
        assert body["secrets"] == ["a_secret", "api_keys_valid", "b_secret"]
        assert body["count"] == 3
        assert body["environment"] == "development"

    async def test_unknown_secret_is_404(self, client, admin_headers):
        response = await client.get("/api/vault/secret/missing", headers=admin_headers)

        assert response.status_code == 404

    async def test_delete_secret(self, client, admin_headers):
        await client.post("/api/vault/secret", json={"name": "temp", "value": "v"}, headers=admin_headers)

        deleted = await client.delete("/api/vault/secret/temp", headers=admin_headers)

        assert deleted.status_code == 200
        assert deleted.json()["deleted"] is True
        assert (await client.get("/api/vault/secret/temp", headers=admin_headers)).status_code == 404

    async def test_empty_value_is_rejected(self, client, admin_headers):
        response = await client.post("/api/vault/secret", json={"name": "x", "value": ""}, headers=admin_headers)

        assert response.status_code == 422

    async def test_clear_cache(self, client, admin_headers, vault):
        await vault.refresh()
        assert vault.is_cache_valid() is True

        response = await client.post("/api/vault/clear-cache", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["cleared"] is True
        assert vault.is_cache_valid() is False


class TestVaultHealth:
    async def test_health_is_public(self, client):
        response = await client.get("/api/vault/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "development"
        assert "cache_valid" in body
