"""
HTTP tests for listing, moderation and public search endpoints.

The app runs against the in-memory store from ``fakes``; tokens are signed
with the test secret by the ``auth_headers`` fixture.
"""
import uuid
from decimal import Decimal

from fastapi.testclient import TestClient

from alquila.main import create_app
from fakes import (
    NON_OWNER_AUTH_USER_ID,
    NON_OWNER_USER_ID,
    OWNED_PROPERTY_ID,
    OWNER_USER_ID,
    PUBLISHED_1000_ID,
    PUBLISHED_1500_ID,
    PUBLISHED_UNFURNISHED_ID,
)

PAYLOAD = {
    "title": "Depto en Centro",
    "description": "Cerca del metro",
    "city": "Madrid",
    "neighborhood": "Centro",
    "address": "Calle 1",
    "monthlyPrice": 1000,
    "depositAmount": 1000,
    "bedrooms": 2,
    "bathrooms": 1,
    "areaM2": 70,
    "isFurnished": True,
    "availableFrom": "2026-03-01",
    "contractType": "long_term",
    "status": "pendiente",
}


# ── Authentication ───────────────────────────────────────────────────────────

class TestAuthentication:
    def test_missing_token_is_401(self, client):
        response = client.post("/properties", json=PAYLOAD)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.headers["content-type"].startswith("application/problem+json")

    def test_token_signed_with_other_secret_is_401(self, client):
        from jose import jwt

        token = jwt.encode({"role": "admin"}, "some-other-secret-that-is-long-enough", algorithm="HS256")
        response = client.get("/properties/moderation/pending", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_role_from_app_metadata(self, client, auth_headers):
        headers = auth_headers(role="authenticated", app_metadata={"role": "admin"})
        response = client.get("/properties/moderation/pending", headers=headers)
        assert response.status_code == 200


# ── Create ───────────────────────────────────────────────────────────────────

class TestCreateProperty:
    def test_owner_creates_property(self, client, auth_headers):
        response = client.post("/properties", json=PAYLOAD, headers=auth_headers("propietario"))
        assert response.status_code == 201
        body = response.json()
        assert body["ownerUserId"] == str(OWNER_USER_ID)
        assert body["status"] == "pendiente"
        assert response.headers["location"] == f"/properties/{body['id']}"

    def test_status_defaults_to_pending(self, client, auth_headers):
        payload = {k: v for k, v in PAYLOAD.items() if k != "status"}
        response = client.post("/properties", json=payload, headers=auth_headers("propietario"))
        assert response.status_code == 201
        assert response.json()["status"] == "pendiente"

    def test_tenant_is_forbidden(self, client, auth_headers):
        response = client.post("/properties", json=PAYLOAD, headers=auth_headers("inquilino"))
        assert response.status_code == 403

    def test_role_is_checked_before_body(self, client, auth_headers):
        response = client.post("/properties", json={"title": 5}, headers=auth_headers("inquilino"))
        assert response.status_code == 403

    def test_validation_errors_are_aggregated(self, client, auth_headers):
        payload = {**PAYLOAD, "title": " ", "monthlyPrice": 0, "contractType": "weekly"}
        response = client.post("/properties", json=payload, headers=auth_headers("propietario"))
        assert response.status_code == 400
        errors = response.json()["errors"]
        assert errors["title"] == ["title is required."]
        assert errors["monthlyPrice"] == ["monthlyPrice must be greater than 0."]
        assert "contractType" in errors

    def test_malformed_body_is_400(self, client, auth_headers):
        payload = {**PAYLOAD, "bedrooms": "many"}
        response = client.post("/properties", json=payload, headers=auth_headers("propietario"))
        assert response.status_code == 400
        assert "bedrooms" in response.json()["errors"]

    def test_non_uuid_subject_is_401(self, client, auth_headers):
        response = client.post("/properties", json=PAYLOAD, headers=auth_headers("propietario", sub="test-user-id"))
        assert response.status_code == 401

    def test_missing_user_profile_is_403(self, client, auth_headers):
        response = client.post("/properties", json=PAYLOAD, headers=auth_headers("propietario", sub=uuid.uuid4()))
        assert response.status_code == 403
        assert response.json()["title"] == "Missing user profile"

    def test_created_under_api_v1_prefix(self, client, auth_headers):
        response = client.post("/api/v1/properties", json=PAYLOAD, headers=auth_headers("admin"))
        assert response.status_code == 201


# ── Patch ────────────────────────────────────────────────────────────────────

class TestPatchProperty:
    def test_owner_patches_own_property(self, client, auth_headers, repository):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}",
            json={"monthlyPrice": 1300, "status": "publicado"},
            headers=auth_headers("propietario"),
        )
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["monthlyPrice"]) == Decimal("1300")
        assert body["status"] == "publicado"
        assert body["title"] == "Inicial"

    def test_other_owner_is_forbidden(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}",
            json={"monthlyPrice": 1400},
            headers=auth_headers("propietario", sub=NON_OWNER_AUTH_USER_ID),
        )
        assert response.status_code == 403

    def test_admin_patches_any_property(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}",
            json={"status": "rechazado"},
            headers=auth_headers("admin", sub=NON_OWNER_AUTH_USER_ID),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rechazado"

    def test_empty_patch_is_400(self, client, auth_headers):
        response = client.patch(f"/properties/{OWNED_PROPERTY_ID}", json={}, headers=auth_headers("propietario"))
        assert response.status_code == 400
        assert response.json()["errors"] == {"request": ["At least one field is required for patch."]}

    def test_blank_only_patch_is_400(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}",
            json={"description": "   "},
            headers=auth_headers("propietario"),
        )
        assert response.status_code == 400
        assert response.json()["errors"] == {"request": ["At least one field is required for patch."]}

    def test_unknown_property_is_404(self, client, auth_headers):
        response = client.patch(f"/properties/{uuid.uuid4()}", json={"bedrooms": 3}, headers=auth_headers("propietario"))
        assert response.status_code == 404

    def test_invalid_field_is_400(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}",
            json={"areaM2": -3},
            headers=auth_headers("propietario"),
        )
        assert response.status_code == 400
        assert "areaM2" in response.json()["errors"]

    def test_tenant_is_forbidden(self, client, auth_headers):
        response = client.patch(f"/properties/{OWNED_PROPERTY_ID}", json={"bedrooms": 3}, headers=auth_headers("inquilino"))
        assert response.status_code == 403


# ── Moderation ───────────────────────────────────────────────────────────────

class TestModeration:
    def test_pending_queue_is_admin_only(self, client, auth_headers):
        response = client.get("/properties/moderation/pending", headers=auth_headers("propietario"))
        assert response.status_code == 403

    def test_pending_queue_lists_pending_only(self, client, auth_headers):
        response = client.get("/properties/moderation/pending", headers=auth_headers("admin"))
        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [str(OWNED_PROPERTY_ID)]

    def test_admin_approves_and_history_is_recorded(self, client, auth_headers, repository):
        repository.add_user(NON_OWNER_AUTH_USER_ID, NON_OWNER_USER_ID)
        headers = auth_headers("admin", sub=NON_OWNER_AUTH_USER_ID)

        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}/moderation",
            json={"status": "Publicado", "reason": "  Validado por admin  "},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "publicado"

        history = client.get(f"/properties/{OWNED_PROPERTY_ID}/status-history", headers=headers).json()
        assert len(history) == 1
        entry = history[0]
        assert entry["previousStatus"] == "pendiente"
        assert entry["newStatus"] == "publicado"
        assert entry["changedByRole"] == "admin"
        assert entry["changedByUserId"] == str(NON_OWNER_USER_ID)
        assert entry["reason"] == "Validado por admin"

    def test_same_status_adds_no_history(self, client, auth_headers):
        headers = auth_headers("admin")
        for _ in range(2):
            response = client.patch(
                f"/properties/{PUBLISHED_1000_ID}/moderation",
                json={"status": "publicado", "reason": " "},
                headers=headers,
            )
            assert response.status_code == 200

        history = client.get(f"/properties/{PUBLISHED_1000_ID}/status-history", headers=headers).json()
        assert history == []

    def test_history_is_newest_first(self, client, auth_headers):
        headers = auth_headers("admin")
        for status in ("publicado", "rechazado"):
            client.patch(f"/properties/{OWNED_PROPERTY_ID}/moderation", json={"status": status}, headers=headers)

        history = client.get(f"/properties/{OWNED_PROPERTY_ID}/status-history", headers=headers).json()
        assert [entry["newStatus"] for entry in history] == ["rechazado", "publicado"]
        assert history[1]["reason"] is None

    def test_pending_is_not_a_moderation_target(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}/moderation",
            json={"status": "pendiente"},
            headers=auth_headers("admin"),
        )
        assert response.status_code == 400
        assert response.json()["errors"] == {"status": ["status must be one of: publicado, rechazado."]}

    def test_owner_cannot_moderate(self, client, auth_headers):
        response = client.patch(
            f"/properties/{OWNED_PROPERTY_ID}/moderation",
            json={"status": "publicado"},
            headers=auth_headers("propietario"),
        )
        assert response.status_code == 403

    def test_unknown_property_is_404(self, client, auth_headers):
        headers = auth_headers("admin")
        missing = uuid.uuid4()
        assert client.patch(f"/properties/{missing}/moderation", json={"status": "rechazado"}, headers=headers).status_code == 404
        assert client.get(f"/properties/{missing}/status-history", headers=headers).status_code == 404


# ── Public search ────────────────────────────────────────────────────────────

class TestPublicSearch:
    def test_no_auth_and_only_published(self, client):
        response = client.get("/properties/public")
        assert response.status_code == 200
        body = response.json()
        assert body["items"]
        assert all(item["title"] != "Inicial" for item in body["items"])
        assert body["page"] == 1
        assert body["pageSize"] == 12

    def test_combined_filters_sort_and_pagination(self, client):
        response = client.get(
            "/properties/public?city=Madrid&minPrice=900&maxPrice=1600&bedrooms=2"
            "&isFurnished=true&sort=price_asc&page=1&pageSize=1"
        )
        assert response.status_code == 200
        body = response.json()
        assert body["page"] == 1
        assert body["pageSize"] == 1
        assert body["totalItems"] == 2
        assert body["totalPages"] == 2
        assert [item["title"] for item in body["items"]] == ["Publicado precio 1000"]

    def test_second_page(self, client):
        response = client.get("/properties/public?isFurnished=true&sort=price_asc&page=2&pageSize=1")
        assert [item["id"] for item in response.json()["items"]] == [str(PUBLISHED_1500_ID)]

    def test_price_desc(self, client):
        items = client.get("/properties/public?sort=price_desc").json()["items"]
        assert [item["id"] for item in items] == [
            str(PUBLISHED_1500_ID), str(PUBLISHED_UNFURNISHED_ID), str(PUBLISHED_1000_ID),
        ]

    def test_newest_is_default(self, client):
        items = client.get("/properties/public").json()["items"]
        assert items[0]["id"] == str(PUBLISHED_UNFURNISHED_ID)

    def test_city_match_is_case_insensitive(self, client):
        assert client.get("/properties/public?city=mAdRiD").json()["totalItems"] == 3
        assert client.get("/properties/public?city=Sevilla").json()["totalItems"] == 0

    def test_page_beyond_end_is_empty(self, client):
        body = client.get("/properties/public?page=9").json()
        assert body["items"] == []
        assert body["totalItems"] == 3
        assert body["totalPages"] == 1

    def test_invalid_price_range_is_400(self, client):
        response = client.get("/properties/public?minPrice=2000&maxPrice=1000")
        assert response.status_code == 400
        assert "minPrice" in response.json()["errors"]

    def test_invalid_paging_and_sort_are_400(self, client):
        assert client.get("/properties/public?page=0").status_code == 400
        assert client.get("/properties/public?pageSize=51").status_code == 400
        assert client.get("/properties/public?sort=cheapest").status_code == 400

    def test_api_v1_prefix(self, client):
        assert client.get("/api/v1/properties/public").status_code == 200


# ── Public detail ────────────────────────────────────────────────────────────

class TestPublicDetail:
    def test_published_property_with_related(self, client):
        response = client.get(f"/properties/public/{PUBLISHED_1000_ID}")
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Publicado precio 1000"
        assert body["images"] == []
        related = {item["id"] for item in body["relatedByCity"]}
        assert related == {str(PUBLISHED_1500_ID), str(PUBLISHED_UNFURNISHED_ID)}

    def test_pending_property_is_404(self, client):
        assert client.get(f"/properties/public/{OWNED_PROPERTY_ID}").status_code == 404

    def test_unknown_property_is_404(self, client):
        assert client.get(f"/properties/public/{uuid.uuid4()}").status_code == 404


# ── App surface ──────────────────────────────────────────────────────────────

class TestAppSurface:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/").status_code == 200

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"

    def test_unhandled_error_is_generic_500(self, settings, repository, image_storage):
        async def broken(*args, **kwargs):
            raise RuntimeError("database exploded")

        repository.search_published = broken
        app = create_app(settings, repository=repository, image_storage=image_storage)
        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/properties/public")

        assert response.status_code == 500
        assert "exploded" not in response.text
