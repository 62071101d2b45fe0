"""Integration tests for the supplier, category and registration endpoints."""

from tests.conftest import supplier_payload


class TestAuth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_missing_token(self, client):
        resp = await client.get("/suppliers")
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHENTICATED"

    async def test_bad_token(self, client):
        resp = await client.get("/suppliers", headers={"Authorization": "Bearer forged"})
        assert resp.status_code == 401


class TestSupplierRouter:
    async def test_create_approve_flow(self, client, http_actors, headers_for):
        specialist = headers_for(http_actors.specialist)
        manager = headers_for(http_actors.manager)

        resp = await client.post("/suppliers", json=supplier_payload(name="Acme"), headers=specialist)
        assert resp.status_code == 201
        supplier = resp.json()
        assert supplier["status"] == "PENDING"
        assert supplier["categories"] == []
        assert "bank_account_info" not in supplier

        resp = await client.post(f"/suppliers/{supplier['id']}/approve", headers=specialist)
        assert resp.status_code == 403
        assert resp.json()["code"] == "FORBIDDEN"

        resp = await client.post(f"/suppliers/{supplier['id']}/approve", headers=manager)
        assert resp.status_code == 200
        assert resp.json()["status"] == "APPROVED"
        assert resp.json()["approved_by_id"] == http_actors.manager.principal.id

        resp = await client.get("/suppliers?status=APPROVED", headers=specialist)
        assert resp.json()["total"] == 1

    async def test_duplicate_is_bad_request(self, client, http_actors, headers_for):
        headers = headers_for(http_actors.specialist)
        await client.post("/suppliers", json=supplier_payload(tax_id="TAX-HTTP"), headers=headers)
        resp = await client.post("/suppliers", json=supplier_payload(tax_id="TAX-HTTP"), headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "A supplier with this tax ID already exists"

    async def test_invalid_email_rejected_by_schema(self, client, http_actors, headers_for):
        resp = await client.post(
            "/suppliers", json=supplier_payload(email="not-an-email"),
            headers=headers_for(http_actors.specialist),
        )
        assert resp.status_code == 422

    async def test_missing_supplier(self, client, http_actors, headers_for):
        resp = await client.get("/suppliers/nope", headers=headers_for(http_actors.manager))
        assert resp.status_code == 404

    async def test_reject_and_rate(self, client, http_actors, headers_for):
        specialist = headers_for(http_actors.specialist)
        manager = headers_for(http_actors.manager)
        supplier = (await client.post("/suppliers", json=supplier_payload(), headers=specialist)).json()

        resp = await client.post(
            f"/suppliers/{supplier['id']}/reject", json={"reason": "Expired license"}, headers=manager,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "REJECTED"
        assert resp.json()["notes"].endswith("Expired license")

        resp = await client.post(
            f"/suppliers/{supplier['id']}/rate",
            json={"quality_rating": 4, "delivery_rating": 2}, headers=specialist,
        )
        assert resp.status_code == 200
        assert resp.json()["overall_rating"] == 3

    async def test_categories(self, client, http_actors, headers_for):
        manager = headers_for(http_actors.manager)
        resp = await client.post("/categories", json={"name": "Electronics"}, headers=manager)
        assert resp.status_code == 201
        category = resp.json()

        payload = supplier_payload()
        payload["category_ids"] = [category["id"]]
        resp = await client.post("/suppliers", json=payload, headers=headers_for(http_actors.specialist))
        assert resp.status_code == 201
        assert [c["name"] for c in resp.json()["categories"]] == ["Electronics"]

        resp = await client.get("/categories", headers=manager)
        assert [c["name"] for c in resp.json()] == ["Electronics"]

    async def test_delete(self, client, http_actors, headers_for):
        specialist = headers_for(http_actors.specialist)
        supplier = (await client.post("/suppliers", json=supplier_payload(), headers=specialist)).json()
        resp = await client.delete(f"/suppliers/{supplier['id']}", headers=specialist)
        assert resp.status_code == 403
        resp = await client.delete(f"/suppliers/{supplier['id']}", headers=headers_for(http_actors.admin))
        assert resp.status_code == 204


class TestRegistrationRouter:
    async def test_register_without_token(self, client, http_actors, headers_for):
        resp = await client.post("/register/supplier", json=supplier_payload(name="Self Co"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["supplier"]["status"] == "PENDING"
        assert data["supplier"]["created_by_id"] is None

        resp = await client.get("/notifications", headers=headers_for(http_actors.manager))
        titles = [n["title"] for n in resp.json()["items"]]
        assert titles == ["New Supplier Registration"]

    async def test_duplicate_registration(self, client, http_actors):
        payload = supplier_payload()
        await client.post("/register/supplier", json=payload)
        resp = await client.post("/register/supplier", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {
            "success": False,
            "message": "A supplier with this email already exists",
            "supplier": None,
        }
