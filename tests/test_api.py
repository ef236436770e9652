import uuid
from decimal import Decimal

import httpx
import pytest

from agency_billing.api.deps import get_session_factory
from agency_billing.core.security import create_access_token
from agency_billing.database import get_db
from agency_billing.main import app
from agency_billing.models.user import AppRole, UserRole

from tests.conftest import make_draft


@pytest.fixture()
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _token_for(session_factory, role=None) -> dict:
    user_id = uuid.uuid4()
    if role is not None:
        async with session_factory() as session:
            session.add(UserRole(user_id=user_id, role=role.value))
            await session.commit()
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
async def admin_headers(session_factory):
    return await _token_for(session_factory, AppRole.ADMIN)


async def test_missing_token_is_401(client):
    response = await client.get("/api/v1/quotations")
    assert response.status_code == 401


async def test_garbage_token_is_401(client):
    response = await client.get("/api/v1/quotations", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


async def test_non_admin_is_403(client, session_factory):
    headers = await _token_for(session_factory, AppRole.USER)

    response = await client.get("/api/v1/quotations", headers=headers)

    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


async def test_invalid_draft_lists_every_field(client, admin_headers):
    draft = make_draft(client_name="", items=[{"service_name": "Audit", "quantity": 0, "rate": "10"}])

    response = await client.post("/api/v1/quotations", json=draft, headers=admin_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "Validation failed"
    assert any(e.startswith("client_name:") for e in body["errors"])
    assert any(e.startswith("items[0].quantity:") for e in body["errors"])


async def test_invalid_draft_also_lists_pricing_and_date_rules(client, admin_headers):
    draft = make_draft(
        client_name="",
        discount_type="percentage",
        discount_value="150",
        invoice_date="2026-03-10",
        due_date="2026-03-01",
    )

    response = await client.post("/api/v1/invoices", json=draft, headers=admin_headers)

    assert response.status_code == 422
    errors = response.json()["errors"]
    assert len(errors) == 3
    assert errors[0].startswith("client_name:")
    assert "discount_value: Percentage discount cannot exceed 100" in errors
    assert "due_date: Due date cannot be before the invoice date" in errors


async def test_quotation_to_paid_invoice(client, admin_headers):
    response = await client.post("/api/v1/quotations", json=make_draft(), headers=admin_headers)
    assert response.status_code == 201
    quotation = response.json()
    assert quotation["quotation_number"].startswith("QT-")
    assert quotation["quotation_number"].endswith("-0001")
    assert Decimal(quotation["grand_total"]) == Decimal("5900")

    for new_status in ("sent", "accepted"):
        response = await client.post(
            f"/api/v1/quotations/{quotation['id']}/status",
            json={"status": new_status},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == new_status

    response = await client.post(f"/api/v1/quotations/{quotation['id']}/convert", headers=admin_headers)
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["quotation_id"] == quotation["id"]
    assert invoice["status"] == "draft"

    response = await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        json={"amount": "5900"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paid"
    assert Decimal(response.json()["balance_due"]) == Decimal("0")

    response = await client.post(f"/api/v1/quotations/{quotation['id']}/convert", headers=admin_headers)
    assert response.status_code == 422


async def test_invalid_transition_is_422(client, admin_headers):
    quotation = (await client.post("/api/v1/quotations", json=make_draft(), headers=admin_headers)).json()

    response = await client.post(
        f"/api/v1/quotations/{quotation['id']}/status",
        json={"status": "accepted"},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert "Allowed transitions: sent" in response.json()["errors"][0]


async def test_stale_update_is_409(client, admin_headers):
    quotation = (await client.post("/api/v1/quotations", json=make_draft(), headers=admin_headers)).json()
    url = f"/api/v1/quotations/{quotation['id']}"

    first = await client.patch(url, json={"notes": "v2", "expected_updated_at": quotation["updated_at"]},
                               headers=admin_headers)
    assert first.status_code == 200

    second = await client.patch(url, json={"notes": "v3", "expected_updated_at": quotation["updated_at"]},
                                headers=admin_headers)
    assert second.status_code == 409
    assert second.json()["retryable"] is False


async def test_unknown_document_is_404(client, admin_headers):
    response = await client.get(f"/api/v1/invoices/{uuid.uuid4()}", headers=admin_headers)
    assert response.status_code == 404


async def test_pdf_download(client, admin_headers):
    invoice = (await client.post("/api/v1/invoices", json=make_draft(), headers=admin_headers)).json()

    response = await client.get(f"/api/v1/invoices/{invoice['id']}/pdf", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert f'filename="{invoice["invoice_number"]}.pdf"' in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


async def test_list_and_delete(client, admin_headers):
    created = (await client.post("/api/v1/invoices", json=make_draft(), headers=admin_headers)).json()

    listing = (await client.get("/api/v1/invoices", headers=admin_headers)).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == created["id"]

    response = await client.delete(f"/api/v1/invoices/{created['id']}", headers=admin_headers)
    assert response.status_code == 204

    listing = (await client.get("/api/v1/invoices", headers=admin_headers)).json()
    assert listing["total"] == 0


async def test_business_settings_defaults_and_upsert(client, admin_headers):
    response = await client.get("/api/v1/business-settings", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["currency_code"] == "INR"
    assert response.json()["enable_tax"] is True

    response = await client.put(
        "/api/v1/business-settings",
        json={"company_name": "Northwind Studio", "currency_code": "usd", "tax_percentage": "5"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["currency_code"] == "USD"

    response = await client.post("/api/v1/quotations", json=make_draft(), headers=admin_headers)
    assert Decimal(response.json()["tax_amount"]) == Decimal("250")


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "connected"
