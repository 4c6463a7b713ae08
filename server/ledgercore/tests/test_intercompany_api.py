from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from ledgercore.db import get_db
from ledgercore.main import app
from ledgercore.models import IntercompanyTransaction


@pytest.fixture()
def client(session_factory, companies):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _relate(client, parent_id, child_id):
    response = client.post(
        "/api/intercompany/relationships",
        json={"parent_company_id": parent_id, "child_company_id": child_id, "ownership_percentage": "100"},
    )
    assert response.status_code == 201
    return response.json()


def _invoice_payload(seller, buyer, **overrides):
    payload = {
        "invoice_id": "inv-1",
        "invoicing_company_id": seller,
        "customer_company_id": buyer,
        "amount": "1000.00",
        "invoice_date": "2025-05-10",
        "invoice_number": "IC/0001",
    }
    payload.update(overrides)
    return payload


def test_root_reports_ok(client):
    assert client.get("/").json() == {"status": "ok"}


def test_relationship_endpoint_validates_input(client, companies):
    parent, child, _ = companies

    created = _relate(client, parent, child)

    assert created["relationship_type"] == "subsidiary"
    assert created["consolidation_method"] == "full"
    assert created["is_active"] is True
    own_parent = client.post(
        "/api/intercompany/relationships",
        json={"parent_company_id": parent, "child_company_id": parent, "ownership_percentage": "50"},
    )
    assert own_parent.status_code == 400
    too_much = client.post(
        "/api/intercompany/relationships",
        json={"parent_company_id": parent, "child_company_id": child, "ownership_percentage": "120"},
    )
    assert too_much.status_code == 422


def test_invoice_between_unrelated_companies_is_rejected(client, companies):
    response = client.post("/api/intercompany/invoices", json=_invoice_payload(companies[0], companies[1]))

    assert response.status_code == 409


def test_invoice_to_self_fails_validation(client, companies):
    response = client.post("/api/intercompany/invoices", json=_invoice_payload(companies[0], companies[0]))

    assert response.status_code == 422


def test_invoice_and_payment_flow(client, companies):
    parent, child, _ = companies
    _relate(client, parent, child)

    invoice = client.post("/api/intercompany/invoices", json=_invoice_payload(parent, child))
    assert invoice.status_code == 201
    body = invoice.json()
    assert body["status"] == "mirrored"
    assert body["primary"]["transaction_direction"] == "receivable"
    assert body["counterpart"]["transaction_direction"] == "payable"
    assert body["counterpart"]["counterparty_transaction_id"] == body["primary"]["id"]

    balances = client.get(f"/api/intercompany/balances/{parent}").json()
    assert [row["to_company_id"] for row in balances] == [child]
    assert Decimal(balances[0]["balance_amount"]) == Decimal("1000")

    payment = client.post(
        "/api/intercompany/payments",
        json={
            "payment_id": "pay-1",
            "paying_company_id": child,
            "receiving_company_id": parent,
            "amount": "1000.00",
            "payment_date": "2025-05-20",
            "reference": "UTR-991",
        },
    )
    assert payment.status_code == 201
    assert payment.json()["primary"]["source_document_number"] == "UTR-991"

    balances = client.get(f"/api/intercompany/balances/{child}").json()
    assert Decimal(balances[0]["balance_amount"]) == 0
    assert balances[0]["transaction_count"] == 2


def test_reconcile_endpoints(client, companies):
    parent, child, _ = companies
    _relate(client, parent, child)
    client.post("/api/intercompany/invoices", json=_invoice_payload(parent, child))

    unreconciled = client.get("/api/intercompany/unreconciled", params={"company_id": parent}).json()
    assert len(unreconciled) == 2

    response = client.post("/api/intercompany/reconcile/auto", params={"company_id": parent})
    assert response.json() == {"reconciled_count": 2}
    assert client.get("/api/intercompany/unreconciled").json() == []

    report = client.get(f"/api/intercompany/report/{parent}", params={"as_of": "2025-05-31"})
    assert report.status_code == 200
    body = report.json()
    assert body["as_of_date"] == "2025-05-31"
    assert body["unreconciled_count"] == 0
    assert body["balances"][0]["status"] == "Matched"
    assert Decimal(body["net_position"]) == Decimal("1000")

    assert client.get("/api/intercompany/report/9999").status_code == 404


def test_manual_reconcile_endpoint(client, companies, session_factory):
    parent, child, _ = companies
    with session_factory() as db:
        legs = [
            IntercompanyTransaction(
                company_id=company_id,
                counterparty_company_id=counterparty_id,
                transaction_date=date(2025, 5, 10),
                financial_year="2025-26",
                transaction_type="invoice",
                transaction_direction=direction,
                source_document_type="invoice",
                source_document_id=doc_id,
                source_document_number=doc_id,
                amount=Decimal(amount),
                currency="INR",
            )
            for company_id, counterparty_id, direction, doc_id, amount in [
                (parent, child, "receivable", "A-1", "500.00"),
                (child, parent, "payable", "B-1", "400.00"),
                (child, parent, "payable", "B-2", "500.00"),
            ]
        ]
        db.add_all(legs)
        db.commit()
        ours, short, matching = (leg.id for leg in legs)

    mismatch = client.post(
        "/api/intercompany/reconcile/manual",
        json={"transaction_id": ours, "counterpart_transaction_id": short, "reconciled_by": "controller"},
    )
    assert mismatch.status_code == 400

    matched = client.post(
        "/api/intercompany/reconcile/manual",
        json={"transaction_id": ours, "counterpart_transaction_id": matching, "reconciled_by": "controller"},
    )
    assert matched.status_code == 200
    assert matched.json() == {"status": "reconciled"}

    repeat = client.post(
        "/api/intercompany/reconcile/manual",
        json={"transaction_id": ours, "counterpart_transaction_id": matching, "reconciled_by": "controller"},
    )
    assert repeat.status_code == 409

    missing = client.post(
        "/api/intercompany/reconcile/manual",
        json={"transaction_id": ours, "counterpart_transaction_id": 9999, "reconciled_by": "controller"},
    )
    assert missing.status_code == 404
