"""
E2E tests for applicant personas through the HTTP API and the rule-based scorer.

Personas:
- regular_trader: steady inflows, healthy balance, auto-approved purchase credit
- newcomer: no history, sent to review (or rejected above the ceiling)
- overextended: low balance, excluded purpose, rejected
- growing_shop: borderline Mourabaha request, approved by a reviewer and repaid
"""

import pytest
from fastapi.testclient import TestClient

from midi_financing.api.dependencies import get_scoring_source
from midi_financing.domain.scoring import RuleBasedScoringSource
from midi_financing.infrastructure.database.models import Account


@pytest.fixture
def rules_client(client: TestClient, merchant) -> TestClient:
    client.app.dependency_overrides[get_scoring_source] = RuleBasedScoringSource
    return client


def balance_of(db, account_id: str) -> int:
    return db.get(Account, account_id, populate_existing=True).balance


def submit(client: TestClient, applicant_id: str, **fields) -> dict:
    body = {
        "applicant_id": applicant_id,
        "installments_count": 4,
        "repayment_frequency": "monthly",
        "first_installment_date": "2030-02-01",
        "margin_rate_per_period": "0",
    }
    body.update(fields)
    response = client.post("/v1/financing-requests", json=body)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.integration
def test_regular_trader_auto_approved(rules_client: TestClient, seed, db):
    """
    regular_trader: six inflows of 50,000 on distinct days, balance 200,000
    Expected: risk 12, approved, credited once
    """
    seed(
        "regular_trader",
        balance=200_000,
        alias="Boutique Awa",
        transactions=[(50_000, "received", d) for d in range(1, 7)],
    )

    data = submit(
        rules_client,
        "regular_trader",
        product_type="purchase_credit",
        counterparty_id="merchant_1",
        requested_amount=80_000,
    )

    assert data["status"] == "approved"
    assert data["scores"]["activity"]["value"] == 100
    assert data["scores"]["behavioral"]["value"] == 100
    assert data["scores"]["socio_professional"]["value"] == 60
    assert data["scores"]["risk"]["value"] == 12
    assert data["ledger_effect_applied"] is True
    assert balance_of(db, "regular_trader") == 280_000


@pytest.mark.integration
def test_newcomer_goes_to_review(rules_client: TestClient, seed, db):
    """
    newcomer: phone-number alias, no history, empty balance
    Expected: never auto-approved; rejected outright above the ceiling
    """
    seed("newcomer", balance=0, alias="+221 77 123 45 67")

    within = submit(
        rules_client,
        "newcomer",
        product_type="purchase_credit",
        counterparty_id="merchant_1",
        requested_amount=50_000,
    )
    above = submit(
        rules_client,
        "newcomer",
        product_type="purchase_credit",
        counterparty_id="merchant_1",
        requested_amount=120_000,
    )

    assert within["status"] == "review"
    assert within["scores"]["activity"]["value"] == 10
    assert "no transaction history" in within["reason"]
    assert above["status"] == "rejected"
    assert balance_of(db, "newcomer") == 0


@pytest.mark.integration
def test_overextended_rejected(rules_client: TestClient, seed, db):
    """
    overextended: outgoing-only history, balance 1,000, excluded purpose
    Expected: rejected, balance unchanged
    """
    seed(
        "overextended",
        balance=1_000,
        alias="+221 70 000 00 00",
        transactions=[(15_000, "sent", 2), (9_000, "sent", 5)],
    )

    data = submit(
        rules_client,
        "overextended",
        product_type="islamic_financing",
        purpose="Mise pour le casino",
        requested_amount=600_000,
    )

    assert data["status"] == "rejected"
    assert data["scores"]["risk"]["value"] > 70
    assert data["repayment_plan_summary"] is None
    assert balance_of(db, "overextended") == 1_000


@pytest.mark.integration
def test_growing_shop_review_approval_and_repayment(rules_client: TestClient, seed, db):
    """
    growing_shop: three inflows totalling 90,000, balance 30,000, tangible purpose
    Expected: risk 45 -> review; approved by a reviewer, credited once, repaid in part
    """
    seed(
        "growing_shop",
        balance=30_000,
        alias="Moussa Diop",
        transactions=[(30_000, "received", d) for d in (2, 9, 16)],
    )

    created = submit(
        rules_client,
        "growing_shop",
        product_type="islamic_financing",
        purpose="Achat d'une moto pour les livraisons",
        requested_amount=250_000,
        installments_count=5,
        margin_rate_per_period="0.015",
    )
    assert created["status"] == "review"
    assert created["scores"]["risk"]["value"] == 45

    review_url = f"/v1/financing-requests/{created['id']}/review"
    approved = rules_client.post(review_url, json={"decision": "approved", "reviewer_id": "committee_1"})
    assert approved.json()["status"] == "approved"
    assert balance_of(db, "growing_shop") == 280_000

    # Second approval changes nothing
    rules_client.post(review_url, json={"decision": "approved", "reviewer_id": "committee_1"})
    assert balance_of(db, "growing_shop") == 280_000

    plan = rules_client.get(f"/v1/financing-requests/{created['id']}/plan").json()
    assert len(plan["installments"]) == 5
    assert float(plan["total_due"]) == 268_750  # 250,000 + 5 x 3,750 margin

    repayments_url = f"/v1/financing-requests/{created['id']}/repayments"
    repaid = rules_client.post(repayments_url, json={"amount": 100_000}).json()
    assert repaid["repaid_amount"] == 100_000
    assert repaid["outstanding_amount"] == 150_000
    assert balance_of(db, "growing_shop") == 180_000

    excessive = rules_client.post(repayments_url, json={"amount": 200_000})
    assert excessive.status_code == 422
    assert balance_of(db, "growing_shop") == 180_000

    audit = rules_client.get(f"/v1/financing-requests/{created['id']}/audit").json()["entries"]
    assert [e["actor"] for e in audit] == ["engine", "engine", "committee_1", "committee_1"]
