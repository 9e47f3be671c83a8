"""Unit tests for the Score-360 rule table"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from midi_financing.config import Settings
from midi_financing.domain.models import (
    AccountTransaction,
    ApplicantSnapshot,
    FinancingParams,
    IslamicFinancing,
    ProductType,
    PurchaseCredit,
    RepaymentFrequency,
    ScoreDetail,
)
from midi_financing.domain.scoring import (
    RuleBasedScoringSource,
    combine_risk,
    evaluate_purpose,
    score_activity,
    score_behavioral,
    score_request,
    score_socio_professional,
)


@pytest.fixture
def purchase_policy():
    return Settings().product_policy(ProductType.PURCHASE_CREDIT)


@pytest.fixture
def islamic_policy():
    return Settings().product_policy(ProductType.ISLAMIC_FINANCING)


def make_snapshot(balance=100_000, received=(), sent=(), personalized=True) -> ApplicantSnapshot:
    """Snapshot from (amount, days_ago) tuples"""
    now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
    transactions = [AccountTransaction(a, "received", now - timedelta(days=d)) for a, d in received]
    transactions += [AccountTransaction(a, "sent", now - timedelta(days=d)) for a, d in sent]
    return ApplicantSnapshot(
        current_balance=balance,
        recent_transactions=tuple(sorted(transactions, key=lambda t: t.date, reverse=True)),
        alias_is_personalized=personalized,
    )


def make_params(amount=80_000, down_payment=0, product=None) -> FinancingParams:
    return FinancingParams(
        product=product or PurchaseCredit(counterparty_id="merchant_1"),
        requested_amount=amount,
        installments_count=4,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        first_installment_date=date(2025, 7, 1),
        margin_rate_per_period=Decimal("0"),
        down_payment=down_payment,
    )


def test_activity_without_history():
    detail = score_activity(make_snapshot(), make_params())

    assert detail.value == 10
    assert "No transaction history" in detail.explanation


def test_activity_with_only_outgoing_money():
    detail = score_activity(make_snapshot(sent=[(5_000, 1), (3_000, 2)]), make_params())

    assert detail.value == 25


def test_activity_regular_and_sufficient():
    """Test five distinct days and received volume above principal saturate at 100"""
    snapshot = make_snapshot(received=[(20_000, d) for d in (1, 2, 3, 4, 5)])
    detail = score_activity(snapshot, make_params(amount=80_000))

    assert detail.value == 100


def test_activity_partial_regularity_and_volume():
    # 2 days of 5 -> 20 points, 40,000 of 80,000 -> 25 points
    snapshot = make_snapshot(received=[(20_000, 1), (20_000, 4)])
    detail = score_activity(snapshot, make_params(amount=80_000))

    assert detail.value == 45


def test_activity_volume_measured_against_principal():
    snapshot = make_snapshot(received=[(40_000, d) for d in (1, 2, 3, 4, 5)])

    assert score_activity(snapshot, make_params(amount=400_000)).value == 75
    assert score_activity(snapshot, make_params(amount=400_000, down_payment=200_000)).value == 100


@pytest.mark.parametrize(
    "balance, expected",
    [
        (80_000, 100),  # covers the request
        (40_000, 80),  # covers half
        (16_000, 60),  # covers a fifth
        (15_999, 40),
        (0, 40),
    ],
)
def test_behavioral_balance_coverage(purchase_policy, balance, expected):
    detail = score_behavioral(make_snapshot(balance=balance), make_params(amount=80_000), purchase_policy)

    assert detail.value == expected


def test_behavioral_high_amount_penalty(purchase_policy):
    detail = score_behavioral(make_snapshot(balance=200_000), make_params(amount=160_000), purchase_policy)

    assert detail.value == 70
    assert "above 150000" in detail.explanation


def test_behavioral_down_payment_halves_penalty(purchase_policy):
    snapshot = make_snapshot(balance=0)

    without = score_behavioral(snapshot, make_params(amount=100_000), purchase_policy)
    with_down_payment = score_behavioral(snapshot, make_params(amount=100_000, down_payment=20_000), purchase_policy)

    assert without.value == 40
    assert with_down_payment.value == 70


@pytest.mark.parametrize(
    "purpose, expected",
    [
        ("Achat de stock d'alcool pour le bar", -40),
        ("Purchase of a delivery motorcycle for the business", 20),
        ("Achat d'un ordinateur portable", 20),
        ("Besoins personnels divers", -20),
        ("divers", -20),
        ("Paiement des frais de scolarité annuels", 0),
    ],
)
def test_evaluate_purpose(islamic_policy, purpose, expected):
    assert evaluate_purpose(purpose, islamic_policy).value == expected


def test_excluded_keyword_wins_over_tangible(islamic_policy):
    assert evaluate_purpose("Car for the casino shuttle", islamic_policy).value == -40


def test_short_tangible_purpose_is_still_vague(islamic_policy):
    """Test a one-word tangible purpose gets the vague penalty, not the tangible bonus"""
    assert evaluate_purpose("voiture", islamic_policy).value == -20
    assert evaluate_purpose("Une moto", islamic_policy).value == -20


def test_keyword_matching_uses_word_boundaries(islamic_policy):
    """Test 'card' does not match the 'car' keyword"""
    assert evaluate_purpose("Payment card reader terminal", islamic_policy).value == 0


def test_socio_professional_alias_bonus(purchase_policy):
    params = make_params()

    assert score_socio_professional(make_snapshot(personalized=True), params, purchase_policy).value == 60
    assert score_socio_professional(make_snapshot(personalized=False), params, purchase_policy).value == 50


def test_socio_professional_purpose_for_islamic_financing(islamic_policy):
    params = make_params(product=IslamicFinancing(purpose="Achat de tabac en gros"))
    detail = score_socio_professional(make_snapshot(personalized=True), params, islamic_policy)

    assert detail.value == 20
    assert "excluded" in detail.explanation


def test_combine_risk_inverts_weighted_quality(purchase_policy):
    risk = combine_risk(ScoreDetail(100, ""), ScoreDetail(100, ""), ScoreDetail(60, ""), purchase_policy)

    assert risk.value == 12


def test_combine_risk_bounds(purchase_policy):
    assert combine_risk(ScoreDetail(0, ""), ScoreDetail(0, ""), ScoreDetail(0, ""), purchase_policy).value == 100
    assert combine_risk(ScoreDetail(100, ""), ScoreDetail(100, ""), ScoreDetail(100, ""), purchase_policy).value == 0


def test_combine_risk_rejects_weights_not_summing_to_one():
    policy = Settings(socio_professional_weight=0.5).product_policy(ProductType.PURCHASE_CREDIT)

    with pytest.raises(ValueError):
        combine_risk(ScoreDetail(50, ""), ScoreDetail(50, ""), ScoreDetail(50, ""), policy)


def test_score_request_is_deterministic(purchase_policy):
    snapshot = make_snapshot(balance=30_000, received=[(10_000, 1), (15_000, 3)], sent=[(2_000, 2)])
    params = make_params(amount=60_000)

    assert score_request(snapshot, params, purchase_policy) == score_request(snapshot, params, purchase_policy)


async def test_rule_based_scoring_source(purchase_policy):
    snapshot = make_snapshot(balance=200_000, received=[(50_000, d) for d in range(1, 7)])
    scores = await RuleBasedScoringSource().score(snapshot, make_params(amount=80_000), purchase_policy)

    assert scores.activity.value == 100
    assert scores.behavioral.value == 100
    assert scores.socio_professional.value == 60
    assert scores.risk.value == 12
    assert all(0 <= s.value <= 100 for s in (scores.activity, scores.behavioral, scores.socio_professional))
