"""Score-360 rule table - deterministic scoring source for financing requests"""

import re
from typing import List

from midi_financing.domain.models import (
    ApplicantSnapshot,
    FinancingParams,
    IslamicFinancing,
    ProductPolicy,
    ScoreDetail,
    ScoreSet,
)

# Distinct days with incoming money at which regularity saturates
REGULARITY_TARGET_DAYS = 5


def _clamp(value: float) -> int:
    return max(0, min(100, round(value)))


def _contains_keyword(text: str, keywords) -> List[str]:
    return [k for k in keywords if re.search(rf"\b{re.escape(k.lower())}\b", text)]


def score_activity(snapshot: ApplicantSnapshot, params: FinancingParams) -> ScoreDetail:
    """
    Regularity and volume of incoming ("received") transactions.

    - No history at all: 10 (high risk)
    - History but nothing received: 25
    - Otherwise 50 points for regularity (distinct active days, saturating at 5)
      plus 50 points for volume (received total vs financed principal, saturating at 1x)
    """
    if not snapshot.has_history:
        return ScoreDetail(10, "No transaction history available")

    received = [t for t in snapshot.recent_transactions if t.type == "received"]
    if not received:
        return ScoreDetail(25, "Transaction history shows no incoming funds")

    active_days = len({t.date.date() for t in received})
    regularity = min(active_days / REGULARITY_TARGET_DAYS, 1.0)

    total_received = sum(t.amount for t in received)
    volume = min(total_received / params.principal, 1.0)

    value = _clamp(50 * regularity + 50 * volume)
    return ScoreDetail(
        value,
        f"{len(received)} incoming transactions over {active_days} days, "
        f"{total_received} received against {params.principal} financed",
    )


def score_behavioral(snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy) -> ScoreDetail:
    """
    Requested amount vs current balance and the product's high-amount threshold.

    Penalties:
    - Balance covers the request: 0, covers >= 50%: 20, >= 20%: 40, less: 60
    - Request above the high-amount threshold: +30
    A down payment of at least 20% of the request halves the total penalty.
    """
    requested = params.requested_amount
    balance = snapshot.current_balance
    notes = []

    if balance >= requested:
        penalty = 0
        notes.append("balance covers the request")
    elif balance * 2 >= requested:
        penalty = 20
        notes.append("balance covers at least half of the request")
    elif balance * 5 >= requested:
        penalty = 40
        notes.append("balance covers at least a fifth of the request")
    else:
        penalty = 60
        notes.append("balance is low relative to the request")

    if requested > policy.high_amount_threshold:
        penalty += 30
        notes.append(f"amount above {policy.high_amount_threshold}")

    if params.down_payment * 5 >= requested and params.down_payment > 0:
        penalty //= 2
        notes.append("down payment of at least 20% reduces exposure")

    return ScoreDetail(_clamp(100 - penalty), "; ".join(notes).capitalize())


def evaluate_purpose(purpose: str, policy: ProductPolicy) -> ScoreDetail:
    """Adjustment for a Mourabaha purpose: excluded, tangible, vague or neutral"""
    text = purpose.lower()

    excluded = _contains_keyword(text, policy.excluded_purpose_keywords)
    if excluded:
        return ScoreDetail(-40, f"purpose excluded by policy ({', '.join(excluded)})")

    # Vagueness is checked before the tangible bonus: "voiture" alone is still vague
    meaningful_words = [w for w in re.findall(r"\w+", text) if len(w) > 2]
    if len(meaningful_words) < 3 or _contains_keyword(text, policy.vague_purpose_keywords):
        return ScoreDetail(-20, "purpose is vague")

    if _contains_keyword(text, policy.tangible_purpose_keywords):
        return ScoreDetail(20, "purpose is a concrete, tangible asset")

    return ScoreDetail(0, "purpose is acceptable")


def score_socio_professional(
    snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy
) -> ScoreDetail:
    """Bounded heuristic: personalized alias bonus, Mourabaha purpose check"""
    value = 50
    notes = []

    if snapshot.alias_is_personalized:
        value += 10
        notes.append("personalized alias")
    else:
        notes.append("phone-number alias")

    if isinstance(params.product, IslamicFinancing):
        adjustment = evaluate_purpose(params.product.purpose, policy)
        value += adjustment.value
        notes.append(adjustment.explanation)

    return ScoreDetail(_clamp(value), "; ".join(notes).capitalize())


def combine_risk(
    activity: ScoreDetail,
    behavioral: ScoreDetail,
    socio_professional: ScoreDetail,
    policy: ProductPolicy,
) -> ScoreDetail:
    """
    Composite risk from 0 (lowest risk) to 100 (highest risk).

    risk = 100 - weighted quality, weighted toward activity and behavioral.
    """
    total_weight = policy.activity_weight + policy.behavioral_weight + policy.socio_professional_weight
    if abs(total_weight - 1.0) > 1e-9:
        raise ValueError(f"Score weights must sum to 1.0, got {total_weight}")

    quality = (
        policy.activity_weight * activity.value
        + policy.behavioral_weight * behavioral.value
        + policy.socio_professional_weight * socio_professional.value
    )
    value = _clamp(100 - quality)
    return ScoreDetail(
        value,
        f"Weighted {policy.activity_weight:.2f}/{policy.behavioral_weight:.2f}/"
        f"{policy.socio_professional_weight:.2f} over activity {activity.value}, "
        f"behavioral {behavioral.value}, socio-professional {socio_professional.value}",
    )


def score_request(snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy) -> ScoreSet:
    """Main entry point: compute the four Score-360 components."""
    activity = score_activity(snapshot, params)
    behavioral = score_behavioral(snapshot, params, policy)
    socio_professional = score_socio_professional(snapshot, params, policy)
    risk = combine_risk(activity, behavioral, socio_professional, policy)

    return ScoreSet(
        activity=activity,
        behavioral=behavioral,
        socio_professional=socio_professional,
        risk=risk,
    )


class RuleBasedScoringSource:
    """Scoring source backed by the deterministic rule table"""

    async def score(self, snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy) -> ScoreSet:
        return score_request(snapshot, params, policy)
