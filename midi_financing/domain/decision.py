"""Decision policy - maps a composite risk score to a financing decision"""

from midi_financing.domain.models import Decision, ProductPolicy, RequestStatus


def risk_band(risk: int, policy: ProductPolicy) -> RequestStatus:
    """
    Band of the composite risk score.

    - risk < approve_below:  approved
    - risk > reject_above:   rejected
    - otherwise (inclusive): review
    """
    if risk < policy.approve_below:
        return RequestStatus.APPROVED
    if risk > policy.reject_above:
        return RequestStatus.REJECTED
    return RequestStatus.REVIEW


def decide(risk: int, requested_amount: int, policy: ProductPolicy, has_history: bool) -> Decision:
    """
    Decide a request from its risk score, amount and history presence.

    Rules:
    - Low risk is only auto-approved within the product's amount ceiling
      and with a non-empty history; otherwise it is sent to review
    - High risk is rejected
    - No history is never better than review, and is rejected outright
      when combined with an amount above the ceiling
    - An amount exactly at the ceiling does not exceed it
    """
    band = risk_band(risk, policy)
    exceeds_ceiling = requested_amount > policy.amount_ceiling

    if band == RequestStatus.REJECTED:
        return Decision(
            RequestStatus.REJECTED,
            is_final=True,
            reason=f"Status 'rejected': overall risk too high ({risk}/100).",
        )

    if not has_history:
        if exceeds_ceiling:
            return Decision(
                RequestStatus.REJECTED,
                is_final=True,
                reason=(
                    f"Status 'rejected': no transaction history and amount {requested_amount} "
                    f"exceeds the {policy.amount_ceiling} ceiling."
                ),
            )
        return Decision(
            RequestStatus.REVIEW,
            is_final=False,
            reason=f"Status 'review': no transaction history (risk {risk}/100), committee review required.",
        )

    if band == RequestStatus.APPROVED:
        if exceeds_ceiling:
            return Decision(
                RequestStatus.REVIEW,
                is_final=False,
                reason=(
                    f"Status 'review': low risk ({risk}/100) but amount {requested_amount} "
                    f"exceeds the {policy.amount_ceiling} ceiling."
                ),
            )
        return Decision(
            RequestStatus.APPROVED,
            is_final=True,
            reason=f"Status 'approved': low overall risk ({risk}/100) with a positive transaction history.",
        )

    return Decision(
        RequestStatus.REVIEW,
        is_final=False,
        reason=f"Status 'review': borderline risk ({risk}/100), committee review required.",
    )
