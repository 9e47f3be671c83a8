"""Remote scoring HTTP client for model-backed risk scores"""

from typing import Any, Dict, Optional

import httpx

from midi_financing.config import settings
from midi_financing.domain.exceptions import ScoringUnavailable
from midi_financing.domain.models import (
    ApplicantSnapshot,
    FinancingParams,
    IslamicFinancing,
    ProductPolicy,
    PurchaseCredit,
    ScoreDetail,
    ScoreSet,
)
from midi_financing.infrastructure.observability.metrics import scoring_latency_histogram

SCORE_NAMES = ("activity", "behavioral", "socio_professional", "risk")


def build_scoring_payload(snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy) -> Dict[str, Any]:
    """Serialize the frozen snapshot and request parameters for the scoring endpoint"""
    product = params.product
    payload: Dict[str, Any] = {
        "product_type": params.product_type.value,
        "requested_amount": params.requested_amount,
        "down_payment": params.down_payment,
        "installments_count": params.installments_count,
        "repayment_frequency": params.repayment_frequency.value,
        "margin_rate_per_period": str(params.margin_rate_per_period),
        "amount_ceiling": policy.amount_ceiling,
        "high_amount_threshold": policy.high_amount_threshold,
        "snapshot": {
            "current_balance": snapshot.current_balance,
            "alias_is_personalized": snapshot.alias_is_personalized,
            "recent_transactions": [
                {"amount": t.amount, "type": t.type, "date": t.date.isoformat(), "counterparty": t.counterparty}
                for t in snapshot.recent_transactions
            ],
        },
    }
    if isinstance(product, PurchaseCredit):
        payload["counterparty_id"] = product.counterparty_id
    elif isinstance(product, IslamicFinancing):
        payload["purpose"] = product.purpose
        payload["financing_type"] = product.financing_type
    return payload


def _parse_detail(data: Dict[str, Any], name: str) -> ScoreDetail:
    entry = data[name]
    value = entry["value"]
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ValueError(f"{name} score out of range: {value!r}")
    return ScoreDetail(value=value, explanation=str(entry.get("explanation", "")))


class RemoteScoringClient:
    """Client for an external scoring (inference) endpoint"""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or settings.scoring_api_url
        self.timeout = timeout or settings.scoring_timeout_seconds

    async def score(self, snapshot: ApplicantSnapshot, params: FinancingParams, policy: ProductPolicy) -> ScoreSet:
        """
        Fetch the three sub-scores and the composite risk for a request.

        Raises:
            ScoringUnavailable: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                with scoring_latency_histogram.time():
                    response = await client.post(self.url, json=build_scoring_payload(snapshot, params, policy))
                    response.raise_for_status()
                    data = response.json()

                scores = {name: _parse_detail(data, name) for name in SCORE_NAMES}
                return ScoreSet(**scores)

            except httpx.TimeoutException as e:
                raise ScoringUnavailable(f"Scoring API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ScoringUnavailable(f"Scoring API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ScoringUnavailable(f"Scoring API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise ScoringUnavailable(f"Invalid scoring response: {e}") from e
