"""Prometheus metrics for monitoring decision outcomes, scoring and ledger performance"""

from prometheus_client import Counter, Histogram

# Decision metrics
decision_counter = Counter(
    "midi_financing_decision_total",
    "Total financing decisions made by the engine",
    ["product_type", "outcome"],  # approved | review | rejected
)

manual_review_counter = Counter(
    "midi_financing_manual_review_total",
    "Manual decisions recorded by reviewers",
    ["outcome"],  # approved | rejected
)

requested_amount_bucket_counter = Counter(
    "midi_financing_requested_amount_bucket",
    "Requested amounts by bucket",
    ["product_type", "bucket"],  # 0-50k, 50k-100k, 100k-300k, 300k+
)

# Scoring source metrics
scoring_latency_histogram = Histogram(
    "scoring_latency_seconds",
    "Scoring source response time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

scoring_failure_counter = Counter(
    "scoring_failures_total",
    "Failed or timed out scoring calls",
)

# Ledger metrics
ledger_latency_histogram = Histogram(
    "ledger_credit_latency_seconds",
    "Approval credit posting time",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ledger_failure_counter = Counter(
    "ledger_credit_failures_total",
    "Failed approval credit attempts",
)

repayment_counter = Counter(
    "midi_financing_repayment_total",
    "Repayments applied",
    ["outcome"],  # applied | insufficient_funds | excessive
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(product_type: str, outcome: str, requested_amount: int) -> None:
    """Record decision metrics for monitoring approval rates and amount distribution"""
    decision_counter.labels(product_type=product_type, outcome=outcome).inc()

    if requested_amount <= 50_000:
        bucket = "0-50k"
    elif requested_amount <= 100_000:
        bucket = "50k-100k"
    elif requested_amount <= 300_000:
        bucket = "100k-300k"
    else:
        bucket = "300k+"

    requested_amount_bucket_counter.labels(product_type=product_type, bucket=bucket).inc()
