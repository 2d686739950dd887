"""
Prometheus metrics for the quoting platform.
"""

from prometheus_client import Counter, Gauge, Histogram


# ── Pricing ──────────────────────────────────────────────────
pricing_recalculations_total = Counter(
    "pricing_recalculations_total",
    "Total quote repricings",
    ["reason"],
)

quote_total_amount = Histogram(
    "quote_total_amount",
    "Distribution of computed quote totals",
    buckets=[50, 100, 250, 500, 1000, 2500, 5000],
)

# ── HITL Review ──────────────────────────────────────────────
hitl_reviews_opened_total = Counter(
    "hitl_reviews_opened_total",
    "Total HITL reviews opened",
    ["trigger"],
)

hitl_claims_total = Counter(
    "hitl_claims_total",
    "Claim attempts by outcome",
    ["outcome"],
)

hitl_transitions_total = Counter(
    "hitl_transitions_total",
    "Review state transitions",
    ["to_status"],
)

review_queue_depth = Gauge(
    "review_queue_depth",
    "Current number of reviews in the queue",
    ["status"],
)

# ── Analysis Watchdog ────────────────────────────────────────
watchdog_polls_total = Counter(
    "watchdog_polls_total",
    "Total analysis status polls",
)

watchdog_outcomes_total = Counter(
    "watchdog_outcomes_total",
    "Watchdog sessions by final outcome",
    ["outcome"],
)

# ── Integrations ─────────────────────────────────────────────
notification_failures_total = Counter(
    "notification_failures_total",
    "Notifications that could not be delivered",
    ["template"],
)

external_api_latency_seconds = Histogram(
    "external_api_latency_seconds",
    "Latency of external collaborator calls",
    ["service", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)
