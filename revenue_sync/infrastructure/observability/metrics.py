"""Prometheus metrics for sync throughput, anomaly rates, report outcomes and gateway performance"""

from prometheus_client import Counter, Histogram

from revenue_sync.domain.models import SyncResult

# Sync metrics
sync_runs_counter = Counter(
    "revenue_sync_runs_total",
    "Total bank account sync runs",
    ["status"],  # completed | failed
)

transactions_ingested_counter = Counter(
    "revenue_sync_transactions_total",
    "Gateway transactions processed by outcome",
    ["outcome"],  # inserted | updated | skipped
)

low_confidence_match_counter = Counter(
    "revenue_sync_low_confidence_matches_total",
    "Fallback dedup matches routed to manual review",
)

# Anomaly metrics
anomaly_counter = Counter(
    "revenue_sync_anomalies_total",
    "Anomalies detected by severity",
    ["severity"],  # low | medium | high | critical
)

# Report metrics
report_created_counter = Counter(
    "revenue_sync_reports_created_total",
    "Monthly revenue reports created",
    ["status"],  # auto_verified | pending_review
)

report_verification_counter = Counter(
    "revenue_sync_report_verifications_total",
    "Revenue report verifications by resulting status",
    ["status"],  # verified | rejected
)

# Bank API metrics
bank_fetch_latency_histogram = Histogram(
    "bank_fetch_latency_seconds",
    "Banking gateway response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

bank_fetch_failures_counter = Counter(
    "bank_fetch_failures_total",
    "Failed bank API calls",
)


def record_sync_result(result: SyncResult) -> None:
    """Record sync metrics for monitoring reconciliation health"""
    sync_runs_counter.labels(status=result.status.value).inc()

    if result.transactions_inserted:
        transactions_ingested_counter.labels(outcome="inserted").inc(result.transactions_inserted)
    if result.transactions_updated:
        transactions_ingested_counter.labels(outcome="updated").inc(result.transactions_updated)
    if result.transactions_skipped:
        transactions_ingested_counter.labels(outcome="skipped").inc(result.transactions_skipped)
