from prometheus_client import Counter, Histogram
# Prometheus metrics definitions

# Scan pipeline
scan_requests_total = Counter(
    "scan_requests_total", "Total scan requests that reached detection"
)

# mock backend sleeps ~2s; buckets sized for a real model too
_scan_latency_buckets = (
    0.5,
    1.0,
    2.0,
    4.0,
    8.0,
    16.0,
)

scan_latency_seconds = Histogram(
    "scan_latency_seconds", "Detection latency", buckets=_scan_latency_buckets
)

# Requests rejected because the free daily quota is spent
quota_reject_total = Counter(
    "quota_reject_total", "Number of quota rejected scan requests"
)

# Completed scans that could not be charged
debit_fail_total = Counter(
    "debit_fail_total", "Number of scans whose usage debit failed"
)

# Payments
checkout_sessions_total = Counter(
    "checkout_sessions_total", "Checkout sessions created", ["plan"]
)

payment_fail_total = Counter(
    "payment_fail_total", "Total payment provider failures"
)

subscriptions_activated_total = Counter(
    "subscriptions_activated_total", "Subscriptions created from paid checkouts"
)

__all__ = [
    "scan_requests_total",
    "scan_latency_seconds",
    "quota_reject_total",
    "debit_fail_total",
    "checkout_sessions_total",
    "payment_fail_total",
    "subscriptions_activated_total",
]
