from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP requests answered with a 5xx status",
    ["method", "path", "status"],
)

SYNC_RUNS = Counter(
    "billing_sync_runs_total",
    "Customer state syncs by outcome",
    ["outcome"],
)
SYNC_LATENCY = Histogram(
    "billing_sync_duration_seconds",
    "Customer state sync duration in seconds",
)
SYNC_RECORDS = Counter(
    "billing_sync_records_total",
    "Relational records upserted by sync",
    ["kind"],
)
WEBHOOK_EVENTS = Counter(
    "billing_webhook_events_total",
    "Provider webhook deliveries by outcome",
    ["outcome", "reason"],
)
SNAPSHOT_READS = Counter(
    "billing_snapshot_reads_total",
    "Snapshot cache reads by result",
    ["result"],
)
