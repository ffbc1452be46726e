from prometheus_client import Counter, Histogram

qr_jobs_enqueued_total = Counter(
    "qrcoded_jobs_enqueued_total",
    "Number of QR generation jobs accepted into the queue"
)

qr_jobs_succeeded_total = Counter(
    "qrcoded_jobs_succeeded_total",
    "Number of QR generation jobs that produced a persisted record"
)

qr_jobs_failed_total = Counter(
    "qrcoded_jobs_failed_total",
    "Number of QR generation jobs that failed terminally",
    ["stage"],
)

qr_job_retries_total = Counter(
    "qrcoded_job_retries_total",
    "Number of retried pipeline stages",
    ["stage"],
)

qr_orphaned_uploads_total = Counter(
    "qrcoded_orphaned_uploads_total",
    "Uploaded images left in storage without a persisted record"
)

qr_activations_total = Counter(
    "qrcoded_activations_total",
    "Number of QR codes bound to an identity"
)

qr_stage_duration_seconds = Histogram(
    "qrcoded_stage_duration_seconds",
    "Duration of each generation pipeline stage",
    ["stage"],
)
