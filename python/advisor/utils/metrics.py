# Prometheus metrics for the advisory core
# Registered once here so services share collectors and reloads don't double-register

from prometheus_client import REGISTRY, Counter, Histogram


def _existing(name: str):
    collectors = getattr(REGISTRY, "_names_to_collectors", {})
    return collectors.get(name) or collectors.get(f"{name}_total")


def _counter(name: str, doc: str, labels=()):
    found = _existing(name)
    if found is not None:
        return found
    return Counter(name, doc, list(labels))


def _histogram(name: str, doc: str, labels=(), buckets=Histogram.DEFAULT_BUCKETS):
    found = _existing(name)
    if found is not None:
        return found
    return Histogram(name, doc, list(labels), buckets=buckets)


inference_requests_total = _counter(
    "advisor_inference_requests_total", "Inference calls by mode and outcome", ["mode", "outcome"]
)
inference_latency_seconds = _histogram(
    "advisor_inference_latency_seconds", "Non-streaming inference latency",
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300, 480),
)
search_requests_total = _counter(
    "advisor_search_requests_total", "Web search calls by outcome", ["outcome"]
)
sse_events_sent = _counter(
    "advisor_sse_events_sent_total", "SSE events sent", ["event_type"]
)
sse_disconnections_total = _counter(
    "advisor_sse_disconnections_total", "Chat streams closed by the client"
)
sse_stream_duration = _histogram(
    "advisor_sse_stream_duration_seconds", "Chat stream duration",
    buckets=(1, 5, 10, 30, 60, 300, 600),
)
generations_total = _counter(
    "advisor_generations_total", "Generation pipeline runs", ["pipeline", "outcome"]
)
scholarship_persist_failures_total = _counter(
    "advisor_scholarship_persist_failures_total", "Scholarship rows that failed to persist"
)
http_requests_total = _counter(
    "advisor_http_requests_total", "HTTP requests by method, route template, and status",
    ["method", "route", "status"],
)
