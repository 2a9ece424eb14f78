from __future__ import annotations

from prometheus_client import Counter

access_tokens_issued_total = Counter(
    "lecture_access_tokens_issued_total",
    "Signed lecture access tokens issued, by subject kind.",
    ["subject"],
)
entitlement_decisions_total = Counter(
    "lecture_entitlement_decisions_total",
    "Entitlement decisions taken for lecture recordings.",
    ["outcome", "reason"],
)
stream_responses_total = Counter(
    "lecture_stream_responses_total",
    "Lecture stream responses, by HTTP status.",
    ["status"],
)
demo_grants_total = Counter(
    "demo_access_grants_total",
    "Demo access grants written to the ledger.",
    ["source", "access_type"],
)
