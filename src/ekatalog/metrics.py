from prometheus_client import Counter

membership_transition_total = Counter(
    "ekatalog_membership_transition_total",
    "Number of membership approve/reject transitions applied",
    ["action"],
)

membership_upsert_total = Counter(
    "ekatalog_membership_upsert_total",
    "Number of membership upserts, split by whether an entry was merged or appended",
    ["outcome"],
)

store_write_conflict_total = Counter(
    "ekatalog_store_write_conflict_total",
    "Number of collection writes rejected because the revision changed",
    ["collection"],
)

sync_load_total = Counter(
    "ekatalog_sync_load_total",
    "Number of sync client loads, by the tier that served them",
    ["dataset", "source"],
)

sync_local_fallback_total = Counter(
    "ekatalog_sync_local_fallback_total",
    "Number of mutations applied optimistically to the local snapshot",
    ["dataset"],
)
