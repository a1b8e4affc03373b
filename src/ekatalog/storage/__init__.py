from .record_store import (
    EMPTY_REVISION,
    RecordStore,
    apply_create,
    apply_delete,
    apply_merge,
    max_id,
)

__all__ = [
    "EMPTY_REVISION",
    "RecordStore",
    "apply_create",
    "apply_delete",
    "apply_merge",
    "max_id",
]
