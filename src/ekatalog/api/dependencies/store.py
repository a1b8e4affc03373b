from functools import lru_cache

from fastapi import Depends

from ekatalog import config
from ekatalog.repositories.membership_repository import MembershipRepository
from ekatalog.storage.record_store import RecordStore


@lru_cache(maxsize=1)
def _default_store() -> RecordStore:
    return RecordStore(config.DATA_DIR)


def get_record_store() -> RecordStore:
    """Shared Record Store; tests override this dependency with a tmp_path store."""
    return _default_store()


def get_membership_repository(store: RecordStore = Depends(get_record_store)) -> MembershipRepository:
    return MembershipRepository(store)
