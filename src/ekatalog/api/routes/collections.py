"""
Generic CRUD over the flat record collections (users, branches, categories,
products, items, member tiers, ...). Records are id-bearing JSON objects; no
merge or lifecycle rules apply here.
"""
from typing import Any, Dict, List

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Response, status

from ekatalog import config
from ekatalog.models import Branch, MemberTier, User
from ekatalog.api.dependencies.store import get_record_store
from ekatalog.errors import ConflictError, NotFoundError, StorageIOError, ValidationError
from ekatalog.storage.record_store import RecordStore

router = APIRouter(tags=["collections"])

# Collections whose new records must satisfy a model; the rest are free-form
RECORD_MODELS = {
    "users": User,
    "branches": Branch,
    "member_tiers": MemberTier,
}


def _known_collection(collection: str) -> str:
    if collection not in config.COLLECTIONS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown collection '{collection}'",
        )
    return collection


def _raise_http(e: Exception):
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="storage error")


@router.get("/{collection}", response_model=List[Dict[str, Any]])
def list_records(
    collection: str = Depends(_known_collection),
    store: RecordStore = Depends(get_record_store),
):
    return store.read(collection)


@router.get("/{collection}/{record_id}", response_model=Dict[str, Any])
def get_record(
    record_id: int,
    collection: str = Depends(_known_collection),
    store: RecordStore = Depends(get_record_store),
):
    try:
        return store.get(collection, record_id)
    except NotFoundError as e:
        _raise_http(e)


@router.post("/{collection}", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
def create_record(
    payload: Dict[str, Any],
    collection: str = Depends(_known_collection),
    store: RecordStore = Depends(get_record_store),
):
    """Store a new record; the id is always assigned here (max id + 1)."""
    payload.pop("id", None)

    model = RECORD_MODELS.get(collection)
    if model is not None:
        try:
            # placeholder id; the store assigns the real one
            model.model_validate({**payload, "id": 0})
        except pydantic.ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"invalid {collection} record: {e.errors()[0].get('msg')}",
            )

    try:
        return store.create(collection, payload)
    except (ConflictError, StorageIOError) as e:
        _raise_http(e)


@router.put("/{collection}", response_model=Dict[str, Any])
def update_record(
    payload: Dict[str, Any],
    collection: str = Depends(_known_collection),
    store: RecordStore = Depends(get_record_store),
):
    """Merge `payload` into the record with the same `id`."""
    try:
        return store.merge(collection, payload)
    except (ValidationError, NotFoundError, ConflictError, StorageIOError) as e:
        _raise_http(e)


@router.delete("/{collection}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record(
    payload: Dict[str, Any],
    collection: str = Depends(_known_collection),
    store: RecordStore = Depends(get_record_store),
):
    if payload.get("id") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing id")
    try:
        store.delete(collection, payload["id"])
    except (NotFoundError, ConflictError, StorageIOError) as e:
        _raise_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
