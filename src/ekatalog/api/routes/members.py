"""
API routes for company memberships.

Endpoints:
- GET /members - List member records (companies nested per user)
- GET /members/{user_id} - One user's member record
- POST /members - Create or merge a member record
- POST /members/action - Approve or reject one membership
- DELETE /members - Remove one membership (by branch) or all of a user's
"""
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from ekatalog.api.dependencies.store import get_membership_repository
from ekatalog.errors import ConflictError, NotFoundError, StorageIOError, ValidationError
from ekatalog.repositories.membership_repository import MembershipRepository

router = APIRouter(prefix="/members", tags=["members"])


# ==================== Request Models ====================

class MembershipActionRequest(BaseModel):
    """Approve or reject one of a user's memberships."""
    action: Optional[str] = None
    user_id: Optional[int] = None
    branch_id: Optional[int] = None
    company_name: Optional[str] = None
    admin_id: Optional[Union[int, str]] = None
    reject_reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "action": "reject",
                "user_id": 12,
                "branch_id": 3,
                "admin_id": 7,
                "reject_reason": "Dokumen tidak lengkap",
            }
        }


class MembershipDeleteRequest(BaseModel):
    user_id: Optional[int] = None
    branch_id: Optional[int] = None


# ==================== Helpers ====================

def _raise_http(e: Exception):
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, StorageIOError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="storage error")
    raise e


# ==================== Endpoints ====================

@router.get("", response_model=List[Dict[str, Any]])
def list_members(repo: MembershipRepository = Depends(get_membership_repository)):
    """Return every user record with its `companies` array."""
    return repo.records()


@router.get("/{user_id}", response_model=Dict[str, Any])
def get_member(user_id: int, repo: MembershipRepository = Depends(get_membership_repository)):
    try:
        return repo.get(user_id)
    except NotFoundError as e:
        _raise_http(e)


@router.post("", response_model=Dict[str, Any])
def upsert_member(payload: Dict[str, Any], repo: MembershipRepository = Depends(get_membership_repository)):
    """
    Create or merge a member record.

    Body: `{user_id?, user_name, is_phone_verified_otp?, companies: [...]}`,
    a single `company: {...}`, or company fields at top level. Companies are
    merged into existing ones by branch_id, then by company_name.
    """
    try:
        return repo.upsert_record(payload)
    except (ValidationError, NotFoundError, ConflictError, StorageIOError) as e:
        _raise_http(e)


@router.post("/action", response_model=Dict[str, Any])
def membership_action(
    request: MembershipActionRequest,
    repo: MembershipRepository = Depends(get_membership_repository),
):
    """
    Approve or reject a membership.

    `branch_id` is required when the user has more than one membership;
    `reject_reason` is required for reject.
    """
    if not request.action or request.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="missing action or user_id",
        )

    try:
        membership = repo.transition(
            user_id=request.user_id,
            branch_id=request.branch_id,
            action=request.action,
            admin_id=request.admin_id,
            reject_reason=request.reject_reason,
            company_name=request.company_name,
        )
    except (ValidationError, NotFoundError, ConflictError, StorageIOError) as e:
        _raise_http(e)

    return {"user_id": request.user_id, **membership.model_dump(mode="json")}


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def delete_member(
    request: MembershipDeleteRequest,
    repo: MembershipRepository = Depends(get_membership_repository),
):
    """Remove one membership by branch, or all of the user's when branch_id is omitted."""
    if request.user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing user_id")

    try:
        repo.delete(request.user_id, request.branch_id)
    except (ValidationError, NotFoundError, ConflictError, StorageIOError) as e:
        _raise_http(e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
