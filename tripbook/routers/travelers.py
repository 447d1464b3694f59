from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..errors import TravelerNotFound
from ..models.traveler import TravelerProfile
from ..schemas.traveler import TravelerProfileCreate, TravelerProfileResponse
from ..utils.dependencies import Account, get_clock, get_current_account

router = APIRouter(prefix="/api/travelers", tags=["Saved travelers"])


@router.post("", response_model=TravelerProfileResponse, status_code=status.HTTP_201_CREATED)
def create_traveler(
    data: TravelerProfileCreate,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    clock=Depends(get_clock),
):
    now = clock()
    values = data.model_dump()
    values["gender"] = data.gender.value
    values["email"] = str(data.email) if data.email else None
    if values.get("passport_issuing_country"):
        values["passport_issuing_country"] = values["passport_issuing_country"].upper()
    profile = TravelerProfile(account_id=account.id, created_at=now, updated_at=now, **values)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@router.get("", response_model=List[TravelerProfileResponse])
def list_travelers(
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
):
    return (
        db.query(TravelerProfile)
        .filter(
            TravelerProfile.account_id == account.id,
            TravelerProfile.is_deleted == False,  # noqa: E712
        )
        .order_by(TravelerProfile.created_at.asc())
        .all()
    )


@router.delete("/{traveler_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_traveler(
    traveler_id: str,
    db: Session = Depends(get_db),
    account: Account = Depends(get_current_account),
    clock=Depends(get_clock),
):
    """Soft delete; drafts that still reference the profile reject new extras for it"""
    profile = db.query(TravelerProfile).filter(
        TravelerProfile.id == traveler_id,
        TravelerProfile.account_id == account.id,
        TravelerProfile.is_deleted == False,  # noqa: E712
    ).first()
    if not profile:
        raise TravelerNotFound(traveler_profile_id=traveler_id)

    profile.is_deleted = True
    profile.deleted_at = clock()
    db.commit()
