from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID

from app.db.session import get_db
from app.core.dependencies import get_current_user, get_entitlement_service
from app.models.content import Adventure, AdventureCategory
from app.models.user import User
from app.services.entitlements import EntitlementAction, EntitlementService


router = APIRouter(prefix="/adventures", tags=["Adventures"])


# ==================== Schemas ====================

class AdventureCreate(BaseModel):
    """New group adventure."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: AdventureCategory = AdventureCategory.OTHER
    location_name: Optional[str] = Field(None, max_length=200)
    starts_at: datetime
    max_participants: int = Field(6, ge=2, le=50)


class AdventureResponse(BaseModel):
    id: UUID
    creator_id: UUID
    title: str
    description: str
    category: str
    location_name: Optional[str]
    starts_at: datetime
    max_participants: int
    created_at: datetime

    class Config:
        from_attributes = True


# ==================== Endpoints ====================

@router.post("", response_model=AdventureResponse, status_code=status.HTTP_201_CREATED)
async def create_adventure(
    adventure_data: AdventureCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """Create a group adventure. Free users get one per calendar month."""
    await entitlements.require(current_user, EntitlementAction.CREATE_ADVENTURE)

    adventure = Adventure(
        creator_id=current_user.id,
        title=adventure_data.title,
        description=adventure_data.description,
        category=adventure_data.category.value,
        location_name=adventure_data.location_name,
        starts_at=adventure_data.starts_at,
        max_participants=adventure_data.max_participants,
    )
    db.add(adventure)
    await db.commit()

    return adventure
