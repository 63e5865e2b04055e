from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID

from app.db.session import get_db
from app.core.dependencies import get_current_user, get_entitlement_service
from app.models.content import Post
from app.models.user import User
from app.services.entitlements import EntitlementAction, EntitlementService


router = APIRouter(prefix="/posts", tags=["Posts"])


# ==================== Schemas ====================

class PostCreate(BaseModel):
    """New feed post. Images are uploaded to blob storage beforehand."""
    content: str = Field(..., min_length=1, max_length=5000)
    image_url: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=200)


class PostResponse(BaseModel):
    id: UUID
    author_id: UUID
    content: str
    image_url: Optional[str]
    location: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# ==================== Endpoints ====================

@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    post_data: PostCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """Create a post. Free users can create a limited number of posts."""
    await entitlements.require(current_user, EntitlementAction.CREATE_POST)

    post = Post(
        author_id=current_user.id,
        content=post_data.content,
        image_url=post_data.image_url,
        location=post_data.location,
    )
    db.add(post)
    await db.commit()

    return post
