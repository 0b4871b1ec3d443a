"""
Review routes
"""
from fastapi import APIRouter, Depends, status

from ...application.services import ReviewService
from ...domain.models import UserProfile
from ...schemas import MessageResponse, ReviewCreate, ReviewListResponse, ReviewResponse
from ..dependencies import get_current_user, get_review_service


router = APIRouter(prefix="/api/v1", tags=["Reviews"])


@router.get("/hostels/{hostel_id}/reviews", response_model=ReviewListResponse)
async def list_reviews(
    hostel_id: str,
    review_service: ReviewService = Depends(get_review_service),
):
    """Newest reviews first"""
    return ReviewListResponse.from_view(await review_service.list_reviews(hostel_id))


@router.post("/hostels/{hostel_id}/reviews/more", response_model=ReviewListResponse)
async def load_more_reviews(
    hostel_id: str,
    review_service: ReviewService = Depends(get_review_service),
):
    """Append the next page of reviews"""
    return ReviewListResponse.from_view(await review_service.load_more(hostel_id))


@router.post(
    "/hostels/{hostel_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_review(
    hostel_id: str,
    data: ReviewCreate,
    user: UserProfile = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
):
    """
    Review a hostel

    - **rating**: 1-5
    - **comment**: 10-1000 characters
    """
    review = await review_service.add_review(
        hostel_id,
        user,
        rating=data.rating,
        comment=data.comment,
        date_stayed=data.date_stayed,
        duration=data.duration.value,
        room_type=data.room_type,
    )
    return ReviewResponse.model_validate(review)


@router.post("/reviews/{review_id}/helpful", response_model=MessageResponse)
async def mark_helpful(
    review_id: str,
    user: UserProfile = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
):
    """Count a helpful vote"""
    await review_service.mark_helpful(review_id)
    return MessageResponse(message="Thanks for your feedback")
