import asyncio
import logging
from functools import partial
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status

from tour_admin.api.listing import ListParams, delete_or_404, fetch_related, load_page
from tour_admin.api.schemas import PageResponse, ReviewDetail, User, parse_document
from tour_admin.core.context import get_settings, get_store
from tour_admin.core.pagination import ListSource, ValueSort
from tour_admin.core.security import get_current_admin
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore, SortDirection
from tour_admin.db.models import Collection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"], dependencies=[Depends(get_current_admin)])

REVIEWS = Collection.REVIEWS.value


async def attach_authors(store: DocumentStore, reviews: List[ReviewDetail]) -> List[ReviewDetail]:
    users = await asyncio.gather(
        *(fetch_related(store, Collection.USERS.value, review.user_id, User) for review in reviews)
    )
    for review, user in zip(reviews, users):
        review.user = user
    return reviews


def review_source(store: DocumentStore) -> ListSource:
    return ListSource(
        collection=REVIEWS,
        parse=partial(parse_document, ReviewDetail),
        search_text=lambda review: (review.comment, review.user.name if review.user else None),
        enrich=partial(attach_authors, store),
    )


@router.get("",
    response_model=PageResponse[ReviewDetail],
    responses={
        200: {"description": "One page of reviews with their authors"},
        400: {"description": "Malformed cursor or sort field"},
        500: {"description": "Database error"}
    },
    summary="List reviews",
    description="Page through reviews with their authors. rate_sort re-orders the whole list by rating."
)
async def list_reviews(
    params: ListParams = Depends(),
    tour_id: Optional[str] = None,
    article_id: Optional[str] = None,
    rate_sort: Optional[SortDirection] = None,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    filters = {"tourId": tour_id, "articleId": article_id}
    by_rate = ValueSort(lambda review: review.rate, rate_sort) if rate_sort else None
    return await load_page(store, review_source(store), params, settings, filters, by_rate)


@router.delete("/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Review not found"}},
    summary="Delete a review",
    description="Removes the review only; the reviewed tour's rating is left as stored"
)
async def delete_review(review_id: str, store: DocumentStore = Depends(get_store)):
    await delete_or_404(store, REVIEWS, review_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
