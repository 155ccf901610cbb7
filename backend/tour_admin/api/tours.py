"""
Tour management endpoints
"""

import logging
from functools import partial
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import ValidationError

from tour_admin.api.listing import ListParams, delete_or_404, get_or_404, load_page
from tour_admin.api.schemas import (
    PageResponse, Tour, TourForm, TourWrite, leading_number, parse_document, to_document,
)
from tour_admin.core.context import get_settings, get_store, get_translator
from tour_admin.core.pagination import ListSource, ValueSort
from tour_admin.core.security import get_current_admin
from tour_admin.core.settings import Settings
from tour_admin.core.translation import TOUR_SHAPE, TranslationError, TranslationPipeline
from tour_admin.db.crud import DocumentStore, SortDirection
from tour_admin.db.models import Collection, TourStyle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tours", tags=["tours"], dependencies=[Depends(get_current_admin)])

TOURS = Collection.TOURS.value

tour_source = ListSource(
    collection=TOURS,
    parse=partial(parse_document, Tour),
    search_text=lambda tour: (tour.title.en, tour.title.uz, tour.title.ru),
)


@router.get("",
    response_model=PageResponse[Tour],
    responses={
        200: {"description": "One page of tours"},
        400: {"description": "Malformed cursor or sort field"},
        500: {"description": "Database error"}
    },
    summary="List tours",
    description="Page through tours by creation date, optionally filtered by style or title text. "
                "price_sort re-orders the whole list by the number the price string starts with."
)
async def list_tours(
    params: ListParams = Depends(),
    style: Optional[TourStyle] = None,
    price_sort: Optional[SortDirection] = None,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    by_price = ValueSort(lambda tour: leading_number(tour.price), price_sort) if price_sort else None
    return await load_page(store, tour_source, params, settings, {"style": style}, by_price)


@router.get("/{tour_id}",
    response_model=Tour,
    responses={404: {"description": "Tour not found"}},
    summary="Get a tour"
)
async def get_tour(tour_id: str, store: DocumentStore = Depends(get_store)):
    return await get_or_404(store, TOURS, tour_id, Tour)


@router.post("",
    response_model=Tour,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Tour translated and created"},
        422: {"description": "Form validation failed"},
        502: {"description": "Translation failed, nothing was saved"}
    },
    summary="Create a tour",
    description="Translate every text field of the form into all supported languages, then store the tour"
)
async def create_tour(
    form: TourForm,
    store: DocumentStore = Depends(get_store),
    translator: TranslationPipeline = Depends(get_translator),
):
    try:
        translated = await translator.translate_structure(
            form.model_dump(mode="json", by_alias=True), TOUR_SHAPE
        )
    except TranslationError as e:
        logger.error(f"Tour translation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Translation failed, the tour was not saved"
        )

    try:
        tour = TourWrite.model_validate(translated)
    except ValidationError as e:
        logger.error(f"Translated tour failed validation: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Translated tour is invalid"
        )

    snapshot = await store.add(TOURS, to_document(tour))
    logger.info(f"Created tour {snapshot.id}")
    return parse_document(Tour, snapshot)


@router.put("/{tour_id}",
    response_model=Tour,
    responses={
        200: {"description": "Tour overwritten"},
        404: {"description": "Tour not found"}
    },
    summary="Replace a tour",
    description="Overwrite the whole tour with an edited multi-language payload"
)
async def update_tour(
    tour_id: str,
    tour: TourWrite,
    store: DocumentStore = Depends(get_store),
):
    if await store.get(TOURS, tour_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")

    snapshot = await store.set(TOURS, tour_id, to_document(tour))
    logger.info(f"Updated tour {tour_id}")
    return parse_document(Tour, snapshot)


@router.delete("/{tour_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Tour not found"}},
    summary="Delete a tour"
)
async def delete_tour(tour_id: str, store: DocumentStore = Depends(get_store)):
    await delete_or_404(store, TOURS, tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
