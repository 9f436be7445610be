from fastapi import APIRouter, Depends

from app.api.dependencies import get_caller_id, get_content_generator
from app.models.schemas import RaffleImagesOut, RaffleImagesRequest, RaffleTextOut, RaffleTextRequest
from app.services.content import ContentGenerator

router = APIRouter(prefix="/content", tags=["content"])


@router.post("/raffle-text", response_model=RaffleTextOut)
def generate_raffle_text(
    payload: RaffleTextRequest,
    _: str = Depends(get_caller_id),
    generator: ContentGenerator = Depends(get_content_generator),
):
    return generator.generate_raffle_text(payload.prompt)


@router.post("/raffle-images", response_model=RaffleImagesOut)
def generate_raffle_images(
    payload: RaffleImagesRequest,
    _: str = Depends(get_caller_id),
    generator: ContentGenerator = Depends(get_content_generator),
):
    return generator.generate_raffle_images(payload.description, payload.name)
