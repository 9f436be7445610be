from __future__ import annotations

import json
import logging
import random
import re
import time
from typing import Any, Callable, Optional, TypeVar

from openai import OpenAI
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from app.core.config import content_configured, settings
from app.core.errors import ValidationError
from app.models.schemas import MAX_IMAGES

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_INSTRUCTIONS = """You help raffle creators write compelling raffle details.
From the user's short prompt, write a raffle name, a concise and engaging
description, and clear and fair terms and conditions. The raffle has 100
numbered slots and one winning slot.
Reply with a single JSON object with the string keys "name", "description"
and "terms" and nothing else."""

IMAGE_PROMPT = """A high-quality, photorealistic picture of a raffle prize: "{prize}".
Good lighting and composition, clean commercial product photography style,
no text, watermarks or branding. Perspective {index} of {total}."""

FALLBACK_TERMS = (
    "The winner is the participant holding the winning slot on the finalization date. "
    "The prize must be claimed within 7 days. Participants must be 18 or older."
)


class ContentGenerationFailed(Exception):
    pass


class GeneratedText(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    terms: str = Field(..., min_length=1)


def _is_throttled(exc: Exception) -> bool:
    message = f"{exc.__class__.__name__} {exc}".lower()
    markers = ("429", "ratelimit", "rate limit", "timeout", "timed out")
    return any(marker in message for marker in markers)


def call_with_retries(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """Run ``fn`` up to ``retries`` times, backing off harder on 429s and timeouts."""
    last_exception: Optional[Exception] = None
    for attempt in range(retries):
        try:
            return fn()
        except Exception as exc:
            last_exception = exc
            if attempt + 1 == retries:
                break
            delay = base_delay * (2 ** attempt)
            if _is_throttled(exc):
                delay = random.uniform(delay * 2, delay * 3)
            logger.warning("Content attempt %s failed (%s); retrying in %.1fs", attempt + 1, exc, delay)
            sleep(delay)
    raise ContentGenerationFailed(f"All {retries} attempts failed") from last_exception


def _strip_fences(text: str) -> str:
    text = text.strip()
    match = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    return match.group(1) if match else text


def parse_raffle_text(raw: str) -> dict:
    try:
        data = json.loads(_strip_fences(raw))
        parsed = GeneratedText.model_validate(data)
    except (ValueError, SchemaError) as exc:
        raise ContentGenerationFailed("Model returned malformed raffle text") from exc
    return {
        "name": parsed.name.strip(),
        "description": parsed.description.strip(),
        "terms": parsed.terms.strip(),
    }


def fallback_text(prompt: str) -> dict:
    cleaned = " ".join(prompt.split())
    name = cleaned[:60].rstrip()
    if len(cleaned) > 60:
        name = f"{name}..."
    return {
        "name": f"Raffle: {name}",
        "description": cleaned,
        "terms": FALLBACK_TERMS,
        "generated": False,
    }


def placeholder_images(description: str, prefix: str = "") -> list[str]:
    seed = re.sub(r"[^a-z0-9]", "-", description.lower())[:20] or "raffle"
    return [
        f"https://picsum.photos/seed/{prefix}{seed}-{index}/800/600.jpg"
        for index in range(1, MAX_IMAGES + 1)
    ]


class ContentGenerator:
    """Raffle text and prize image generation with placeholder fallbacks.

    Every public method returns usable content; ``generated`` tells whether it
    came from the model or from the fallback.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        text_model: Optional[str] = None,
        image_model: Optional[str] = None,
        retries: int = 3,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self._client = client
        self.text_model = text_model or settings.content_text_model
        self.image_model = image_model or settings.content_image_model
        self.retries = retries
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None and content_configured():
            self._client = OpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.content_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def _retry(self, fn: Callable[[], T]) -> T:
        return call_with_retries(fn, retries=self.retries, sleep=self._sleep)

    def _invoke_text(self, prompt: str) -> str:
        resp = self.client.responses.create(
            model=self.text_model,
            input=[
                {"role": "developer", "content": TEXT_INSTRUCTIONS},
                {"role": "user", "content": prompt},
            ],
        )
        return (getattr(resp, "output_text", "") or "").strip()

    def generate_raffle_text(self, prompt: str) -> dict:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("Prompt is required")
        if self.client is None:
            logger.warning("Content generation is not configured; using fallback text")
            return fallback_text(prompt)
        try:
            text = self._retry(lambda: parse_raffle_text(self._invoke_text(prompt)))
        except ContentGenerationFailed:
            logger.warning("Raffle text generation failed; using fallback text", exc_info=True)
            return fallback_text(prompt)
        return {**text, "generated": True}

    def _invoke_image(self, prompt: str) -> Optional[str]:
        resp = self.client.images.generate(model=self.image_model, prompt=prompt, n=1, size="1024x1024")
        for item in getattr(resp, "data", None) or []:
            if getattr(item, "url", None):
                return item.url
            if getattr(item, "b64_json", None):
                return f"data:image/png;base64,{item.b64_json}"
        return None

    def generate_raffle_images(self, description: str, name: Optional[str] = None) -> dict:
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required")
        if self.client is None:
            logger.warning("Content generation is not configured; using placeholder images")
            return {"image_urls": placeholder_images(description), "generated": False}
        prize = f"{name.strip()}: {description}" if name and name.strip() else description
        image_urls: list[str] = []
        try:
            for index in range(1, MAX_IMAGES + 1):
                prompt = IMAGE_PROMPT.format(prize=prize, index=index, total=MAX_IMAGES)
                url = self._retry(lambda: self._invoke_image(prompt))
                if url:
                    image_urls.append(url)
        except ContentGenerationFailed:
            logger.warning("Prize image generation failed; using placeholders", exc_info=True)
        if not image_urls:
            return {"image_urls": placeholder_images(description, prefix="fallback-"), "generated": False}
        padding = placeholder_images(description)
        return {
            "image_urls": (image_urls + padding)[:MAX_IMAGES],
            "generated": True,
        }
