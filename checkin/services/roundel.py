"""Roundel reader backed by an OpenAI-compatible vision model"""

import json
import logging
import re
from typing import Any

import httpx

from ..exceptions import OcrMalformedResponse, OcrTimeout, OcrUnavailable
from .station_matcher import CatalogueStation, CatalogueStationMatcher, StationMatcher
from .status_decision import OcrResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert at detecting London Underground roundels and extracting station names from them.

A London Underground roundel is a circular red logo with a blue horizontal bar across the middle containing white text with the station name.

Analyze the image and respond with a JSON object containing:
- "has_roundel": true/false (whether you can clearly see a London Underground roundel)
- "station_name": string or null (the exact station name text from the blue bar, or null if unreadable)
- "confidence": 0.0-1.0 (your confidence in the station name reading)

Be strict about roundel detection - it must be clearly visible and identifiable as a London Underground roundel."""

USER_PROMPT = "Please analyze this image for a London Underground roundel and extract the station name."


class RoundelVerifier:
    """Reads the station name off a roundel photo.

    Transport problems and unusable answers raise ``OcrError`` subclasses.
    A photo that simply shows no roundel, or a name that matches no station,
    is a normal answer with ``success=False``.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o",
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 20.0,
        matcher: StationMatcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.matcher = matcher or CatalogueStationMatcher()
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _payload(self, image_data: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_data}},
                    ],
                },
            ],
            "max_tokens": 500,
            "temperature": 0.1,
        }

    async def _complete(self, image_data: str) -> str:
        if not self.enabled:
            raise OcrUnavailable("Vision model API key is not configured")

        url = f"{self.api_base}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=self._payload(image_data))
        except httpx.TimeoutException as e:
            raise OcrTimeout(f"Vision model timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise OcrUnavailable(f"Vision model request failed: {e}") from e

        if response.status_code != 200:
            # Upstream bodies may echo the request; log the status only
            logger.error(f"🧠 Vision model error - status {response.status_code}")
            raise OcrUnavailable(f"Vision model returned {response.status_code}")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OcrMalformedResponse("Unexpected completion envelope") from e

    @staticmethod
    def parse_answer(content: str) -> dict[str, Any]:
        """Extract the JSON object from the model's answer"""
        match = re.search(r"\{.*\}", content or "", re.DOTALL)
        if not match:
            raise OcrMalformedResponse("No JSON found in model answer")
        try:
            answer = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise OcrMalformedResponse("Model answer is not valid JSON") from e
        if not isinstance(answer, dict) or not isinstance(answer.get("has_roundel"), bool):
            raise OcrMalformedResponse("Model answer is missing has_roundel")
        return answer

    async def verify_image(self, image_data: str, stations: list[CatalogueStation]) -> OcrResult:
        """Read a roundel photo and match it against ``stations``.

        Raises:
            OcrTimeout, OcrUnavailable, OcrMalformedResponse
        """
        content = await self._complete(image_data)
        answer = self.parse_answer(content)

        if not answer["has_roundel"]:
            logger.info("🧠 No roundel detected")
            return OcrResult(success=False, error="no_roundel")

        raw = (answer.get("station_name") or "").strip()
        if not raw:
            logger.info("🧠 Roundel detected but name not readable")
            return OcrResult(success=False, error="name_not_readable")

        try:
            confidence = float(answer.get("confidence", 0.0))
        except (TypeError, ValueError) as e:
            raise OcrMalformedResponse("Confidence is not a number") from e
        confidence = max(0.0, min(1.0, confidence))

        station = self.matcher.match(raw, stations)
        if station is None:
            logger.info(f"🧠 No station match for '{raw}'")
            return OcrResult(
                success=False,
                confidence=confidence,
                station_text_raw=raw,
                error="name_not_recognized",
            )

        logger.info(f"🧠 Roundel read '{raw}' matched {station.name} ({confidence:.2f})")
        return OcrResult(
            success=True,
            confidence=confidence,
            station_text_raw=raw,
            matched_station_id=station.id,
        )
