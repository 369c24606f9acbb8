"""
AI-assist resource: chat recommendations and haircut image analysis.

Talks to a separate microservice (AI_SERVICE_URL), not to the booking API.
"""

import logging
from typing import Optional

from ..core.config import Settings
from ..core.errors import ApiError, PreconditionError
from ..core.http import ApiClient
from ..models import ApiModel

logger = logging.getLogger(__name__)


class HaircutAnalysis(ApiModel):
    recommended_style: str
    confidence_level: str = ""
    analysis_report: str = ""


class AiClient:
    def __init__(self, settings: Settings, api: Optional[ApiClient] = None):
        self.api = api or ApiClient(settings, base_url=settings.ai_service_url)

    async def chat(self, message: str, context: Optional[str] = None) -> str:
        if not message or not message.strip():
            raise PreconditionError("El mensaje está vacío")
        body = {"userMessage": message.strip()}
        if context:
            body["recommendationContext"] = context
        data = await self.api.request(
            "POST",
            "/api/chat/ask",
            json=body,
            fallback_message="Error al comunicarse con la IA",
        )
        reply = data.get("reply") if isinstance(data, dict) else None
        if not isinstance(reply, str):
            raise ApiError("Error al comunicarse con la IA", payload=data)
        return reply

    async def analyze_haircut_image(
        self,
        filename: str,
        content: bytes,
        user_id: str = "anonymous",
        content_type: str = "image/jpeg",
    ) -> HaircutAnalysis:
        if not content:
            raise PreconditionError("La imagen está vacía")
        data = await self.api.request(
            "POST",
            "/api/haircut/analyze",
            files={"file": (filename, content, content_type)},
            data={"userId": user_id},
            fallback_message="Error al analizar la imagen",
        )
        logger.info(f"Analyzed haircut image {filename} for user {user_id}")
        return HaircutAnalysis.model_validate(data)

    async def aclose(self) -> None:
        await self.api.aclose()
