import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import openai

from app.core.config import settings
from app.core.exceptions import AnalysisTimeout
from app.utils.messages import get_message

logger = logging.getLogger("openai_service")

DISCLAIMER_RULE = (
    "IMPORTANT: Always include a disclaimer that you are an AI assistant and your recommendations "
    "are not a substitute for professional medical advice. The user should always consult a qualified doctor."
)

TEXT_SYSTEM_PROMPT = f"""
You are a highly advanced AI health consultant. Your task is to analyze medical test results provided by a user.

Your analysis must be comprehensive and holistic. You should consider all provided indicators and their interconnections.

Based on the analysis, you must provide a detailed list of recommendations to improve the user's physical and spiritual well-being. Explain how hormonal imbalances or other indicators can affect mood and mental state.

Your response should be structured, clear, and empathetic. Start with a summary of the findings, then provide actionable recommendations.

{DISCLAIMER_RULE}
"""

IMAGE_SYSTEM_PROMPT = f"""
You are a highly advanced AI health consultant. Your task is to analyze medical test results provided by a user in an image format.

Your analysis must be comprehensive and holistic. You should consider all provided indicators and their interconnections.

Based on the analysis, you must provide a detailed list of recommendations to improve the user's physical and spiritual well-being. Explain how hormonal imbalances or other indicators can affect mood and mental state.

Your response should be structured, clear, and empathetic. Start with a summary of the findings, then provide actionable recommendations.

{DISCLAIMER_RULE}
"""

@dataclass
class AnalysisResult:
    text: str
    degraded: bool = False
    model: Optional[str] = None

    def as_raw_payload(self) -> Dict[str, Any]:
        return {"response": self.text, "degraded": self.degraded, "model": self.model}

class OpenAIService:
    """
    Wraps the OpenAI chat completion API for medical test analysis.

    Both public methods always return an AnalysisResult with user-displayable
    text. Missing credentials, provider errors and timeouts are converted into
    localized fallback messages flagged as ``degraded``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        client: Optional[Any] = None
    ):
        self.model = model or settings.openai_model
        self.timeout = timeout if timeout is not None else settings.analysis_timeout
        retries = max_retries if max_retries is not None else settings.analysis_max_retries

        # The client retries 429/5xx/connection errors itself with exponential backoff
        if client is not None:
            self.client = client
        elif api_key:
            self.client = openai.AsyncOpenAI(api_key=api_key, timeout=self.timeout, max_retries=retries)
        else:
            self.client = None
            logger.warning("OPENAI_API_KEY is not configured, analysis requests will be answered with a notice")

    async def analyze_text(self, text: str, locale: Optional[str] = None) -> AnalysisResult:
        return await self._complete(
            system_prompt=TEXT_SYSTEM_PROMPT,
            user_content=text,
            failure_key="analysis_text_failed",
            locale=locale
        )

    async def analyze_image(
        self,
        image_url: str,
        prompt_text: Optional[str] = None,
        locale: Optional[str] = None
    ) -> AnalysisResult:
        user_content = [
            {"type": "text", "text": prompt_text or get_message("default_image_prompt", locale)},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]
        return await self._complete(
            system_prompt=IMAGE_SYSTEM_PROMPT,
            user_content=user_content,
            failure_key="analysis_image_failed",
            locale=locale
        )

    async def _complete(
        self,
        system_prompt: str,
        user_content: Union[str, List[Dict[str, Any]]],
        failure_key: str,
        locale: Optional[str]
    ) -> AnalysisResult:
        if not self.client:
            return AnalysisResult(text=get_message("analysis_not_configured", locale), degraded=True)

        try:
            content = await self._request(system_prompt, user_content)
        except AnalysisTimeout:
            logger.error(f"OpenAI request timed out after {self.timeout}s")
            return AnalysisResult(text=get_message(failure_key, locale), degraded=True, model=self.model)
        except Exception as e:
            logger.error(f"OpenAI API Error: {e}", exc_info=True)
            return AnalysisResult(text=get_message(failure_key, locale), degraded=True, model=self.model)

        if not content or not content.strip():
            logger.warning("OpenAI returned an empty completion")
            return AnalysisResult(text=get_message(failure_key, locale), degraded=True, model=self.model)
        return AnalysisResult(text=content.strip(), model=self.model)

    async def _request(self, system_prompt: str, user_content: Union[str, List[Dict[str, Any]]]) -> Optional[str]:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(model=self.model, messages=messages),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise AnalysisTimeout(f"no answer within {self.timeout}s") from e
        return response.choices[0].message.content
