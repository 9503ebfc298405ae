import httpx
import logging
from typing import Dict, List, Optional
from app.core.config import settings
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


def resolve_model(model_name: Optional[str]) -> str:
    """Return the requested model if allow-listed, otherwise the baseline model"""
    if model_name in settings.gemini_allowed_models:
        return model_name
    return settings.gemini_default_model


class GeminiClient:
    """Thin client for the Generative Language REST API.

    The API key is supplied per call because each user brings their own key.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url or settings.gemini_base_url
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.llm_timeout_s,
            transport=transport
        )

    async def generate_content(
        self,
        api_key: str,
        model: str,
        contents: List[Dict],
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> str:
        """Send a generateContent request and return the concatenated text"""

        payload: Dict = {"contents": contents}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if temperature is not None:
            payload["generationConfig"] = {"temperature": temperature}

        try:
            logger.info(f"Sending generateContent request for model {model}")
            response = await self.client.post(
                f"/models/{model}:generateContent",
                params={"key": api_key},
                json=payload
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from generative model: {e.response.status_code}")
            raise ExternalServiceError(_error_message(e.response)) from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error calling generative model: {e}")
            raise ExternalServiceError(f"Generative model request failed: {e}") from e
        except ValueError as e:
            raise ExternalServiceError("Generative model returned a non-JSON body") from e

        candidates = result.get("candidates") or []
        if not candidates:
            reason = (result.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise ExternalServiceError(f"Generative model returned no content ({reason})")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        logger.info("Generative model call successful")
        return text

    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        """Single-turn prompt in, text out"""
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        return await self.generate_content(api_key, model, contents)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"Generative model error {response.status_code}"


# Global client instance
llm_client = GeminiClient()


def get_llm_client() -> GeminiClient:
    """Dependency hook so tests can swap in a fake model"""
    return llm_client
