import logging
import os
from typing import Optional

import backoff
import httpx
from dotenv import find_dotenv, load_dotenv

# Load .env file (walks up directories to find it)
load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)

# Groq API config
GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_GROQ_MODEL = "llama-3.1-8b-instant"

JSON_SYSTEM_PROMPT = "You reply with valid JSON only. Do not wrap in markdown."


def groq_api_key() -> str:
    return os.environ.get("GROQ_API_KEY", "")


def _is_client_error(e: Exception) -> bool:
    return isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500


class GroqClient:
    """
    Client for Groq's hosted Llama 3.1 API (OpenAI-compatible chat completions).
    """

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or groq_api_key()
        self.model = model or os.environ.get("GROQ_MODEL", DEFAULT_GROQ_MODEL)
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @backoff.on_exception(
        backoff.expo,
        (httpx.RequestError, httpx.HTTPStatusError),
        max_tries=2,
        giveup=_is_client_error,
    )
    async def _post(self, payload: dict) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(GROQ_API_URL, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    async def generate_json(
        self,
        prompt: str,
        max_tokens: int = 600,
        temperature: float = 0.1,
    ) -> Optional[str]:
        """
        Requests a JSON-object completion. Low temperature for consistent,
        factual responses. Returns None when the service cannot be reached.
        """
        logger.info("Sending request to Groq", extra={"model": self.model})

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": JSON_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            data = await self._post(payload)
            generated_text = data["choices"][0]["message"]["content"]
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.error("Error communicating with Groq: %s", e)
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Unexpected Groq response shape: %s", e)
            return None

        logger.info("Groq request successful", extra={"response_length": len(generated_text or "")})
        return generated_text
