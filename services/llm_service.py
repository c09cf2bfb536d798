# services/llm_service.py
import logging
from typing import Any, Dict

import requests

from config import LOGGER_NAME
from core.interfaces import ILLMService

logger = logging.getLogger(LOGGER_NAME)


def _failure(reason: str) -> Dict[str, Any]:
    return {"error": reason, "status": "error"}


class LLMService(ILLMService):
    """Client for an Ollama-compatible completion endpoint (POST {base_url}/api/generate)."""

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout: float = 60
    ):
        """
        Args:
            base_url: Root URL of the LLM server.
            model: Model tag to run.
            temperature: Sampling temperature.
            max_tokens: Upper bound on generated tokens (num_predict).
            timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def chat(self, prompt: str) -> Dict[str, Any]:
        """Blocking call; run it with asyncio.to_thread from async code."""
        if not prompt or not prompt.strip():
            logger.warning("LLM chat called with an empty prompt.")
            return _failure("Empty prompt provided")

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
        }

        try:
            logger.info(f"Sending prompt ({len(prompt)} chars) to LLM model '{self.model}'")
            response = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.Timeout:
            logger.error(f"LLM request timed out after {self.timeout} seconds.")
            return _failure("LLM request timed out")
        except requests.exceptions.ConnectionError:
            logger.error(f"Cannot connect to LLM at {self.base_url}. Is the service running?")
            return _failure("Cannot connect to LLM service")
        except requests.exceptions.HTTPError as e:
            logger.error(f"LLM service returned {e.response.status_code}: {e.response.text}")
            return _failure(f"LLM error: {e.response.status_code}")
        except ValueError as e:
            logger.error(f"LLM returned a non-JSON body: {e}")
            return _failure("Malformed response from LLM")

        result = body if isinstance(body, dict) else {}
        answer = (result.get("response") or "").strip()
        if not answer:
            logger.error("LLM response was empty or malformed.")
            return _failure("Empty response from LLM")

        return {"answer": answer, "status": "success"}
