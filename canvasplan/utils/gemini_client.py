"""Gemini text completion client."""
from __future__ import annotations

import logging
import time

from google import genai

from ..config import DEFAULT_GEMINI_MODEL, MAX_RETRIES, RETRY_DELAY

log = logging.getLogger(__name__)


class GeminiClient:
    """Plain prompt-in, text-out access to a Gemini model."""

    def __init__(self, api_key: str, model: str = DEFAULT_GEMINI_MODEL):
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not set.")
        self.model = model
        self.client = genai.Client(api_key=api_key)

    def complete(self, prompt: str, max_retries: int = MAX_RETRIES) -> str:
        for attempt in range(max_retries):
            try:
                response = self.client.models.generate_content(model=self.model, contents=prompt)
                return response.text or ""
            except Exception as e:
                if attempt == max_retries - 1:
                    raise RuntimeError(f"Gemini completion failed after {max_retries} attempts: {e}")
                log.warning("Gemini attempt %d failed: %s", attempt + 1, e)
                time.sleep(RETRY_DELAY * (2 ** attempt))
        return ""
