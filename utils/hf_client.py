"""Hugging Face Inference chat client."""
from __future__ import annotations

import logging
import os
import time
from typing import Optional

from huggingface_hub import InferenceClient

log = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a planning assistant for a creative canvas. Follow the output format exactly."
MAX_TOKENS = 2048
TEMPERATURE = 0.2


class HFClient:
    """Prompt-in, text-out access to a chat model on the Inference API."""

    def __init__(self, model: str, token: Optional[str] = None, max_retries: int = 3, retry_delay: float = 2):
        self.token = token or os.environ.get("HF_TOKEN")
        if not self.token:
            raise ValueError("HF_TOKEN environment variable is not set.")
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = InferenceClient(token=self.token)

    def complete(self, prompt: str, system_prompt: str = SYSTEM_PROMPT) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        for attempt in range(self.max_retries):
            try:
                response = self.client.chat_completion(
                    model=self.model,
                    messages=messages,
                    max_tokens=MAX_TOKENS,
                    temperature=TEMPERATURE,
                )
                return response.choices[0].message.content or ""
            except Exception as e:
                if attempt == self.max_retries - 1:
                    raise RuntimeError(f"{self.model} failed after {self.max_retries} attempts: {e}")
                log.warning("HF attempt %d on %s failed: %s", attempt + 1, self.model, e)
                time.sleep(self.retry_delay * (2 ** attempt))
        return ""
