from __future__ import annotations

import logging
import os
from typing import Optional

from google import genai

from db import get_setting


logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gemini-2.0-flash"


class GeminiTextGenerator:
    """Callable that turns a prompt into reply text with the Gemini API."""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.model = model or get_setting("AGENCYCOMPASS_CHAT_MODEL", DEFAULT_CHAT_MODEL)
        self.api_key = api_key
        if not self.api_key:
            for name in ("GOOGLE_API_KEY", "GEMINI_API_KEY"):
                key = get_setting(name) or os.getenv(name)
                if key:
                    self.api_key = key
                    break
        if not self.api_key:
            raise RuntimeError("GOOGLE_API_KEY (or GEMINI_API_KEY) is required for the chat assistant.")
        self.client = genai.Client(api_key=self.api_key)

    def __call__(self, prompt: str) -> str:
        response = self.client.models.generate_content(model=self.model, contents=prompt)
        text = (response.text or "").strip()
        if not text:
            raise ValueError("Empty response from model")
        logger.debug("Generated %d characters with %s", len(text), self.model)
        return text
