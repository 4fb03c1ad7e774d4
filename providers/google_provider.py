"""Gemini via the google-genai SDK."""

from __future__ import annotations

from typing import Any

from providers.base import AIProvider


class GoogleProvider(AIProvider):

    def _create_client(self) -> Any:
        from google import genai

        return genai.Client(api_key=self.api_key)

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        response = self.client().models.generate_content(
            model=self.config.model,
            contents=user_prompt,
            config={
                "system_instruction": system_prompt,
                "temperature": self.config.temperature,
                "max_output_tokens": self.config.max_tokens,
            },
        )
        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", 0) if usage else 0
        return response.text or "", tokens or 0
