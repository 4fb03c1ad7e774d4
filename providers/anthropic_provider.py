"""Claude via the Anthropic Messages API."""

from __future__ import annotations

from typing import Any

from providers.base import AIProvider


class AnthropicProvider(AIProvider):

    def _create_client(self) -> Any:
        from anthropic import Anthropic

        return Anthropic(
            api_key=self.api_key,
            timeout=self.timeout_seconds or None,
            max_retries=0,
        )

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        response = self.client().messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", "text") == "text"
        )
        usage = response.usage
        tokens = (usage.input_tokens or 0) + (usage.output_tokens or 0) if usage else 0
        return text, tokens
