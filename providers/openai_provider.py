"""
OpenAI chat completions, and every backend that speaks the same protocol.

ChatGPT uses the default endpoint; DeepSeek, Grok (xAI), Kimi (Moonshot) and
Qwen (DashScope) differ only by ``base_url``, model name and key.
"""

from __future__ import annotations

from typing import Any

from providers.base import AIProvider


class OpenAIProvider(AIProvider):

    def _create_client(self) -> Any:
        from openai import OpenAI

        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "max_retries": 0,
        }
        if self.timeout_seconds > 0:
            kwargs["timeout"] = self.timeout_seconds
        if self.config.base_url:
            kwargs["base_url"] = self.config.base_url
        return OpenAI(**kwargs)

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        response = self.client().chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        content = response.choices[0].message.content if response.choices else ""
        tokens = response.usage.total_tokens if response.usage else 0
        return content or "", tokens or 0
