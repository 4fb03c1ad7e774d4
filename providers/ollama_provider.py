"""
Local open-source models served by Ollama.

No credential: the backend is only registered when ``OLLAMA_ENABLED`` is set,
and JSON mode is always on since every arena prompt asks for a JSON object.
"""

from __future__ import annotations

from typing import Any

from providers.base import AIProvider


class OllamaProvider(AIProvider):

    @property
    def credential_name(self) -> str | None:
        return "OLLAMA_ENABLED"

    def is_available(self) -> bool:
        return True

    def _create_client(self) -> Any:
        import ollama as ollama_lib

        return ollama_lib.Client(
            host=self.config.base_url,
            timeout=self.timeout_seconds or None,
        )

    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        response = self.client().chat(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            format="json",
            options={
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        )
        content = response["message"]["content"]
        tokens = (response.get("prompt_eval_count") or 0) + (response.get("eval_count") or 0)
        return content or "", tokens
