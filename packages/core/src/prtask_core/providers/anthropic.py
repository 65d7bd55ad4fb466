from __future__ import annotations

from prtask_core.providers.base import BaseAnalyzer, TruncatedResponseError


class AnthropicAnalyzer(BaseAnalyzer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.0

    def __init__(self, api_key: str, model: str | None = None, timeout: float = 120.0):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prtask[anthropic]'"
            )
        self.model = model or self.MODEL
        self.client = Anthropic(api_key=api_key, timeout=timeout)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        if response.stop_reason == "max_tokens":
            raise TruncatedResponseError(self.model, self.MAX_TOKENS)
        return "".join(block.text for block in response.content if isinstance(block, TextBlock)).strip()
