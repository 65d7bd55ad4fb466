from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from prtask_core.providers.base import BaseAnalyzer, TruncatedResponseError


class OpenAIAnalyzer(BaseAnalyzer):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.0

    def __init__(self, api_key: str, model: str | None = None, timeout: float = 120.0):
        if _OpenAI is None:
            raise ImportError("Install the OpenAI SDK to use this provider: pip install 'prtask[openai]'")
        self.model = model or self.MODEL
        self.client = _OpenAI(api_key=api_key, timeout=timeout)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise TruncatedResponseError(self.model, self.MAX_TOKENS)
        return choice.message.content or ""
