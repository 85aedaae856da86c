"""Anthropic text generation with retry and usage logging."""

from __future__ import annotations

import json
import re
from typing import Any

from anthropic import APIConnectionError, AsyncAnthropic

from cadence.llm.base import T
from cadence.retry import is_transient_error, with_retry
from cadence.usage.ledger import UsageLedger

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _should_retry(error: BaseException) -> bool:
    # APITimeoutError is a subclass
    return isinstance(error, APIConnectionError) or is_transient_error(error)


class AnthropicProvider:
    """Anthropic chat completion with optional structured (JSON) output.

    Every call goes through ``with_retry`` and, when a ledger is given, is
    recorded with its token counts.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        *,
        ledger: UsageLedger | None = None,
        retry: dict[str, Any] | None = None,
        client: AsyncAnthropic | None = None,
    ):
        self._client = client or AsyncAnthropic(api_key=api_key)
        self._model = model
        self._ledger = ledger
        self._retry = {**(retry or {}), "should_retry": _should_retry}

    async def complete(self, prompt: str, *, operation: str = "completion", **kwargs: Any) -> str:
        model = kwargs.get("model") or self._model

        async def _call():
            return await self._client.messages.create(
                model=model,
                max_tokens=kwargs.get("max_tokens", 4096),
                messages=[{"role": "user", "content": prompt}],
            )

        response = await with_retry(_call, **self._retry)
        if self._ledger is not None and response.usage is not None:
            self._ledger.log_anthropic_usage(
                model,
                operation,
                response.usage.input_tokens,
                response.usage.output_tokens,
            )
        return response.content[0].text if response.content else ""

    async def complete_structured(
        self, prompt: str, schema: type[T], *, operation: str = "completion", **kwargs: Any
    ) -> T:
        instruction = (
            "Respond with a single JSON object that conforms to the schema. "
            "No markdown, no code fence, only raw JSON."
        )
        full_prompt = f"{prompt}\n\n{instruction}"
        raw = await self.complete(full_prompt, operation=operation, **kwargs)
        # Strip possible markdown code block
        text = raw.strip()
        if text.startswith("```"):
            text = re.sub(r"^```\w*\n?", "", text)
            text = re.sub(r"\n?```\s*$", "", text)
        data = json.loads(text)
        return schema.model_validate(data)
