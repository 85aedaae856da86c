"""Abstract text-generation provider protocol."""

from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class LLMProvider(Protocol):
    """Protocol for text generation backends."""

    async def complete(self, prompt: str, *, operation: str = "completion", **kwargs: Any) -> str:
        """Return raw text completion."""
        ...

    async def complete_structured(
        self, prompt: str, schema: type[T], *, operation: str = "completion", **kwargs: Any
    ) -> T:
        """Return completion parsed into the given Pydantic model (JSON)."""
        ...
