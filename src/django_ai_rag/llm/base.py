import logging
from typing import Any, Iterable, Iterator

from openai import OpenAI

logger = logging.getLogger(__name__)


class ChatStream:
    """Pull iterator over the text fragments of a streamed chat completion.

    Iteration stops when the provider reports a finish reason or the stream is
    exhausted. ``close()`` releases the underlying HTTP connection; once closed the
    stream yields nothing further.

    Usage:
        with service.stream_completion(messages) as stream:
            for fragment in stream:
                ...
    """

    def __init__(self, response: Iterable[Any]):
        self._response = response
        self._iterator = iter(response)
        self._finished = False
        self.closed = False
        self.finish_reason: str | None = None

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        if self.closed or self._finished:
            self.close()
            raise StopIteration

        for chunk in self._iterator:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason
                self._finished = True
            content = choice.delta.content if choice.delta else None
            if content:
                return content
            if self._finished:
                break

        self.close()
        raise StopIteration

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close = getattr(self._response, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "ChatStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LLMService:
    """Light wrapper around an OpenAI-compatible client."""

    def __init__(self, *, client: OpenAI, model: str, provider: str = "openai"):
        self.client = client
        self.model = model
        self.provider = provider

    @classmethod
    def create(
        cls,
        *,
        provider: str,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        **kwargs,
    ) -> "LLMService":
        # Components stay single-attempt; retries belong to the orchestration layer
        kwargs.setdefault("max_retries", 0)
        if timeout is not None:
            kwargs["timeout"] = timeout
        client = OpenAI(api_key=api_key, base_url=base_url, **kwargs)
        return cls(client=client, model=model, provider=provider)

    @property
    def service_id(self) -> str:
        return f"{self.__class__.__name__}:{self.provider}:{self.model}"

    def completion(self, messages, **kwargs):
        return self.client.chat.completions.create(
            model=self.model, messages=messages, **kwargs
        )

    def stream_completion(self, messages, **kwargs) -> ChatStream:
        response = self.client.chat.completions.create(
            model=self.model, messages=messages, stream=True, **kwargs
        )
        return ChatStream(response)

    def embedding(self, inputs, **kwargs):
        return self.client.embeddings.create(model=self.model, input=inputs, **kwargs)
