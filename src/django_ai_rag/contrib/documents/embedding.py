import os
from abc import ABC, abstractmethod
from typing import Any

from django.core.exceptions import ImproperlyConfigured

from django_ai_rag.conf import get_setting
from django_ai_rag.llm import ChatStream, LLMService


class EmbeddingProvider(ABC):
    """Base class for remote providers which turn text into vectors and stream chat."""

    provider_name: str = ""

    @property
    def provider_id(self) -> str:
        """Get unique identifier for this provider."""
        return self.provider_name or self.__class__.__name__

    @property
    @abstractmethod
    def model(self) -> str:
        """Name of the embedding model."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""
        ...

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed a single string."""
        pass

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several strings in one request, preserving order."""
        pass

    @abstractmethod
    def chat_stream(self, messages: list[dict[str, str]], **options) -> ChatStream:
        """Start a streamed chat completion."""
        pass


class CoreEmbeddingProvider(EmbeddingProvider):
    """Embedding provider that uses the core LLM service."""

    provider_name = "core"
    default_chat_options: dict[str, Any] = {}

    def __init__(
        self,
        embedding_service: LLMService,
        *,
        dimensions: int,
        chat_service: LLMService | None = None,
    ):
        """Initialize with core LLM Service instances.

        Args:
            embedding_service: The LLM service used for embeddings
            dimensions: The vector length the embedding model produces
            chat_service: The LLM service used for chat, if the provider offers one
        """
        self.embedding_service = embedding_service
        self.chat_service = chat_service
        self._dimensions = dimensions

    @property
    def provider_id(self) -> str:
        return f"{self.provider_name}_{self.embedding_service.service_id}"

    @property
    def model(self) -> str:
        return self.embedding_service.model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        return list(self.embedding_service.embedding(text).data[0].embedding)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = self.embedding_service.embedding(list(texts))
        return [list(item.embedding) for item in response.data]

    def chat_stream(self, messages: list[dict[str, str]], **options) -> ChatStream:
        if self.chat_service is None:
            raise ImproperlyConfigured(
                f"The '{self.provider_name}' provider has no chat model configured"
            )
        return self.chat_service.stream_completion(
            messages, **{**self.default_chat_options, **options}
        )


class RemoteEmbeddingProvider(CoreEmbeddingProvider):
    """An OpenAI-compatible remote provider with known model defaults."""

    api_key_env: str = ""
    default_base_url: str | None = None
    default_embedding_model: str = ""
    default_dimensions: int = 0
    default_chat_model: str = ""

    @classmethod
    def from_settings(
        cls,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        embedding_model: str | None = None,
        chat_model: str | None = None,
        dimensions: int | None = None,
        timeout: float | None = None,
    ) -> "RemoteEmbeddingProvider":
        api_key = api_key or os.environ.get(cls.api_key_env)
        if not api_key:
            raise ImproperlyConfigured(
                f"No API key configured for the '{cls.provider_name}' embedding "
                f"provider. Set DJANGO_AI_RAG['API_KEY'] or {cls.api_key_env}."
            )

        client_options = {
            "provider": cls.provider_name,
            "api_key": api_key,
            "base_url": base_url or cls.default_base_url,
            "timeout": timeout,
        }
        embedding_service = LLMService.create(
            model=embedding_model or cls.default_embedding_model, **client_options
        )
        chat_service = LLMService(
            client=embedding_service.client,
            model=chat_model or cls.default_chat_model,
            provider=cls.provider_name,
        )
        return cls(
            embedding_service,
            dimensions=dimensions or cls.default_dimensions,
            chat_service=chat_service,
        )


class OpenAIProvider(RemoteEmbeddingProvider):
    provider_name = "openai"
    api_key_env = "OPENAI_API_KEY"
    default_embedding_model = "text-embedding-3-small"
    default_dimensions = 1536
    default_chat_model = "gpt-4o-mini"


class ZhipuProvider(RemoteEmbeddingProvider):
    """Zhipu AI through its OpenAI-compatible endpoint."""

    provider_name = "zhipu"
    api_key_env = "ZHIPU_API_KEY"
    default_base_url = "https://open.bigmodel.cn/api/paas/v4"
    default_embedding_model = "embedding-2"
    default_dimensions = 1024
    default_chat_model = "glm-4"
    default_chat_options = {"temperature": 0.7, "max_tokens": 2000}


PROVIDERS: dict[str, type[RemoteEmbeddingProvider]] = {
    OpenAIProvider.provider_name: OpenAIProvider,
    ZhipuProvider.provider_name: ZhipuProvider,
}


def get_provider_class(name: str) -> type[RemoteEmbeddingProvider]:
    try:
        return PROVIDERS[name]
    except KeyError:
        raise ImproperlyConfigured(
            f"Unknown embedding provider '{name}'. "
            f"Choose one of: {', '.join(sorted(PROVIDERS))}"
        ) from None


def expected_dimensions(name: str | None = None) -> int:
    """The vector length every stored embedding must have for the configured provider."""
    name = name or get_setting("EMBEDDING_PROVIDER")
    return get_setting("EMBEDDING_DIMENSIONS") or get_provider_class(
        name
    ).default_dimensions


def build_embedding_provider(name: str | None = None, **overrides) -> EmbeddingProvider:
    """Build the provider named in settings (or ``name``) from the DJANGO_AI_RAG options."""
    name = name or get_setting("EMBEDDING_PROVIDER")
    provider_cls = get_provider_class(name)
    options = {
        "api_key": get_setting("API_KEY"),
        "base_url": get_setting("BASE_URL"),
        "embedding_model": get_setting("EMBEDDING_MODEL"),
        "chat_model": get_setting("CHAT_MODEL"),
        "dimensions": get_setting("EMBEDDING_DIMENSIONS"),
        "timeout": get_setting("PROVIDER_TIMEOUT"),
    }
    options.update({key: value for key, value in overrides.items() if value is not None})
    return provider_cls.from_settings(**options)
