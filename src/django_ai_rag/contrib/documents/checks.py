from django.core import checks

from django_ai_rag.conf import get_setting

from .embedding import PROVIDERS


@checks.register()
def check_embedding_settings(app_configs, **kwargs):
    errors = []

    name = get_setting("EMBEDDING_PROVIDER")
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        errors.append(
            checks.Error(
                f"Unknown embedding provider '{name}'.",
                hint=f"Set DJANGO_AI_RAG['EMBEDDING_PROVIDER'] to one of: "
                f"{', '.join(sorted(PROVIDERS))}.",
                id="django_ai_rag.E001",
            )
        )
    else:
        dimensions = get_setting("EMBEDDING_DIMENSIONS")
        # A custom model may have its own dimension; only the default model is known
        if (
            dimensions
            and not get_setting("EMBEDDING_MODEL")
            and dimensions != provider_cls.default_dimensions
        ):
            errors.append(
                checks.Error(
                    f"Provider '{name}' produces {provider_cls.default_dimensions}-"
                    f"dimensional vectors but EMBEDDING_DIMENSIONS is {dimensions}.",
                    hint="Remove EMBEDDING_DIMENSIONS or set it to match the provider. "
                    "Switching provider requires reprocessing every document.",
                    id="django_ai_rag.E002",
                )
            )

    return errors


@checks.register()
def check_chunking_settings(app_configs, **kwargs):
    chunk_size = get_setting("CHUNK_SIZE")
    chunk_overlap = get_setting("CHUNK_OVERLAP")
    if chunk_size <= 0 or chunk_overlap < 0 or chunk_overlap >= chunk_size:
        return [
            checks.Error(
                f"CHUNK_OVERLAP ({chunk_overlap}) must be at least 0 and smaller than "
                f"CHUNK_SIZE ({chunk_size}).",
                id="django_ai_rag.E003",
            )
        ]
    return []
