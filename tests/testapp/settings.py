import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

SECRET_KEY = "not-a-secret"

DEBUG = True

ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django_ai_rag",
    "django_ai_rag.contrib.documents",
    "testapp",
]

# pgvector search needs PostgreSQL; everything else runs on SQLite
if os.environ.get("AI_RAG_TEST_DATABASE") == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("POSTGRES_DB", "django_ai_rag"),
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", "postgres"),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.path.join(BASE_DIR, "test.sqlite3"),
        }
    }

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "django-ai-rag-tests",
    }
}

MEDIA_ROOT = os.path.join(BASE_DIR, "media")

USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"console": {"class": "logging.StreamHandler"}},
    "loggers": {
        "django_ai_rag": {"handlers": ["console"], "level": "WARNING"},
    },
}

DJANGO_AI_RAG = {
    "EMBEDDING_PROVIDER": "openai",
    "API_KEY": "test-api-key",
    "VECTOR_STORE": "django_ai_rag.contrib.documents.storage.InMemoryVectorStore",
    "RETRY_BASE_DELAY": 0,
}
