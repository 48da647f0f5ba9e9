import pytest
from django.core.cache import cache

from django_ai_rag.contrib.documents.models import Document, DocumentStatus
from django_ai_rag.contrib.documents.services import reset_services
from django_ai_rag.contrib.documents.storage import InMemoryVectorStore
from testapp.fakes import FakeEmbeddingProvider


@pytest.fixture(autouse=True)
def reset_rag_services():
    reset_services()
    cache.clear()
    yield
    reset_services()
    cache.clear()


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username="alice", password="password")


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(username="bob", password="password")


@pytest.fixture
def make_document(user):
    def _make_document(
        content="Some parsed text.", *, owner=None, status=DocumentStatus.READY, **kwargs
    ):
        kwargs.setdefault("filename", "document.txt")
        kwargs.setdefault("file_size", len(content.encode("utf-8")))
        return Document.objects.create(
            owner=owner or user, content=content, status=status, **kwargs
        )

    return _make_document


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider(dimensions=8)


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()
