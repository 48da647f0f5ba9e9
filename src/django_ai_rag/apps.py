from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "django_ai_rag"
    label = "django_ai_rag"
    verbose_name = "Django AI RAG"
