from django.apps import AppConfig
from django.core.signals import setting_changed


class DocumentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "django_ai_rag.contrib.documents"
    label = "ai_rag_documents"
    verbose_name = "Django AI RAG Document Pipeline"

    def ready(self):
        from . import checks  # noqa
        from .services import reset_services

        def handle_setting_changed(*, setting, **kwargs):
            if setting == "DJANGO_AI_RAG":
                reset_services()

        setting_changed.connect(
            handle_setting_changed, weak=False, dispatch_uid="ai_rag_reset_services"
        )
