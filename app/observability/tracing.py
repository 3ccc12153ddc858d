"""LangSmith observability and tracing."""
import logging
import os
from langsmith import Client
from app.config import settings

logger = logging.getLogger(__name__)


class Observability:
    """LangSmith observability manager."""

    def __init__(self):
        """Initialize LangSmith client when tracing is configured."""
        self.enabled = bool(settings.langchain_tracing_v2 and settings.langchain_api_key)
        self.client = Client(api_key=settings.langchain_api_key) if self.enabled else None

    def setup_langsmith(self):
        """Export LangSmith environment variables read by @traceable."""
        if not self.enabled:
            os.environ["LANGCHAIN_TRACING_V2"] = "false"
            logger.info("LangSmith tracing disabled (no API key or tracing turned off)")
            return
        os.environ["LANGCHAIN_TRACING_V2"] = "true"
        os.environ["LANGCHAIN_API_KEY"] = settings.langchain_api_key
        os.environ["LANGCHAIN_PROJECT"] = settings.langchain_project
        logger.info(f"LangSmith tracing enabled for project {settings.langchain_project}")


# Global observability instance
observability = Observability()


def setup_observability():
    """Setup observability for the application."""
    observability.setup_langsmith()
