import structlog
from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel

from dayli_agent.infrastructure.config import Settings

logger = structlog.get_logger(__name__)


def create_chat_model(settings: Settings) -> BaseChatModel:
    """Chat model used by the understanding stage"""

    logger.info("Creating chat model", model=settings.model_name, provider=settings.model_provider)
    return init_chat_model(
        settings.model_name,
        model_provider=settings.model_provider,
        temperature=settings.temperature,
        timeout=settings.model_timeout
    )
