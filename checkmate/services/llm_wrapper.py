import logging
from typing import Dict, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI

from checkmate.core.config import config, Config
from checkmate.core.errors import OrchestrationError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class LLMWrapper:
    """
    Centralized LLM Wrapper for the Checkmate system.

    Standardizes model configuration and hands out one chat model per allowed model name.
    """

    _instance = None

    def __init__(self, settings: Config = config):
        self.settings = settings
        self._models: Dict[str, BaseChatModel] = {}

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_llm(self, model: Optional[str] = None) -> BaseChatModel:
        """Returns the chat model for ``model`` (or the default model)."""
        if not self.settings.GEMINI_API_KEY:
            raise OrchestrationError("GEMINI_API_KEY is not set in the environment variables.")

        model_name = self.settings.resolve_model(model)
        if model and model_name != model:
            logger.warning(f"Model override '{model}' is not allowed; using {model_name}")

        if model_name not in self._models:
            self._models[model_name] = ChatGoogleGenerativeAI(
                model=model_name,
                temperature=self.settings.LLM_TEMPERATURE,
                max_output_tokens=self.settings.LLM_MAX_TOKEN,
                google_api_key=self.settings.GEMINI_API_KEY,
            )
        return self._models[model_name]


llm_wrapper = LLMWrapper.get_instance()
