import logging
from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from checkmate.core.config import config, Config
from checkmate.core.errors import ClassificationError
from checkmate.core.models import Classification, CombinedContent, InvestigationType
from checkmate.services.llm_wrapper import llm_wrapper

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class InvestigationTypeDecision(BaseModel):
    investigation_type: InvestigationType = Field(
        ..., description="Exactly one of: " + ", ".join(t.value for t in InvestigationType)
    )
    reasoning: str = Field("", description="One sentence explaining the choice.")


class InvestigationTypeClassifier:
    """
    Decides which analysis strategy an investigation needs.
    The answer is restricted to the InvestigationType values; anything else,
    or a provider failure, resolves to the configured fallback type.
    """

    def __init__(self, settings: Config = config, llm: Optional[BaseChatModel] = None):
        self.settings = settings
        self._llm = llm
        self.parser = JsonOutputParser(pydantic_object=InvestigationTypeDecision)
        self.fallback = InvestigationType(settings.DEFAULT_INVESTIGATION_TYPE)

        self.prompt = ChatPromptTemplate.from_messages([
            ("system", """
You are an Investigation Coordinator. Analyze the provided content and decide what type of investigation is needed.

The content may be social media posts, articles, documents, or standalone claims.

Choose exactly ONE investigation type:
- "social-post-analysis": a tweet, TikTok or other social post whose credibility, author, bias and sentiment must be assessed
- "claim-verification": one or more concrete factual claims (news, statistics, statements) to check against reliable sources
- "deep-research": broad or technical subject matter (science, finance, history, business) that needs multi-source research
- "comparative-analysis": several sources or viewpoints on the same topic that must be compared against each other

{format_instructions}
"""),
            ("human", "Analyze this content and determine the investigation type:\n\n{content}"),
        ])

    def _llm_for(self, model: Optional[str]) -> BaseChatModel:
        return self._llm or llm_wrapper.get_llm(model)

    async def _decide(self, content: CombinedContent, model: Optional[str]) -> InvestigationTypeDecision:
        chain = self.prompt | self._llm_for(model) | self.parser
        raw = await chain.ainvoke({
            "content": content.text[: self.settings.CLASSIFIER_MAX_CHARS],
            "format_instructions": self.parser.get_format_instructions(),
        })
        if not isinstance(raw, dict):
            raise ClassificationError(f"Classifier returned {type(raw).__name__}, expected an object")
        try:
            return InvestigationTypeDecision.model_validate(raw)
        except ValueError as e:
            raise ClassificationError(f"Classifier returned an invalid investigation type: {raw.get('investigation_type')!r}") from e

    async def classify(self, content: CombinedContent, model: Optional[str] = None) -> Classification:
        """Returns exactly one InvestigationType. Never raises."""
        try:
            decision = await self._decide(content, model)
        except ClassificationError as e:
            logger.warning(f"{e.message}; falling back to {self.fallback.value}")
            return Classification(investigation_type=self.fallback, used_fallback=True, reasoning=e.message)
        except Exception as e:
            logger.warning(f"Investigation type classification failed ({e}); falling back to {self.fallback.value}")
            return Classification(investigation_type=self.fallback, used_fallback=True, reasoning=str(e))

        logger.info(f"Investigation type: {decision.investigation_type.value}")
        return Classification(investigation_type=decision.investigation_type, reasoning=decision.reasoning)
