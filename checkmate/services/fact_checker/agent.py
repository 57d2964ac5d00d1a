import logging
from typing import Any, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate

from checkmate.core.cache import cache_get, cache_key, cache_set
from checkmate.core.config import config, Config
from checkmate.core.models import ClaimSource, ClaimVerification
from checkmate.services.llm_wrapper import llm_wrapper
from checkmate.services.search.tools import WebSearchTool

log = logging.getLogger(__name__)


class ClaimVerificationAgent:
    """
    Verifies one claim: Tavily search, then an LLM synthesis over the results.
    Used for single spans from the text review and for the ``verify_fact`` tool.
    """

    def __init__(
        self,
        settings: Config = config,
        search: Optional[WebSearchTool] = None,
        llm: Optional[BaseChatModel] = None,
        model: Optional[str] = None,
    ):
        self.settings = settings
        self.search = search or WebSearchTool(settings)
        self._llm = llm
        self.model = model
        self.parser = JsonOutputParser(pydantic_object=ClaimVerification)

        self.prompt = ChatPromptTemplate.from_messages([
            ("system", """
You are a fact-checking assistant. Evaluate the claim using ONLY the provided web search results.

Verdicts:
- "supported": multiple credible sources agree the claim is broadly true
- "contradicted": multiple credible sources say the claim is false or misleading
- "mixed": evidence is conflicting or only partially supports the claim
- "unverifiable": there is not enough relevant evidence to judge the claim

Be conservative: if evidence is weak or ambiguous, prefer "mixed" or "unverifiable".
Pick the 2-6 most relevant evidence items with short quotes, preferring authoritative sources.
confidence is a number between 0 and 1.
If the results are insufficient, say so in the explanation.

{format_instructions}
"""),
            ("human", """
CLAIM:
"{claim}"

{context_block}
WEB SEARCH RESULTS:
{search_results}

Respond with valid JSON only.
"""),
        ])

    @property
    def llm(self) -> BaseChatModel:
        return self._llm or llm_wrapper.get_llm(self.model)

    @staticmethod
    def _render_results(results: List[Dict[str, Any]]) -> str:
        blocks = []
        for i, r in enumerate(results[:5], start=1):
            blocks.append(
                f"Source {i}:\nTitle: {r.get('title') or 'Untitled'}\n"
                f"URL: {r.get('url') or 'unknown-url'}\nSnippet: {(r.get('snippet') or '')[:500]}"
            )
        return "\n\n".join(blocks) or "(no usable search results)"

    @staticmethod
    def _unique_sources(sources: List[ClaimSource]) -> List[ClaimSource]:
        seen = set()
        unique = []
        for source in sources:
            if source.url in seen:
                continue
            seen.add(source.url)
            unique.append(source)
        return unique

    async def verify(self, claim: str, context: Optional[str] = None) -> ClaimVerification:
        claim = (claim or "").strip()
        if not claim:
            return ClaimVerification.unverifiable("No claim provided to verify.")

        if not self.search.configured:
            return ClaimVerification.unverifiable(
                "Web search (Tavily) is not configured, so this claim cannot be verified automatically."
            )

        key = cache_key("verify", claim, context or "")
        cached = await cache_get(key)
        if cached:
            return ClaimVerification.model_validate(cached)

        log.info(f"ClaimVerificationAgent verifying: {claim[:60]}...")
        search_result = await self.search.search(claim, max_results=5)
        if search_result["status"] != "success":
            return ClaimVerification.unverifiable(
                f"Web search failed while trying to verify the claim: {search_result.get('reason', 'Unknown error')}"
            )

        results = search_result["results"]
        context_block = ""
        if context:
            context_block = (
                "CONTEXT (optional, may help disambiguate the claim):\n"
                f"\"{context[: self.settings.VERIFY_CONTEXT_MAX_CHARS]}\"\n"
            )

        chain = self.prompt | self.llm | self.parser
        try:
            raw = await chain.ainvoke({
                "claim": claim,
                "context_block": context_block,
                "search_results": self._render_results(results),
                "format_instructions": self.parser.get_format_instructions(),
            })
            verification = ClaimVerification.model_validate(raw)
        except Exception as e:
            log.error(f"LLM failed in ClaimVerificationAgent: {e}")
            return ClaimVerification.unverifiable("Claim verification failed while synthesizing the search results.")

        sources = self._unique_sources(verification.sources)
        if not sources:
            sources = self._unique_sources([
                ClaimSource(title=r.get("title") or r["url"], url=r["url"]) for r in results
            ])
        verification = verification.model_copy(update={"sources": sources})

        await cache_set(key, verification.to_wire())
        return verification
