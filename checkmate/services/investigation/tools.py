import json
import logging
from typing import Any, Dict, Iterable, List, Literal, Optional

import aiohttp
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from checkmate.core.config import config, Config
from checkmate.core.errors import ToolExecutionError
from checkmate.core.models import CamelModel
from checkmate.services.fact_checker.agent import ClaimVerificationAgent
from checkmate.services.investigation.credibility import (
    domain_age_days,
    extract_domain,
    score_domain,
    score_profile,
)
from checkmate.services.investigation.parsing import parse_loose_json
from checkmate.services.llm_wrapper import llm_wrapper
from checkmate.services.normalizer import is_http_url
from checkmate.services.search.tools import WebSearchTool

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

OPENCORPORATES_URL = "https://api.opencorporates.com/v0.4/companies/search"


# === Structured LLM outputs used by tools ===

class SourceTypeDecision(BaseModel):
    classification: Literal["primary", "secondary"] = Field(
        ..., description="primary: origin of the information; secondary: reporting on it"
    )
    reasoning: str = Field(..., description="One or two sentences")


class ComparisonPoint(CamelModel):
    category: str
    user_source: str
    external_source: str
    match: bool


class SourceComparison(CamelModel):
    comparison_points: List[ComparisonPoint]
    overall_consistency: Literal["consistent", "partially-consistent", "inconsistent"]
    summary: str


class SentimentBreakdown(BaseModel):
    positive: float = Field(..., ge=0, le=1)
    negative: float = Field(..., ge=0, le=1)
    neutral: float = Field(..., ge=0, le=1)
    mixed: float = Field(..., ge=0, le=1)


class SentimentAnalysis(BaseModel):
    classification: Literal["positive", "negative", "neutral"]
    confidence: float = Field(..., ge=0, le=1)
    breakdown: SentimentBreakdown
    reasoning: str


class PoliticalLeaning(BaseModel):
    classification: Literal["left", "center", "right"]
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str


class SentimentPoliticalAnalysis(CamelModel):
    sentiment: SentimentAnalysis
    political_leaning: PoliticalLeaning
    belief_drivers: List[str] = Field(
        ...,
        description="Psychological factors (e.g. Confirmation Bias) present or exploited in the text",
    )
    overall_confidence: float = Field(..., ge=0, le=1)


CLASSIFY_SOURCE_PROMPT = """
Classify this source as primary or secondary.

Definitions:
- primary: the original source of the information (a post by the subject, police report, raw video, official statement, dataset)
- secondary: a source reporting on or commenting about the event (news article, blog post, commentary)

URL: {source_url}
Snippet: {content_snippet}
Context: {context}

{format_instructions}
"""

COMPARE_PROMPT = """
Compare a user-provided source against what external research found.
Cover factual consistency, tone and context, plus any other category that matters.

User source:
{user_source_content}

External findings:
{external_sources_summary}

{format_instructions}
"""

SENTIMENT_PROMPT = """
Analyze the following text for sentiment and political leaning.

Text to analyze:
{text}

{context}

Provide sentiment (positive/negative/neutral) with a 0-1 confidence and a breakdown,
political leaning (left/center/right) with a 0-1 confidence, the belief drivers the text
relies on, and an overall confidence. Base the analysis only on the actual content.

{format_instructions}
"""


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _as_dict(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    parsed = parse_loose_json(raw)
    return parsed.value if parsed.ok and isinstance(parsed.value, dict) else {}


class InvestigationTools:
    """
    Tools the investigation agent may call. Every tool returns a string the
    model can read; failures raise ToolExecutionError so the caller can record
    them as errored agent actions.
    """

    def __init__(
        self,
        settings: Config = config,
        search: Optional[WebSearchTool] = None,
        verifier: Optional[ClaimVerificationAgent] = None,
        llm: Optional[BaseChatModel] = None,
        model: Optional[str] = None,
    ):
        self.settings = settings
        self.model = model
        self.search = search or WebSearchTool(settings)
        self.verifier = verifier or ClaimVerificationAgent(settings, search=self.search, llm=llm, model=model)
        self._llm = llm
        self._variants: Dict[str, "InvestigationTools"] = {}
        self.tools: Dict[str, BaseTool] = {t.name: t for t in self._build()}

    @property
    def llm(self) -> BaseChatModel:
        return self._llm or llm_wrapper.get_llm(self.model)

    def for_model(self, model: Optional[str]) -> "InvestigationTools":
        """Tools whose own model calls (structured analyses, verify_fact) go to ``model``."""
        if not model:
            return self
        resolved = self.settings.resolve_model(model)
        if resolved == self.settings.resolve_model(self.model):
            return self
        if resolved not in self._variants:
            self._variants[resolved] = InvestigationTools(
                self.settings, search=self.search, llm=self._llm, model=resolved
            )
        return self._variants[resolved]

    def select(self, names: Iterable[str], model: Optional[str] = None) -> List[BaseTool]:
        tools = self.for_model(model).tools
        return [tools[name] for name in names]

    async def _structured(self, template: str, schema, variables: Dict[str, Any]) -> Dict[str, Any]:
        parser = JsonOutputParser(pydantic_object=schema)
        chain = ChatPromptTemplate.from_template(template) | self.llm | parser
        try:
            raw = await chain.ainvoke({**variables, "format_instructions": parser.get_format_instructions()})
            return schema.model_validate(raw).model_dump(by_alias=True)
        except Exception as e:
            raise ToolExecutionError(f"{schema.__name__} generation failed: {e}") from e

    def _build(self) -> List[BaseTool]:
        search = self.search
        verifier = self.verifier

        @tool("web_search")
        async def web_search(query: str) -> str:
            """Search the web for current information about a topic. Returns a summary and the top sources with snippets."""
            result = await search.search(query)
            if result["status"] != "success":
                raise ToolExecutionError(f"Web search failed: {result.get('reason', 'Unknown error')}")
            return WebSearchTool.format(result)

        @tool("verify_fact")
        async def verify_fact(claim: str, context: Optional[str] = None) -> str:
            """Verify one factual claim against web search results. Returns verdict (supported/contradicted/mixed/unverifiable), confidence, evidence and sources."""
            verification = await verifier.verify(claim, context)
            return _dump(verification.to_wire())

        @tool("evaluate_source_credibility")
        async def evaluate_source_credibility(
            source: str, platform: Optional[str] = None, profile_data: Optional[str] = None
        ) -> str:
            """Rate the credibility of a source on a 1-10 scale. `source` is a URL or a social media handle; `profile_data` is an optional JSON string (followers, verified, account age)."""
            if is_http_url(source.strip()):
                domain = extract_domain(source)
                age = await domain_age_days(domain)
                rating = score_domain(domain, age)
                return _dump({
                    "tool": "evaluate_source_credibility",
                    "source": source,
                    "domain": domain,
                    "domainAgeDays": age,
                    **rating,
                })

            profile = _as_dict(profile_data)
            rating = score_profile(platform or "unknown", profile)
            return _dump({
                "tool": "evaluate_source_credibility",
                "username": source,
                "platform": platform or "unknown",
                "profileData": profile or None,
                **rating,
            })

        @tool("classify_source_type")
        async def classify_source_type(
            source_url: str, content_snippet: Optional[str] = None, context: Optional[str] = None
        ) -> str:
            """Classify a source as primary (origin/raw) or secondary (reporting/derivative)."""
            decision = await self._structured(CLASSIFY_SOURCE_PROMPT, SourceTypeDecision, {
                "source_url": source_url,
                "content_snippet": content_snippet or "N/A",
                "context": context or "N/A",
            })
            return _dump({"tool": "classify_source_type", "sourceUrl": source_url, **decision})

        @tool("compare_user_source_to_external")
        async def compare_user_source_to_external(user_source_content: str, external_sources_summary: str) -> str:
            """Compare the user-provided source against a summary of external findings, point by point."""
            comparison = await self._structured(COMPARE_PROMPT, SourceComparison, {
                "user_source_content": user_source_content,
                "external_sources_summary": external_sources_summary,
            })
            return _dump({"tool": "compare_user_source_to_external", **comparison})

        @tool("get_company_info")
        async def get_company_info(company_name: str, jurisdiction: Optional[str] = None) -> str:
            """Look up company registration details (number, status, incorporation date, address) in OpenCorporates. `jurisdiction` is an optional code such as "us" or "gb"."""
            params = {"q": company_name}
            if jurisdiction:
                params["jurisdiction_code"] = jurisdiction
            if self.settings.OPENCORPORATES_API_KEY:
                params["api_token"] = self.settings.OPENCORPORATES_API_KEY

            try:
                timeout = aiohttp.ClientTimeout(total=self.settings.SEARCH_TIMEOUT_SECONDS)
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.get(OPENCORPORATES_URL, params=params) as resp:
                        if resp.status != 200:
                            raise ToolExecutionError(f"OpenCorporates API error: HTTP {resp.status}")
                        data = await resp.json()
            except aiohttp.ClientError as e:
                raise ToolExecutionError(f"OpenCorporates request failed: {e}") from e

            companies = (data.get("results") or {}).get("companies") or []
            return _dump({
                "query": company_name,
                "jurisdiction": jurisdiction,
                "results": [
                    {
                        "name": c.get("company", {}).get("name", ""),
                        "companyNumber": c.get("company", {}).get("company_number", ""),
                        "jurisdiction": c.get("company", {}).get("jurisdiction_code", ""),
                        "incorporationDate": c.get("company", {}).get("incorporation_date"),
                        "status": c.get("company", {}).get("current_status"),
                        "address": c.get("company", {}).get("registered_address_in_full"),
                        "url": c.get("company", {}).get("opencorporates_url"),
                    }
                    for c in companies[:5]
                ],
                "totalResults": (data.get("results") or {}).get("total_count", 0),
            })

        @tool("analyze_sentiment_political")
        async def analyze_sentiment_political(text: str, context: Optional[str] = None) -> str:
            """Analyze text for sentiment (positive/negative/neutral), political leaning (left/center/right) and belief drivers, with confidence scores and reasoning."""
            analysis = await self._structured(SENTIMENT_PROMPT, SentimentPoliticalAnalysis, {
                "text": text,
                "context": f"Context: {context}" if context else "",
            })
            return _dump(analysis)

        @tool("generate_visualization")
        async def generate_visualization(
            initial_analysis: str,
            external_analysis: str,
            citations: Optional[str] = None,
            external_summary: Optional[str] = None,
        ) -> str:
            """Compile sentiment/political analyses of the original content and of the external research into a visualization-ready JSON structure. Arguments are JSON strings."""
            initial = parse_loose_json(initial_analysis)
            external = parse_loose_json(external_analysis)
            initial_data = initial.value if initial.ok and isinstance(initial.value, dict) else {
                "error": "Failed to parse initial analysis"
            }
            external_data = external.value if external.ok and isinstance(external.value, dict) else {
                "error": "Failed to parse external analysis"
            }

            citation_list: List[Any] = []
            if citations:
                parsed = parse_loose_json(citations)
                if parsed.ok and isinstance(parsed.value, list):
                    citation_list = parsed.value
                elif parsed.ok and isinstance(parsed.value, dict):
                    citation_list = parsed.value.get("citations") or []

            def side(data: Dict[str, Any]) -> Dict[str, Any]:
                return {
                    "sentiment": data.get("sentiment"),
                    "politicalLeaning": data.get("politicalLeaning"),
                    "beliefDrivers": data.get("beliefDrivers") or [],
                    "overallConfidence": data.get("overallConfidence") or 0,
                }

            def label(data: Dict[str, Any], key: str) -> Optional[str]:
                value = data.get(key)
                return value.get("classification") if isinstance(value, dict) else None

            return _dump({
                "type": "investigation_visualization",
                "initialContent": side(initial_data),
                "externalResults": {**side(external_data), "citations": citation_list, "summary": external_summary},
                "comparison": {
                    "sentimentDiff": {
                        "initial": label(initial_data, "sentiment"),
                        "external": label(external_data, "sentiment"),
                        "match": label(initial_data, "sentiment") == label(external_data, "sentiment"),
                    },
                    "politicalDiff": {
                        "initial": label(initial_data, "politicalLeaning"),
                        "external": label(external_data, "politicalLeaning"),
                        "match": label(initial_data, "politicalLeaning") == label(external_data, "politicalLeaning"),
                    },
                },
            })

        return [
            web_search,
            verify_fact,
            evaluate_source_credibility,
            classify_source_type,
            compare_user_source_to_external,
            get_company_info,
            analyze_sentiment_political,
            generate_visualization,
        ]
