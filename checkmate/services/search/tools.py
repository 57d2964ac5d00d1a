import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from langchain_community.utilities.tavily_search import TavilySearchAPIWrapper

from checkmate.core.config import config, Config

log = logging.getLogger(__name__)


class WebSearchTool:
    """
    Raw Tavily search. Returns a structured dict with ``status`` set to
    ``success`` or ``error``; it never raises.
    """

    def __init__(self, settings: Config = config, client: Optional[Any] = None):
        self.settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.settings.TAVILY_API_KEY)

    @property
    def client(self) -> TavilySearchAPIWrapper:
        if self._client is None:
            self._client = TavilySearchAPIWrapper(tavily_api_key=self.settings.TAVILY_API_KEY)
        return self._client

    async def search(self, query: str, max_results: int = 5) -> Dict[str, Any]:
        if not self.configured:
            return {"status": "error", "reason": "Tavily API key missing", "query": query}

        try:
            raw = await asyncio.wait_for(
                self.client.raw_results_async(
                    query,
                    max_results=max_results,
                    search_depth="advanced",
                    include_answer=True,
                ),
                timeout=self.settings.SEARCH_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            log.warning(f"Tavily search timed out for query: {query[:80]}")
            return {"status": "error", "reason": "Search timed out", "query": query}
        except Exception as e:
            log.warning(f"Tavily raw search failed: {e}")
            return {"status": "error", "reason": str(e), "query": query}

        return self._parse(raw, query)

    def _parse(self, raw: Any, query: str) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            return {"status": "error", "reason": "Invalid response", "query": query}

        sources = []
        seen = set()
        for item in raw.get("results") or []:
            if not isinstance(item, dict):
                continue
            url = item.get("url", "")
            if not url or url in seen or "tavily.com" in url.lower():
                continue
            seen.add(url)
            sources.append({
                "title": item.get("title") or "No title",
                "url": url,
                "snippet": (item.get("content") or "")[:1000],
                "domain": url.split("/")[2] if "://" in url else "unknown",
                "published_date": item.get("published_date"),
            })

        return {
            "status": "success",
            "query": query,
            "summary": raw.get("answer") or "No summary available.",
            "results": sources,
            "total_results": len(sources),
            "retrieved_at": datetime.now().isoformat(),
        }

    @staticmethod
    def format(result: Dict[str, Any]) -> str:
        """LLM-readable rendering of a search result."""
        if result.get("status") != "success":
            return f"Web search failed for: {result.get('query')}\nError: {result.get('reason', 'Unknown')}"

        sources_text = "\n".join(
            f"- {s['title']} ({s['url']}): {s['snippet'][:300]}"
            for s in result["results"]
        ) or "No sources found."

        return (
            f"Web Search Results for: \"{result['query']}\"\n\n"
            f"Summary: {result['summary']}\n\n"
            f"Sources:\n{sources_text}\n\n"
            f"Retrieved: {result['retrieved_at']}"
        )
