import asyncio
import logging
from typing import List, Optional

from checkmate.core.config import config, Config
from checkmate.core.errors import ExtractionError
from checkmate.core.models import ContentItem, ContentKind, ExtractionResult
from checkmate.services.budget import Deadline
from checkmate.services.extraction.tools import (
    ArticleTools,
    FileTools,
    ImageTools,
    TikTokTools,
    TwitterTools,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ContentExtractor:
    """
    Resolves ContentItems into ExtractionResults.
    Roles:
    1. Route each item to the collaborator for its kind.
    2. Run all items concurrently, each under its own timeout.
    3. Turn every failure into a per-item result so one bad source never sinks the batch.
    """

    def __init__(
        self,
        settings: Config = config,
        twitter: Optional[TwitterTools] = None,
        tiktok: Optional[TikTokTools] = None,
        articles: Optional[ArticleTools] = None,
        files: Optional[FileTools] = None,
        images: Optional[ImageTools] = None,
    ):
        self.settings = settings
        self.twitter = twitter or TwitterTools(settings)
        self.tiktok = tiktok or TikTokTools(settings)
        self.articles = articles or ArticleTools(settings)
        self.files = files or FileTools()
        self.images = images or ImageTools(settings)

    async def _resolve(self, item: ContentItem, transcribe: bool, model: Optional[str]):
        if item.kind == ContentKind.TEXT:
            return item.raw, {}
        if item.kind == ContentKind.TWITTER:
            return await self.twitter.fetch_tweet(item.canonical_id, item.resolved_url or item.raw)
        if item.kind == ContentKind.TIKTOK:
            return await self.tiktok.fetch_video(item.resolved_url or item.raw, transcribe=transcribe)
        if item.kind == ContentKind.URL:
            return await self.articles.fetch_article(item.resolved_url or item.raw)
        if item.kind == ContentKind.FILE:
            return await self.files.extract_file(item)
        if item.kind == ContentKind.IMAGE:
            return await self.images.describe_image(item, model=model)
        raise ExtractionError(f"Unsupported content kind: {item.kind}")

    async def extract_item(
        self,
        item: ContentItem,
        timeout: Optional[float] = None,
        transcribe: bool = True,
        model: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract one item. Never raises; failures come back as ``failure`` results."""
        timeout = self.settings.EXTRACTION_TIMEOUT_SECONDS if timeout is None else timeout
        try:
            text, metadata = await asyncio.wait_for(self._resolve(item, transcribe, model), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Extraction timed out after {timeout:.1f}s: {item.label()}")
            return ExtractionResult.failure(item, f"Extraction timed out after {timeout:.0f} seconds")
        except ExtractionError as e:
            logger.warning(f"Extraction failed for {item.label()}: {e.message}")
            return ExtractionResult.failure(item, e.message)
        except Exception as e:
            logger.exception(f"Unexpected extraction error for {item.label()}")
            return ExtractionResult.failure(item, f"Failed to extract content: {e}")

        if not text or not text.strip():
            logger.warning(f"No content extracted from {item.label()}")
            return ExtractionResult.failure(item, "No content could be extracted", metadata)

        logger.info(f"Extracted {len(text)} characters from {item.label()}")
        return ExtractionResult.success(item, text, metadata)

    async def extract(
        self,
        items: List[ContentItem],
        deadline: Optional[Deadline] = None,
        model: Optional[str] = None,
    ) -> List[ExtractionResult]:
        """One result per item, in submission order."""
        timeout = self.settings.EXTRACTION_TIMEOUT_SECONDS
        if deadline is not None:
            timeout = deadline.cap(timeout)

        results = await asyncio.gather(
            *(self.extract_item(item, timeout=timeout, model=model) for item in items)
        )
        succeeded = sum(1 for r in results if r.ok)
        logger.info(f"Extraction finished: {succeeded}/{len(results)} sources succeeded")
        return list(results)
