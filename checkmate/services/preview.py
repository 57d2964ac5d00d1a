import logging
from typing import Optional

from checkmate.core.cache import cache_get, cache_key, cache_set
from checkmate.core.config import config, Config
from checkmate.core.errors import ExtractionError, ValidationError
from checkmate.core.models import ContentKind, PreviewResult
from checkmate.services.extraction.agent import ContentExtractor
from checkmate.services.normalizer import detect_item

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

PLATFORM_NAMES = {ContentKind.TWITTER: "Twitter", ContentKind.TIKTOK: "TikTok"}


class PreviewService:
    """Quick look at a tweet or TikTok link: text and metadata, no transcription."""

    def __init__(self, settings: Config = config, extractor: Optional[ContentExtractor] = None):
        self.settings = settings
        self.extractor = extractor or ContentExtractor(settings)

    async def preview(self, url: str) -> PreviewResult:
        url = (url or "").strip()
        if not url:
            raise ValidationError("URL is required")

        item = detect_item(url)
        if item.kind not in PLATFORM_NAMES:
            raise ValidationError("Unsupported URL type. Only Twitter/X and TikTok links can be previewed.")

        key = cache_key("preview", item.resolved_url)
        cached = await cache_get(key)
        if cached:
            return PreviewResult.model_validate(cached)

        result = await self.extractor.extract_item(item, transcribe=False)
        if not result.ok:
            prefix = f"Failed to scrape {PLATFORM_NAMES[item.kind]}"
            error = result.error if result.error.startswith(prefix) else f"{prefix}: {result.error}"
            raise ExtractionError(error)

        preview = PreviewResult(
            type=item.kind.value,
            url=item.resolved_url,
            content=result.text,
            metadata=result.metadata,
        )
        await cache_set(key, preview.to_wire())
        return preview
