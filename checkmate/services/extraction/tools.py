import asyncio
import base64
import binascii
import io
import logging
import re
from typing import Any, Dict, Optional, Tuple

import aiohttp
import openai
import pdfplumber
import yt_dlp
from langchain_community.document_loaders.firecrawl import FireCrawlLoader
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from newspaper import Article
from tenacity import retry, stop_after_attempt, wait_exponential
from tweepy import TweepyException
from tweepy.asynchronous import AsyncClient

from checkmate.core.config import config, Config
from checkmate.core.errors import ExtractionError
from checkmate.core.models import ContentItem
from checkmate.services.llm_wrapper import llm_wrapper

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Extracted = Tuple[str, Dict[str, Any]]

MIN_ARTICLE_LENGTH = 50
TRANSCRIPT_SEPARATOR = "\n\n[Transcribed Audio]:\n"
PRESENTATION_TYPES = {
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def sanitize_text(text: str, max_length: Optional[int] = None) -> Tuple[str, bool]:
    """
    Cleans extracted text: drops zero-width characters and BOMs, normalizes
    line endings, collapses runs of spaces and blank lines, and truncates to
    ``max_length`` if given.

    Returns:
        (cleaned_text, was_truncated)
    """
    if not text:
        return "", False

    cleaned = text.replace("\u200b", " ").replace("\ufeff", "")
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"\n\s*\n+", "\n\n", cleaned).strip()

    was_truncated = False
    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
        was_truncated = True

    return cleaned, was_truncated


def coerce_count(value: Any) -> int:
    """
    Engagement counts arrive as ints, floats or strings such as ``"1,204"`` or ``"3.4K"``.
    Anything unparseable counts as 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.fullmatch(r"\s*([\d.,]+)\s*([kKmMbB]?)\s*", value)
        if not match:
            return 0
        number = match.group(1).replace(",", "")
        try:
            amount = float(number)
        except ValueError:
            return 0
        multiplier = {"": 1, "k": 1_000, "m": 1_000_000, "b": 1_000_000_000}[match.group(2).lower()]
        return int(amount * multiplier)
    return 0


class TwitterTools:
    """Fetches a single post from the X API v2 with a bearer token."""

    def __init__(self, settings: Config = config, client: Optional[AsyncClient] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(bearer_token=self.settings.X_BEARER_TOKEN)
        return self._client

    async def fetch_tweet(self, tweet_id: str, url: str) -> Extracted:
        if self._client is None and not self.settings.X_BEARER_TOKEN:
            raise ExtractionError("Failed to scrape Twitter: X_BEARER_TOKEN is not configured")

        try:
            response = await self.client.get_tweet(
                tweet_id,
                expansions=["author_id"],
                tweet_fields=["created_at", "public_metrics"],
                user_fields=["username", "name"],
            )
        except TweepyException as e:
            logger.warning(f"X API error for tweet {tweet_id}: {e}")
            raise ExtractionError(f"Failed to scrape Twitter: {e}") from e

        tweet = response.data
        if tweet is None:
            raise ExtractionError("Failed to scrape Twitter: Tweet not found or could not be accessed")

        users = {user.id: user for user in (response.includes or {}).get("users", [])}
        author = users.get(tweet.author_id)
        metrics = tweet.public_metrics or {}

        metadata = {
            "username": getattr(author, "username", None) or "unknown",
            "author": getattr(author, "name", None) or "unknown",
            "likes": coerce_count(metrics.get("like_count")),
            "retweets": coerce_count(metrics.get("retweet_count")),
            "replies": coerce_count(metrics.get("reply_count")),
            "createdAt": tweet.created_at.isoformat() if tweet.created_at else None,
            "url": url,
        }
        text = tweet.text or ""
        if not text.strip():
            raise ExtractionError("Failed to scrape Twitter: Tweet has no text")
        return text, metadata


class TikTokTools:
    """
    Resolves a TikTok link with yt-dlp (no download), then optionally downloads
    the media and transcribes it with Whisper.
    """

    def __init__(self, settings: Config = config, transcriber: Optional[openai.AsyncOpenAI] = None):
        self.settings = settings
        self._transcriber = transcriber

    @property
    def transcriber(self) -> openai.AsyncOpenAI:
        if self._transcriber is None:
            self._transcriber = openai.AsyncOpenAI(api_key=self.settings.OPENAI_API_KEY)
        return self._transcriber

    @staticmethod
    def _extract_info(url: str) -> Dict[str, Any]:
        options = {"quiet": True, "no_warnings": True, "skip_download": True}
        with yt_dlp.YoutubeDL(options) as ydl:
            return ydl.extract_info(url, download=False)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=4), reraise=True)
    async def probe(self, url: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._extract_info, url)

    @staticmethod
    def media_url(info: Dict[str, Any]) -> Optional[str]:
        if info.get("url"):
            return info["url"]
        formats = [f for f in info.get("formats") or [] if f.get("url") and f.get("vcodec") != "none"]
        return formats[-1]["url"] if formats else None

    async def transcribe(self, media_url: str, headers: Optional[Dict[str, str]] = None) -> str:
        timeout = aiohttp.ClientTimeout(total=self.settings.EXTRACTION_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(media_url, headers=headers or {}) as resp:
                resp.raise_for_status()
                payload = await resp.read()

        result = await self.transcriber.audio.transcriptions.create(
            model=self.settings.TRANSCRIPTION_MODEL,
            file=("tiktok-video.mp4", payload, "video/mp4"),
        )
        return result.text

    async def fetch_video(self, url: str, transcribe: bool = True) -> Extracted:
        if transcribe and self._transcriber is None and not self.settings.OPENAI_API_KEY:
            raise ExtractionError("Failed to scrape TikTok: OpenAI API key not configured")

        try:
            info = await self.probe(url)
        except Exception as e:
            logger.warning(f"yt-dlp could not resolve {url}: {e}")
            raise ExtractionError(f"Failed to scrape TikTok: Could not fetch TikTok video data ({e})") from e
        if not info:
            raise ExtractionError("Failed to scrape TikTok: Could not fetch TikTok video data")

        description = info.get("description") or info.get("title") or ""
        metadata = {
            "description": description,
            "author": info.get("uploader") or info.get("creator") or info.get("channel") or "unknown",
            "videoUrl": self.media_url(info),
            "duration": info.get("duration") or 0,
            "likes": coerce_count(info.get("like_count")),
            "url": url,
        }

        text = description
        if transcribe and metadata["videoUrl"]:
            try:
                transcript = await self.transcribe(metadata["videoUrl"], info.get("http_headers"))
                text = f"{description}{TRANSCRIPT_SEPARATOR}{transcript}"
                metadata["transcription"] = "completed"
            except Exception as e:
                logger.warning(f"Transcription failed for {url}: {e}")
                metadata["transcription"] = "failed"

        if not text.strip():
            raise ExtractionError("Failed to scrape TikTok: video has no description or transcript")
        return text, metadata


class ArticleTools:
    """Readable text of a web page: newspaper4k first, FireCrawl as the fallback."""

    def __init__(self, settings: Config = config):
        self.settings = settings

    @staticmethod
    def _parse_with_newspaper(url: str) -> Extracted:
        article = Article(url)
        article.download()
        article.parse()
        metadata = {
            "title": article.title or None,
            "authors": list(article.authors or []),
            "publishedDate": article.publish_date.isoformat() if article.publish_date else None,
            "url": url,
        }
        return article.text or "", metadata

    def _scrape_with_firecrawl(self, url: str) -> Extracted:
        loader = FireCrawlLoader(url=url, api_key=self.settings.FIRECRAWL_API_KEY, mode="scrape")
        documents = loader.load()
        text = "\n".join(doc.page_content for doc in documents)
        first = documents[0].metadata if documents else {}
        metadata = {
            "title": first.get("title"),
            "authors": [],
            "publishedDate": first.get("publishedTime"),
            "url": url,
        }
        return text, metadata

    async def fetch_article(self, url: str) -> Extracted:
        text, metadata = "", {"url": url}
        try:
            logger.info(f"Scraping article text from URL: {url}")
            text, metadata = await asyncio.to_thread(self._parse_with_newspaper, url)
        except Exception as e:
            logger.warning(f"Newspaper4k failed for {url}: {e}")

        if len(text.strip()) > MIN_ARTICLE_LENGTH:
            return sanitize_text(text)[0], metadata

        if not self.settings.FIRECRAWL_API_KEY:
            raise ExtractionError(f"Failed to fetch article content from {url}: no readable text found")

        logger.info(f"Fallback for Newspaper4k: using FireCrawl for {url}")
        try:
            text, metadata = await asyncio.to_thread(self._scrape_with_firecrawl, url)
        except Exception as e:
            logger.warning(f"FireCrawl failed for {url}: {e}")
            raise ExtractionError(f"Failed to fetch article content from {url}: {e}") from e

        cleaned, _ = sanitize_text(text)
        if not cleaned:
            raise ExtractionError(f"Failed to fetch article content from {url}: no readable text found")
        return cleaned, metadata


class FileTools:
    """Text of uploaded documents. Only PDFs are readable."""

    @staticmethod
    def _decode(item: ContentItem) -> bytes:
        try:
            return base64.b64decode(item.raw, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ExtractionError(f"Failed to read {item.filename}: invalid base64 payload") from e

    @staticmethod
    def _pdf_text(data: bytes) -> Extracted:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        return "\n\n".join(pages), {"pages": len(pages)}

    async def extract_file(self, item: ContentItem) -> Extracted:
        filename = item.filename or "file"
        mime = (item.mime_type or "").lower()
        lowered = filename.lower()

        if mime in PRESENTATION_TYPES or lowered.endswith((".ppt", ".pptx")):
            raise ExtractionError(f"Failed to read {filename}: text extraction not supported for presentations")
        if mime != "application/pdf" and not lowered.endswith(".pdf"):
            raise ExtractionError(f"Failed to read {filename}: unsupported file type {mime or 'unknown'}")

        data = self._decode(item)
        try:
            text, metadata = await asyncio.to_thread(self._pdf_text, data)
        except Exception as e:
            logger.warning(f"pdfplumber failed on {filename}: {e}")
            raise ExtractionError(f"Failed to read {filename}: {e}") from e

        cleaned, _ = sanitize_text(text)
        if not cleaned:
            raise ExtractionError(f"Failed to read {filename}: no text found in PDF")
        metadata.update({"filename": filename, "mimeType": mime or "application/pdf"})
        return cleaned, metadata


IMAGE_PROMPT = (
    "Describe this image for a fact-checker. Transcribe any visible text verbatim, "
    "then describe the people, places, charts and claims it shows. Do not speculate."
)


class ImageTools:
    """Describes an image with the multimodal chat model."""

    def __init__(self, settings: Config = config, llm: Optional[BaseChatModel] = None):
        self.settings = settings
        self._llm = llm

    async def describe_image(self, item: ContentItem, model: Optional[str] = None) -> Extracted:
        url = item.resolved_url or f"data:{item.mime_type or 'image/jpeg'};base64,{item.raw}"
        llm = self._llm or llm_wrapper.get_llm(model)
        message = HumanMessage(content=[
            {"type": "text", "text": IMAGE_PROMPT},
            {"type": "image_url", "image_url": {"url": url}},
        ])
        try:
            response = await llm.ainvoke([message])
        except Exception as e:
            logger.warning(f"Image description failed: {e}")
            raise ExtractionError(f"Failed to analyze image: {e}") from e

        content = response.content
        if isinstance(content, list):
            content = "\n".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not content.strip():
            raise ExtractionError("Failed to analyze image: no description returned")
        return content.strip(), {"mimeType": item.mime_type, "url": item.resolved_url}
