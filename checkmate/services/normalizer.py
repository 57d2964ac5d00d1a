"""
Input normalization: turns a raw submission into an ordered list of ContentItems.

The kind of every item is derived from its raw string by pattern matching:
tweet/X status links, TikTok video links (full and shortened), any other
http(s) URL, or plain text. Uploaded images and files are tagged from their
MIME type. Nothing here performs I/O.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from checkmate.core.errors import ValidationError
from checkmate.core.models import ContentItem, ContentKind

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

NO_CONTENT_MESSAGE = (
    "No content provided. Supply text, a URL, a TikTok or Twitter/X link, or an image."
)

_TWEET_URL = re.compile(
    r"^https?://(?:www\.|mobile\.)?(?:twitter\.com|x\.com)/(?:#!/)?(?P<user>i/web|[A-Za-z0-9_]+)/status(?:es)?/(?P<id>\d+)",
    re.IGNORECASE,
)
_TIKTOK_VIDEO_URL = re.compile(
    r"^https?://(?:www\.|m\.)?tiktok\.com/@(?P<user>[\w.-]+)/video/(?P<id>\d+)", re.IGNORECASE
)
_TIKTOK_EMBED_URL = re.compile(
    r"^https?://(?:www\.|m\.)?tiktok\.com/(?:v|embed(?:/v2)?)/(?P<id>\d+)", re.IGNORECASE
)
_TIKTOK_SHORT_URL = re.compile(
    r"^https?://(?:(?:vm|vt)\.tiktok\.com|(?:www\.)?tiktok\.com/t)/(?P<id>[\w-]+)", re.IGNORECASE
)
_EMBEDDED_URL = re.compile(r"https?://\S+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)]}'\""
_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def is_http_url(value: str) -> bool:
    if not value or any(ch.isspace() for ch in value):
        return False
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and "." in parts.netloc


def _strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def extract_tweet_id(url: str) -> Optional[str]:
    match = _TWEET_URL.match(url.strip())
    return match.group("id") if match else None


def extract_tiktok_id(url: str) -> Optional[str]:
    """Numeric video id for full links, the short code for vm./vt./t/ links."""
    url = url.strip()
    for pattern in (_TIKTOK_VIDEO_URL, _TIKTOK_EMBED_URL, _TIKTOK_SHORT_URL):
        match = pattern.match(url)
        if match:
            return match.group("id")
    return None


def detect_item(raw: str) -> ContentItem:
    """Classify a single string into a ContentItem."""
    value = raw.strip()

    tweet_id = extract_tweet_id(value)
    if tweet_id:
        return ContentItem(
            kind=ContentKind.TWITTER,
            raw=raw,
            resolved_url=f"https://x.com/i/status/{tweet_id}",
            canonical_id=tweet_id,
        )

    match = _TIKTOK_VIDEO_URL.match(value)
    if match:
        return ContentItem(
            kind=ContentKind.TIKTOK,
            raw=raw,
            resolved_url=f"https://www.tiktok.com/@{match.group('user')}/video/{match.group('id')}",
            canonical_id=match.group("id"),
        )

    for pattern in (_TIKTOK_EMBED_URL, _TIKTOK_SHORT_URL):
        match = pattern.match(value)
        if match:
            return ContentItem(
                kind=ContentKind.TIKTOK,
                raw=raw,
                resolved_url=_strip_query(value),
                canonical_id=match.group("id"),
            )

    if is_http_url(value):
        parts = urlsplit(value)
        return ContentItem(
            kind=ContentKind.URL,
            raw=raw,
            resolved_url=urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, "")),
        )

    return ContentItem(kind=ContentKind.TEXT, raw=raw)


def find_links(text: str) -> List[str]:
    links = []
    for match in _EMBEDDED_URL.finditer(text or ""):
        link = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if is_http_url(link):
            links.append(link)
    return links


def items_from_text(text: str) -> List[ContentItem]:
    """
    A pure link becomes one link item. Prose becomes a text item followed by
    one item per link embedded in it.
    """
    value = (text or "").strip()
    if not value:
        return []
    if is_http_url(value):
        return [detect_item(value)]

    links = find_links(value)
    items = []
    prose = _EMBEDDED_URL.sub(" ", value)
    if prose.strip(_TRAILING_PUNCTUATION + " \n\t"):
        items.append(ContentItem(kind=ContentKind.TEXT, raw=value))
    items.extend(detect_item(link) for link in links)
    return items


def split_data_url(data: str, default_mime: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """Return ``(base64_payload, mime_type)`` for a data URL or bare base64 string."""
    match = _DATA_URL.match(data.strip())
    if match:
        return match.group("data"), match.group("mime") or default_mime
    return data.strip(), default_mime


def image_item(data: str) -> ContentItem:
    value = data.strip()
    if is_http_url(value):
        return ContentItem(kind=ContentKind.IMAGE, raw=value, resolved_url=value)
    payload, mime = split_data_url(value, default_mime="image/jpeg")
    return ContentItem(kind=ContentKind.IMAGE, raw=payload, mime_type=mime)


def file_item(data: str, filename: Optional[str], mime_type: Optional[str]) -> ContentItem:
    payload, mime = split_data_url(data, default_mime=mime_type)
    if mime and mime.startswith("image/"):
        return ContentItem(kind=ContentKind.IMAGE, raw=payload, mime_type=mime, filename=filename)
    return ContentItem(kind=ContentKind.FILE, raw=payload, mime_type=mime, filename=filename or "file")


def _dedupe(items: Iterable[ContentItem]) -> List[ContentItem]:
    seen = set()
    unique = []
    for item in items:
        key = (item.kind, item.resolved_url or item.raw)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def normalize_submission(submission: Any) -> List[ContentItem]:
    """
    Accepts a string, a list of strings, or a mapping with any of
    ``content`` / ``contents`` / ``imageBase64`` / ``image``.

    Raises:
        ValidationError: when no content source is present at all.
    """
    items: List[ContentItem] = []

    if isinstance(submission, str):
        items.extend(items_from_text(submission))
    elif isinstance(submission, (list, tuple)):
        for entry in submission:
            if isinstance(entry, str):
                items.extend(items_from_text(entry))
    elif isinstance(submission, dict):
        content = submission.get("content")
        if isinstance(content, str):
            items.extend(items_from_text(content))
        contents = submission.get("contents")
        if isinstance(contents, (list, tuple)):
            for entry in contents:
                if isinstance(entry, str):
                    items.extend(items_from_text(entry))
        for key in ("imageBase64", "image"):
            image = submission.get(key)
            if isinstance(image, str) and image.strip():
                items.append(image_item(image))
                break

    items = _dedupe(items)
    if not items:
        raise ValidationError(NO_CONTENT_MESSAGE)
    return items


# === Chat messages ===

def message_text(message: Dict[str, Any]) -> str:
    parts = message.get("parts")
    if isinstance(parts, list) and parts:
        return "\n".join(
            part["text"] for part in parts
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
        )
    content = message.get("content")
    if isinstance(content, str):
        return content
    text = message.get("text")
    return text if isinstance(text, str) else ""


def items_from_message(message: Dict[str, Any]) -> List[ContentItem]:
    """Text, embedded links, ``data.links``, ``data.files`` and file parts of one message."""
    items = items_from_text(message_text(message))

    data = message.get("data") if isinstance(message.get("data"), dict) else {}
    for link in data.get("links") or []:
        if isinstance(link, str) and is_http_url(link.strip()):
            items.append(detect_item(link))
    for upload in data.get("files") or []:
        if isinstance(upload, dict) and isinstance(upload.get("data"), str):
            items.append(file_item(upload["data"], upload.get("name"), upload.get("type")))

    for part in message.get("parts") or []:
        if isinstance(part, dict) and part.get("type") == "file" and isinstance(part.get("url"), str):
            if is_http_url(part["url"]):
                if (part.get("mediaType") or "").startswith("image/"):
                    items.append(image_item(part["url"]))
                else:
                    items.append(detect_item(part["url"]))
            else:
                items.append(file_item(part["url"], part.get("filename"), part.get("mediaType")))

    return _dedupe(items)
