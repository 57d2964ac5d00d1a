import pytest

from checkmate.core.errors import ValidationError
from checkmate.core.models import ContentKind
from checkmate.services.normalizer import (
    NO_CONTENT_MESSAGE,
    detect_item,
    extract_tiktok_id,
    extract_tweet_id,
    items_from_message,
    items_from_text,
    message_text,
    normalize_submission,
)


@pytest.mark.parametrize("url", [
    "https://twitter.com/nasa/status/1790000000000000001",
    "https://x.com/nasa/status/1790000000000000001?s=20",
    "https://mobile.twitter.com/nasa/status/1790000000000000001",
    "http://www.x.com/i/web/status/1790000000000000001",
])
def test_detects_tweet_links(url):
    item = detect_item(url)
    assert item.kind == ContentKind.TWITTER
    assert item.canonical_id == "1790000000000000001"
    assert item.resolved_url == "https://x.com/i/status/1790000000000000001"
    assert item.raw == url
    assert extract_tweet_id(url) == "1790000000000000001"


def test_detects_full_tiktok_link():
    item = detect_item("https://www.tiktok.com/@science.daily/video/7301234567890123456?is_from_webapp=1")
    assert item.kind == ContentKind.TIKTOK
    assert item.canonical_id == "7301234567890123456"
    assert item.resolved_url == "https://www.tiktok.com/@science.daily/video/7301234567890123456"


@pytest.mark.parametrize("url,code", [
    ("https://vm.tiktok.com/ZMabc123/", "ZMabc123"),
    ("https://vt.tiktok.com/ZSxyz789/?share=1", "ZSxyz789"),
    ("https://www.tiktok.com/t/ZTRq5WxYz/", "ZTRq5WxYz"),
])
def test_detects_short_tiktok_links(url, code):
    item = detect_item(url)
    assert item.kind == ContentKind.TIKTOK
    assert item.canonical_id == code
    assert "?" not in item.resolved_url
    assert extract_tiktok_id(url) == code


def test_generic_article_link_drops_fragment():
    item = detect_item("https://www.reuters.com/world/story-2024-05-01/?utm=x#comments")
    assert item.kind == ContentKind.URL
    assert item.resolved_url == "https://www.reuters.com/world/story-2024-05-01/?utm=x"
    assert item.canonical_id is None


def test_plain_prose_is_text():
    item = detect_item("The moon landing happened in 1969.")
    assert item.kind == ContentKind.TEXT
    assert item.resolved_url is None


def test_twitter_profile_link_is_a_plain_url():
    assert detect_item("https://x.com/nasa").kind == ContentKind.URL


def test_prose_with_links_yields_text_then_links():
    items = items_from_text("Is this true? https://x.com/nasa/status/123 and https://example.com/a.")
    assert [i.kind for i in items] == [ContentKind.TEXT, ContentKind.TWITTER, ContentKind.URL]
    assert items[2].resolved_url == "https://example.com/a"


def test_link_only_message_has_no_text_item():
    items = items_from_text("  https://vm.tiktok.com/ZMabc123/  ")
    assert len(items) == 1
    assert items[0].kind == ContentKind.TIKTOK


def test_normalize_proxy_shape_keeps_order_and_dedupes():
    items = normalize_submission({
        "content": "Scientists confirm water boils at 100°C at sea level.",
        "contents": ["https://x.com/nasa/status/1", "https://twitter.com/nasa/status/1"],
        "imageBase64": "data:image/png;base64,iVBORw0KGgo=",
    })
    assert [i.kind for i in items] == [ContentKind.TEXT, ContentKind.TWITTER, ContentKind.IMAGE]
    assert items[2].mime_type == "image/png"
    assert items[2].raw == "iVBORw0KGgo="


def test_bare_base64_image_defaults_to_jpeg():
    items = normalize_submission({"image": "/9j/4AAQSkZJRg=="})
    assert items[0].kind == ContentKind.IMAGE
    assert items[0].mime_type == "image/jpeg"


@pytest.mark.parametrize("submission", [None, "", "   ", [], {}, {"content": "  ", "contents": []}])
def test_no_content_is_a_validation_error(submission):
    with pytest.raises(ValidationError) as exc:
        normalize_submission(submission)
    assert exc.value.message == NO_CONTENT_MESSAGE
    assert exc.value.status_code == 400


def test_message_text_prefers_text_parts():
    message = {
        "role": "user",
        "content": "ignored",
        "parts": [{"type": "text", "text": "first"}, {"type": "file", "url": "x"}, {"type": "text", "text": "second"}],
    }
    assert message_text(message) == "first\nsecond"
    assert message_text({"role": "user", "content": "plain"}) == "plain"


def test_items_from_message_collects_links_and_files():
    message = {
        "role": "user",
        "content": "Check this claim about vaccines",
        "data": {
            "links": ["https://www.bbc.com/news/health-1", "not a link"],
            "files": [
                {"name": "report.pdf", "type": "application/pdf", "data": "data:application/pdf;base64,JVBERi0x"},
                {"name": "photo.png", "type": "image/png", "data": "iVBORw0KGgo="},
            ],
        },
    }
    items = items_from_message(message)
    assert [i.kind for i in items] == [ContentKind.TEXT, ContentKind.URL, ContentKind.FILE, ContentKind.IMAGE]
    assert items[2].filename == "report.pdf"
    assert items[2].raw == "JVBERi0x"
    assert items[3].filename == "photo.png"


def test_items_from_message_reads_file_parts():
    message = {
        "role": "user",
        "parts": [
            {"type": "text", "text": "What does this slide claim?"},
            {"type": "file", "mediaType": "application/pdf", "filename": "deck.pdf", "url": "data:application/pdf;base64,AAAA"},
        ],
    }
    items = items_from_message(message)
    assert [i.kind for i in items] == [ContentKind.TEXT, ContentKind.FILE]
    assert items[1].mime_type == "application/pdf"
