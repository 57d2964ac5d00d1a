from checkmate.core.models import ExtractionResult
from checkmate.services.combiner import SOURCE_SEPARATOR, combine
from checkmate.services.normalizer import detect_item


def _ok(raw, text, **metadata):
    return ExtractionResult.success(detect_item(raw), text, metadata)


def _failed(raw, error):
    return ExtractionResult.failure(detect_item(raw), error)


def test_blocks_follow_submission_order():
    combined = combine([
        _ok("https://x.com/nasa/status/1", "Tweet body", username="nasa"),
        _failed("https://vm.tiktok.com/ZMabc/", "Failed to scrape TikTok: Could not fetch TikTok video data"),
        _ok("User typed claim.", "User typed claim."),
    ])

    assert combined.source_count == 2
    assert combined.text == (
        "[Source 1: twitter https://x.com/i/status/1]\nTweet body"
        + SOURCE_SEPARATOR
        + "[Source 2: text]\nUser typed claim."
    )
    assert [s.label for s in combined.sources] == ["twitter https://x.com/i/status/1", "text"]
    assert combined.sources[0].metadata == {"username": "nasa"}
    assert len(combined.failures) == 1
    assert combined.failures[0].url == "https://vm.tiktok.com/ZMabc/"
    assert combined.failures[0].error.startswith("Failed to scrape TikTok")


def test_text_is_empty_only_when_everything_failed():
    combined = combine([_failed("https://example.com/a", "boom"), _failed("https://example.com/b", "boom")])
    assert combined.text == ""
    assert combined.source_count == 0
    assert len(combined.failures) == 2

    assert combine([_ok("https://example.com/a", "body")]).text != ""


def test_combining_is_repeatable():
    results = [_ok("first", "first"), _ok("second", "second")]
    assert combine(results) == combine(results)
