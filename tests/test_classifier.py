import asyncio
import json

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from checkmate.core.config import Config
from checkmate.core.models import CombinedContent, InvestigationType
from checkmate.services.classifier.agent import InvestigationTypeClassifier

CONTENT = CombinedContent(text="[Source 1: text]\nScientists confirm water boils at 100°C at sea level.", source_count=1)


def _classify(llm, settings=None):
    classifier = InvestigationTypeClassifier(settings or Config(), llm=llm)
    return asyncio.run(classifier.classify(CONTENT))


def test_returns_model_decision():
    llm = FakeListChatModel(responses=[json.dumps({
        "investigation_type": "deep-research",
        "reasoning": "Scientific subject matter.",
    })])
    classification = _classify(llm)
    assert classification.investigation_type == InvestigationType.DEEP_RESEARCH
    assert classification.used_fallback is False
    assert classification.reasoning == "Scientific subject matter."


def test_accepts_fenced_json():
    llm = FakeListChatModel(responses=['```json\n{"investigation_type": "social-post-analysis"}\n```'])
    assert _classify(llm).investigation_type == InvestigationType.SOCIAL_POST_ANALYSIS


@pytest.mark.parametrize("reply", [
    '{"investigation_type": "astrology-reading"}',
    "I think this is a claim verification.",
    "[1, 2, 3]",
])
def test_invalid_answers_fall_back(reply):
    settings = Config(DEFAULT_INVESTIGATION_TYPE="comparative-analysis")
    classification = _classify(FakeListChatModel(responses=[reply]), settings)
    assert classification.investigation_type == InvestigationType.COMPARATIVE_ANALYSIS
    assert classification.used_fallback is True


def test_provider_error_falls_back_without_raising():
    def broken(_):
        raise ConnectionError("provider unavailable")

    classification = _classify(RunnableLambda(broken))
    assert classification.investigation_type == InvestigationType.CLAIM_VERIFICATION
    assert classification.used_fallback is True
    assert "provider unavailable" in classification.reasoning


def test_only_a_prefix_of_the_content_is_sent():
    seen = []

    def capture(prompt_value):
        seen.append(prompt_value.to_string())
        return '{"investigation_type": "claim-verification"}'

    long_content = CombinedContent(text="x" * 5000 + "TAIL-MARKER", source_count=1)
    classifier = InvestigationTypeClassifier(Config(CLASSIFIER_MAX_CHARS=100), llm=RunnableLambda(capture))
    asyncio.run(classifier.classify(long_content))
    assert "TAIL-MARKER" not in seen[0]
