from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict

from checkmate.core.models import InvestigationType


class Toolset(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    tools: Tuple[str, ...]


_ANSWER_RULES = """
Work method:
- Use your tools to gather evidence before concluding. Cite what they return; never invent sources.
- If a tool fails, try another tool or proceed with the evidence you have.
- When you have enough evidence, stop calling tools and answer.

Scoring:
- truthfulnessScore is 0-100. 75 or above means "true", 40-74 "partially-true", below 40 "false".
- Use "unverifiable" only when the available evidence cannot support any judgment.
"""

SOCIAL_POST_PROMPT = """
You are a Social Media Investigation Agent. You assess posts from platforms such as X/Twitter and TikTok.
1. Evaluate the credibility of the author account and of any linked sources
2. Classify each source as primary or secondary
3. Analyze the post's sentiment, political leaning and the belief drivers it relies on
4. Search the web for independent coverage and compare it with the post
5. Compile the sentiment analyses into a visualization when you have analyzed both sides
""" + _ANSWER_RULES

CLAIM_VERIFICATION_PROMPT = """
You are a Fact-Checking Investigation Agent. You verify concrete factual claims such as news
statements, statistics and quotes.
1. Identify the checkable claims in the content
2. Verify each important claim individually against web evidence
3. Weigh the credibility of the sources that support or contradict each claim
""" + _ANSWER_RULES

DEEP_RESEARCH_PROMPT = """
You are a Research Investigation Agent for science, finance, business and history topics.
1. Break the subject into the questions that decide whether the content is accurate
2. Research each question with web searches, preferring authoritative and primary sources
3. Look up companies and organizations when ownership, registration or status matters
4. Verify the central claims and explain any nuance or missing context
""" + _ANSWER_RULES

COMPARATIVE_PROMPT = """
You are a Comparative Analysis Agent. The content contains several sources or viewpoints on one topic.
1. Summarize what each source claims
2. Compare the user-provided sources with external reporting, point by point
3. Analyze sentiment and political leaning of each side and compile them into a visualization
4. Rate the credibility of every source and classify it as primary or secondary
""" + _ANSWER_RULES


TOOLSETS: Dict[InvestigationType, Toolset] = {
    InvestigationType.SOCIAL_POST_ANALYSIS: Toolset(
        system_prompt=SOCIAL_POST_PROMPT,
        tools=(
            "evaluate_source_credibility",
            "classify_source_type",
            "analyze_sentiment_political",
            "web_search",
            "compare_user_source_to_external",
            "generate_visualization",
        ),
    ),
    InvestigationType.CLAIM_VERIFICATION: Toolset(
        system_prompt=CLAIM_VERIFICATION_PROMPT,
        tools=("verify_fact", "web_search", "evaluate_source_credibility", "classify_source_type"),
    ),
    InvestigationType.DEEP_RESEARCH: Toolset(
        system_prompt=DEEP_RESEARCH_PROMPT,
        tools=("web_search", "verify_fact", "get_company_info", "classify_source_type", "evaluate_source_credibility"),
    ),
    InvestigationType.COMPARATIVE_ANALYSIS: Toolset(
        system_prompt=COMPARATIVE_PROMPT,
        tools=(
            "compare_user_source_to_external",
            "analyze_sentiment_political",
            "generate_visualization",
            "web_search",
            "evaluate_source_credibility",
            "classify_source_type",
        ),
    ),
}
