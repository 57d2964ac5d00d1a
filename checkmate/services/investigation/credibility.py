import asyncio
import datetime
import logging
from typing import Any, Dict, List, Optional

import tldextract
import whois

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ESTABLISHED_OUTLETS = {
    "apnews.com", "reuters.com", "bbc.co.uk", "bbc.com", "npr.org", "nytimes.com",
    "washingtonpost.com", "theguardian.com", "economist.com", "ft.com", "wsj.com",
    "nature.com", "science.org", "who.int", "britannica.com", "afp.com",
}
FACT_CHECKERS = {"snopes.com", "politifact.com", "factcheck.org", "fullfact.org"}
INSTITUTIONAL_SUFFIXES = ("gov", "edu", "int", "mil")
SUSPICIOUS_SUFFIXES = {"ru", "xyz", "top", "click", "buzz", "info"}
SHORTENERS = {"bit.ly", "tinyurl.com", "t.co", "goo.gl", "ow.ly", "is.gd"}
SOCIAL_PLATFORMS = {"x.com", "twitter.com", "tiktok.com", "facebook.com", "instagram.com", "youtube.com", "reddit.com"}
NEW_DOMAIN_DAYS = 180


def extract_domain(url: str) -> str:
    """Registered domain of ``url`` (``news.bbc.co.uk/x`` -> ``bbc.co.uk``), or ``unknown``."""
    extracted = tldextract.extract(url)
    if not extracted.suffix:
        logger.warning(f"No suffix found for URL: {url}")
        return "unknown"
    return f"{extracted.domain}.{extracted.suffix}"


def _creation_date(record: Any) -> Optional[datetime.datetime]:
    created = getattr(record, "creation_date", None)
    if isinstance(created, list):
        created = min((c for c in created if isinstance(c, datetime.datetime)), default=None)
    return created if isinstance(created, datetime.datetime) else None


async def domain_age_days(domain: str) -> Optional[int]:
    """Days since WHOIS registration, or None when the lookup fails."""
    if domain == "unknown":
        return None
    try:
        record = await asyncio.to_thread(whois.whois, domain)
    except Exception as e:
        logger.warning(f"WHOIS lookup failed for {domain}: {e}")
        return None
    created = _creation_date(record)
    if created is None:
        return None
    if created.tzinfo is not None:
        created = created.replace(tzinfo=None)
    return (datetime.datetime.now() - created).days


def _clamp(score: float) -> int:
    return max(1, min(10, round(score)))


def score_domain(domain: str, age_days: Optional[int] = None) -> Dict[str, Any]:
    score = 5.0
    signals: List[str] = []
    suffix = domain.rsplit(".", 1)[-1] if "." in domain else ""

    if domain in ESTABLISHED_OUTLETS:
        score += 3
        signals.append("established news or reference outlet")
    if domain in FACT_CHECKERS:
        score += 3
        signals.append("recognized fact-checking organization")
    if suffix in INSTITUTIONAL_SUFFIXES:
        score += 3
        signals.append(f"institutional .{suffix} domain")
    if suffix in SUSPICIOUS_SUFFIXES:
        score -= 2
        signals.append(f".{suffix} top-level domain is common in low-quality sites")
    if domain in SHORTENERS:
        score -= 2
        signals.append("URL shortener hides the real destination")
    if domain in SOCIAL_PLATFORMS:
        signals.append("user-generated content platform; credibility depends on the author")
    if age_days is not None:
        if age_days < NEW_DOMAIN_DAYS:
            score -= 3
            signals.append(f"domain registered only {age_days} days ago")
        elif age_days > 365 * 5:
            score += 1
            signals.append(f"domain registered {age_days // 365} years ago")
    if domain == "unknown":
        score -= 1
        signals.append("domain could not be determined")

    return {"score": _clamp(score), "signals": signals}


def score_profile(platform: str, profile: Dict[str, Any]) -> Dict[str, Any]:
    """Heuristic score for a social media account from whatever profile data is known."""
    score = 5.0
    signals: List[str] = []

    followers = profile.get("followers") or profile.get("followers_count") or profile.get("followersCount")
    if isinstance(followers, (int, float)):
        if followers >= 100_000:
            score += 2
            signals.append(f"large audience ({int(followers)} followers)")
        elif followers < 100:
            score -= 1
            signals.append(f"very small audience ({int(followers)} followers)")

    if profile.get("verified") is True:
        score += 1
        signals.append(f"verified account on {platform}")

    age = profile.get("account_age_days") or profile.get("accountAgeDays")
    if isinstance(age, (int, float)):
        if age < 90:
            score -= 2
            signals.append(f"account created {int(age)} days ago")
        elif age > 365 * 3:
            score += 1
            signals.append("long-standing account")

    if not signals:
        signals.append("no profile data available; neutral score")
    return {"score": _clamp(score), "signals": signals}
