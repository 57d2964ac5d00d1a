"""
Tolerant decoding of JSON-like strings produced by the model.

Tool arguments and final answers sometimes arrive as near-JSON: single quotes,
unquoted keys, Python literals, trailing commas, markdown fences. Decoding
cascades through increasingly lenient strategies and always terminates with
the raw string and ``ok=False`` rather than raising.
"""
import ast
import json
import re
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

_FENCE = re.compile(r"^\s*```(?:json|JSON)?\s*(.*?)\s*```\s*$", re.DOTALL)
_SINGLE_QUOTED = re.compile(r"'((?:[^'\\]|\\.)*)'")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)(\s*:)")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_PAIR = re.compile(
    r"""["']?([A-Za-z_][\w-]*)["']?\s*[:=]\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^,}\]\n]+)"""
)
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?$")


class LooseParse(BaseModel):
    value: Any = None
    ok: bool
    strategy: Literal["native", "strict", "normalized", "pairs", "raw"]


def strip_code_fences(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1) if match else text.strip()


def _outermost_json(text: str) -> str:
    """Slice from the first ``{``/``[`` to the matching last ``}``/``]`` when prose surrounds it."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    return text[start:end + 1] if end > start else text


def _normalize(text: str) -> str:
    text = text.replace("\u201c", "\"").replace("\u201d", "\"").replace("\u2018", "'").replace("\u2019", "'")
    text = _SINGLE_QUOTED.sub(lambda m: json.dumps(m.group(1).replace("\\'", "'")), text)
    text = _UNQUOTED_KEY.sub(r'\1"\2"\3', text)
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    return _TRAILING_COMMA.sub(r"\1", text)


def _scalar(token: str) -> Any:
    token = token.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    lowered = token.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    if _NUMBER.match(token):
        return float(token) if any(c in token for c in ".eE") else int(token)
    return token


def _pairs(text: str) -> Optional[Dict[str, Any]]:
    found = {key: _scalar(value) for key, value in _PAIR.findall(text)}
    return found or None


def parse_loose_json(raw: Any) -> LooseParse:
    """
    strict ``json.loads`` -> quote/key/literal normalization -> key/value
    pair extraction -> raw string with ``ok=False``.
    """
    if not isinstance(raw, str):
        return LooseParse(value=raw, ok=raw is not None, strategy="native")

    text = strip_code_fences(raw)
    candidate = _outermost_json(text)

    for attempt in (text, candidate):
        try:
            return LooseParse(value=json.loads(attempt), ok=True, strategy="strict")
        except ValueError:
            continue

    try:
        return LooseParse(value=json.loads(_normalize(candidate)), ok=True, strategy="normalized")
    except ValueError:
        pass
    try:
        value = ast.literal_eval(candidate)
        if isinstance(value, (dict, list)):
            return LooseParse(value=value, ok=True, strategy="normalized")
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        pass

    pairs = _pairs(candidate)
    if pairs:
        return LooseParse(value=pairs, ok=True, strategy="pairs")

    return LooseParse(value=raw, ok=False, strategy="raw")
