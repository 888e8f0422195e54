from __future__ import annotations

import json
import logging
import re
import ssl
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib import request, error

import os

from ..config import ReasoningConfig
from ..errors import ExtractionFailure
from ..models.suggestion import RawCandidate, TaskLabel

logger = logging.getLogger("app.extractor")

HttpPost = Callable[[str, Dict[str, str], Dict[str, Any], float], Dict[str, Any]]

PLACEHOLDER_TASK = "Review meeting notes"
DEFAULT_CONFIDENCE = 0.8
ORIGINAL_TEXT_PREFIX_CHARS = 100
MIN_FRAGMENT_CHARS = 4

# Deterministic fallback confidence: grows with fragment length, within bounds.
FALLBACK_CONFIDENCE_MIN = 0.6
FALLBACK_CONFIDENCE_MAX = 0.9
_FALLBACK_CONFIDENCE_FULL_AT = 80

# Keys tried, in order, when the response is an object rather than a bare array.
_CANDIDATE_KEYS = ("suggestions", "tasks", "candidates", "items")


def _http_post(url: str, headers: Dict[str, str], data: Dict[str, Any], timeout: float = 40) -> Dict[str, Any]:
    body = json.dumps(data).encode("utf-8")
    # Ensure we send a UA
    hdrs = {"User-Agent": "meeting-suggestions/1.0 python-urllib", **headers}
    req = request.Request(url, data=body, headers=hdrs, method="POST")
    # Be tolerant of environments with custom SSL; allow opt-out verify
    if os.getenv("SUGGEST_SSL_NO_VERIFY"):
        ctx = ssl._create_unverified_context()  # type: ignore[attr-defined]
    else:
        ctx = ssl.create_default_context()
    try:
        with request.urlopen(req, context=ctx, timeout=timeout) as resp:
            raw = resp.read()
            return json.loads(raw.decode("utf-8"))
    except error.HTTPError as e:
        try:
            payload = e.read().decode("utf-8")
        except Exception:
            payload = str(e)
        raise RuntimeError(f"HTTP {e.code}: {payload}")


def _truncate_text(t: str, max_chars: int = 12000) -> str:
    if len(t) <= max_chars:
        return t
    return t[: max_chars - 1000] + "\n...[truncated]...\n" + t[-1000:]


def _ensure_leading_capital(text: str) -> str:
    if not text:
        return text
    chars = list(text)
    for idx, ch in enumerate(chars):
        if ch.isalpha():
            chars[idx] = ch.upper()
            return "".join(chars)
    chars[0] = chars[0].upper()
    return "".join(chars)


# --------------------------------- Prompts --------------------------------
_SYSTEM_PROMPT = (
    "You are an intelligent task extraction and refinement assistant. Your role is to:\n"
    "1. Extract actionable tasks from meeting notes\n"
    "2. Transform vague, broad, or incomplete mentions into specific, actionable tasks\n"
    "3. Fill in missing details based on context and common business practices\n"
    "4. Break down high-level goals into concrete, executable steps\n\n"
    "CRITICAL INSTRUCTIONS:\n"
    '- When you encounter vague mentions like "work on X", "handle Y", "look into Z", '
    "transform them into specific actions\n"
    "- Add missing details: WHO should do it, WHAT specifically needs to be done, "
    "WHEN it's needed (if mentioned), and WHY it matters\n"
    "- Make every task title start with an action verb (Create, Review, Update, Schedule, "
    "Prepare, Design, Implement, etc.)\n\n"
    'Return a JSON object with a "suggestions" array, each containing:\n'
    "- originalText: the exact excerpt from the notes that led to this suggestion (quote directly)\n"
    "- suggestedTask: a concise, specific, actionable task title (8-12 words, action verb first)\n"
    "- suggestedDescription: 2-4 sentences explaining WHAT needs to be done, WHY it matters "
    "and HOW to approach it; never a copy of originalText\n"
    "- confidenceScore: 0.0-1.0, how clearly this is an actionable task"
)

_DUPLICATE_PROMPT = (
    "\n\nDUPLICATE DETECTION:\n"
    "When comparing with existing tasks, understand SEMANTIC MEANING and INTENT, not just word matching. "
    "Only suggest tasks that are genuinely new with unique goals, not variations of existing ones."
)

_RESPONSE_FORMAT_HINT = (
    'Format: {"suggestions": [{"originalText": "[exact quote]", "suggestedTask": "[refined task]", '
    '"suggestedDescription": "[description]", "confidenceScore": 0.8}, ...]}'
)


def build_messages(notes: str, existing: Sequence[TaskLabel]) -> List[Dict[str, str]]:
    """Build the chat messages for one extraction request."""
    if not existing:
        user = (
            "Extract and refine actionable tasks from these meeting notes:\n\n"
            + _truncate_text(notes)
            + '\n\nReturn a JSON object with a "suggestions" array.\n'
            + _RESPONSE_FORMAT_HINT
        )
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]

    listed: List[str] = []
    for i, label in enumerate(existing, start=1):
        entry = f'{i}. "{label.title}"'
        if label.description:
            entry += f"\n   Purpose: {label.description}"
        listed.append(entry)
    user = (
        "EXISTING TASKS (already created or proposed - DO NOT duplicate these in intent or purpose):\n\n"
        + "\n\n".join(listed)
        + "\n\nMEETING NOTES:\n"
        + _truncate_text(notes)
        + '\n\nReturn a JSON object with a "suggestions" array containing ONLY new, actionable tasks '
        + "that are not covered by existing tasks.\n"
        + _RESPONSE_FORMAT_HINT
    )
    return [
        {"role": "system", "content": _SYSTEM_PROMPT + _DUPLICATE_PROMPT},
        {"role": "user", "content": user},
    ]


# --------------------------------- Parsing --------------------------------
def _loads_json(s: str) -> Any:
    """Parse the model output as JSON.

    Tries the whole string first, then the outermost [...] or {...} block, starting with
    whichever opens first (models sometimes wrap JSON in prose or code fences).
    """
    s = s.strip()
    try:
        return json.loads(s)
    except ValueError:
        pass

    def opened_at(pair):
        pos = s.find(pair[0])
        return pos if pos != -1 else len(s)

    # whichever bracket opens first is the outer value
    for open_ch, close_ch in sorted((("{", "}"), ("[", "]")), key=opened_at):
        start = s.find(open_ch)
        end = s.rfind(close_ch)
        if start != -1 and end > start:
            try:
                return json.loads(s[start : end + 1])
            except ValueError:
                continue
    raise ExtractionFailure("response body is not JSON")


def parse_candidate_payload(content: str) -> List[Any]:
    """Return the candidate array from a model response.

    Accepted shapes, in order: a bare array; an object with the array under
    one of the known keys; an object with an array under any top-level key.
    """
    if not content or not content.strip():
        raise ExtractionFailure("empty response content")
    parsed = _loads_json(content)
    if isinstance(parsed, list):
        items = parsed
    elif isinstance(parsed, dict):
        items = None
        for key in _CANDIDATE_KEYS:
            if isinstance(parsed.get(key), list):
                items = parsed[key]
                break
        if items is None:
            items = next((v for v in parsed.values() if isinstance(v, list)), None)
        if items is None:
            raise ExtractionFailure(f"no candidate array in response; keys: {', '.join(map(str, parsed))}")
    else:
        raise ExtractionFailure(f"unexpected response type: {type(parsed).__name__}")
    if not items:
        raise ExtractionFailure("candidate array is empty")
    return items


def _text_field(item: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def synthesize_description(title: str) -> str:
    return (
        f"This task involves {title.rstrip('.').lower()}. "
        "Clarify the expected outcome with the people involved, break the work into clear steps "
        "and agree on a milestone for tracking progress."
    )


def repair_candidate(item: Dict[str, Any], notes: str) -> RawCandidate:
    """Fill in or clamp any missing or out-of-range field of one raw candidate."""
    original = _text_field(item, "originalText", "original_text")
    if original is None:
        original = notes.strip()[:ORIGINAL_TEXT_PREFIX_CHARS] or PLACEHOLDER_TASK
    title = _text_field(item, "suggestedTask", "suggested_task") or PLACEHOLDER_TASK
    description = _text_field(item, "suggestedDescription", "suggested_description")
    # A description that merely echoes the excerpt is not a description.
    if description is None or description == original:
        description = synthesize_description(title)

    score = item.get("confidenceScore", item.get("confidence_score"))
    if isinstance(score, (int, float)) and not isinstance(score, bool) and score == score:
        confidence = max(0.0, min(1.0, float(score)))
    else:
        confidence = DEFAULT_CONFIDENCE

    return RawCandidate(
        original_text=original,
        suggested_task=title,
        suggested_description=description,
        confidence_score=confidence,
    )


# ------------------------------ Local fallback ----------------------------
_FRAGMENT_SPLIT = re.compile(r"\r?\n|[.!?]")
_BULLET_PREFIX = re.compile(r"^[\s\-*•]+")


def _fallback_confidence(fragment: str) -> float:
    span = FALLBACK_CONFIDENCE_MAX - FALLBACK_CONFIDENCE_MIN
    weight = min(len(fragment), _FALLBACK_CONFIDENCE_FULL_AT) / _FALLBACK_CONFIDENCE_FULL_AT
    return round(FALLBACK_CONFIDENCE_MIN + span * weight, 2)


def fallback_candidates(notes: str) -> List[RawCandidate]:
    """Rule-based extraction: one candidate per line or sentence fragment."""
    out: List[RawCandidate] = []
    for raw in _FRAGMENT_SPLIT.split(notes or ""):
        fragment = _BULLET_PREFIX.sub("", raw).strip()
        if len(fragment) < MIN_FRAGMENT_CHARS:
            continue
        out.append(
            RawCandidate(
                original_text=fragment,
                suggested_task=_ensure_leading_capital(fragment),
                suggested_description=None,
                confidence_score=_fallback_confidence(fragment),
            )
        )
    return out


# -------------------------------- Extractor -------------------------------
class TextExtractor:
    """Turns meeting notes into raw task candidates.

    One request is made to the reasoning service when it is configured. Any
    failure (transport, HTTP status, timeout, unparsable or empty output)
    falls back to :func:`fallback_candidates`; ``extract`` never raises for
    extraction problems and there is no retry.
    """

    def __init__(self, config: ReasoningConfig, http_post: Optional[HttpPost] = None) -> None:
        self.config = config
        self._http_post = http_post or _http_post

    def extract(
        self,
        notes: str,
        existing_task_labels: Optional[Sequence[TaskLabel | Dict[str, Any]]] = None,
    ) -> List[RawCandidate]:
        notes = notes or ""
        labels = _coerce_labels(existing_task_labels)
        if not notes.strip():
            return []
        if not self.config.configured:
            logger.info("reasoning service not configured; using local fallback")
            return fallback_candidates(notes)
        try:
            return self._extract_remote(notes, labels)
        except ExtractionFailure as e:
            logger.warning(f"extraction failed, using local fallback: {e.message}")
        except Exception as e:
            logger.warning(f"reasoning service call failed, using local fallback: {type(e).__name__}: {e}")
        return fallback_candidates(notes)

    def _extract_remote(self, notes: str, labels: Sequence[TaskLabel]) -> List[RawCandidate]:
        cfg = self.config
        payload = {
            "model": cfg.model,
            "messages": build_messages(notes, labels),
            "temperature": cfg.temperature,
            "response_format": {"type": "json_object"},
        }
        res = self._http_post(
            cfg.api_url,
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {cfg.api_key}",
            },
            payload,
            cfg.timeout_s,
        )
        try:
            content = res["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExtractionFailure(f"malformed completion envelope: {e}")
        if not isinstance(content, str):
            raise ExtractionFailure("completion content is not text")

        items = parse_candidate_payload(content)
        candidates = [repair_candidate(item, notes) for item in items if isinstance(item, dict)]
        if not candidates:
            raise ExtractionFailure("no usable candidates in response")
        logger.info(f"reasoning service returned {len(candidates)} candidate(s)")
        return candidates


def _coerce_labels(labels: Optional[Sequence[TaskLabel | Dict[str, Any]]]) -> List[TaskLabel]:
    out: List[TaskLabel] = []
    for label in labels or []:
        if isinstance(label, TaskLabel):
            out.append(label)
        elif isinstance(label, dict) and str(label.get("title") or "").strip():
            desc = label.get("description")
            desc = str(desc).strip() if desc is not None else None
            out.append(TaskLabel(title=str(label["title"]).strip(), description=desc or None))
    return out
