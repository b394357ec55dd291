"""
Response sanitizer and repair for the main LLM answer.

The generation model is asked for a JSON object ({content, confidence,
redirections}) but regularly wraps it in <think> reasoning, markdown fences,
or emits broken escape sequences (PHP namespaces are the usual victims).

Cleaning (always applied, in order):
1. strip <think>...</think> spans and stray tags
2. keep only the interior of a fenced json block, if any
3. apply the literal repair table

Parse strategies (first one returning a reply wins):
- parse the repaired text
- parse after aggressive re-escaping
- extract content-like string fields heuristically

When every strategy returns None the raw text is returned verbatim with
confidence 70 and ``parsing_error`` set.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from loguru import logger

from .models import Redirection, StructuredReply


DEFAULT_CONFIDENCE = 80
FALLBACK_CONFIDENCE = 70
EMPTY_RESPONSE_PLACEHOLDER = "The model returned an empty response."

CODE_FILE_EXTENSIONS: Tuple[str, ...] = (
    "php", "py", "js", "ts", "jsx", "tsx", "java", "rb", "go", "rs", "c", "cpp",
    "h", "cs", "kt", "swift", "html", "css", "scss", "sql", "sh", "yml", "yaml",
    "json", "xml", "twig", "vue",
)

RESERVED_FIELDS = ("content", "confidence", "redirections")

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_STRAY_THINK_TAG = re.compile(r"</?think>", re.IGNORECASE)
_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_VALID_JSON_ESCAPES = frozenset('"\\/bfnrtu')
_CODE_FILE_NAME = re.compile(r"\.(?:" + "|".join(CODE_FILE_EXTENSIONS) + r")$", re.IGNORECASE)

# "name": "string value", tolerant of raw newlines inside the value
_STRING_FIELD = re.compile(r'"([^"\\\n]+)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_CONFIDENCE_FIELD = re.compile(r'"confidence"\s*:\s*"?(-?\d+(?:\.\d+)?)')


def _fix_invalid_escape(match: "re.Match") -> str:
    char = match.group(1)
    if char in _VALID_JSON_ESCAPES:
        return match.group(0)
    # \' is not a JSON escape
    if char == "'":
        return char
    return "\\\\" + char


# (description, pattern, replacement), applied in order
LITERAL_REPAIRS: List[Tuple[str, "re.Pattern", Any]] = [
    # App\\\\Http\\\\Kernel -> App\\Http\\Kernel
    ("double-escaped namespace separator", re.compile(r"(?<=\w)\\{4}(?=\w)"), r"\\\\"),
    # App\Http\Kernel -> App\\Http\\Kernel, it\'s -> it's
    ("invalid escape sequence", re.compile(r"\\(.)", re.DOTALL), _fix_invalid_escape),
]


def strip_think_blocks(text: str) -> str:
    """
    Remove <think> reasoning from model output.

    If nothing is left, fall back to whatever follows the last closing tag,
    then to the original text.
    """
    stripped = _STRAY_THINK_TAG.sub("", _THINK_BLOCK.sub("", text)).strip()
    if stripped:
        return stripped

    parts = re.split(r"</think>", text, flags=re.IGNORECASE)
    if len(parts) > 1 and parts[-1].strip():
        return parts[-1].strip()
    return text


def extract_json_fence(text: str) -> str:
    match = _JSON_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text


def apply_literal_repairs(text: str) -> str:
    repaired = text
    for description, pattern, replacement in LITERAL_REPAIRS:
        updated = pattern.sub(replacement, repaired)
        if updated != repaired:
            logger.debug("Applied literal repair", repair=description)
        repaired = updated
    return repaired


def aggressive_reescape(text: str) -> str:
    """Double every backslash not escaping a quote, then collapse quadruple escaping."""
    doubled = re.sub(r'\\(?!")', r"\\\\", text)
    return re.sub(r"\\{4}", r"\\\\", doubled)


def coerce_confidence(value: Any, default: int = DEFAULT_CONFIDENCE) -> int:
    """Return ``value`` as an int in [0, 100], or ``default`` when it is not one."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or not 0 <= number <= 100:
        return default
    return int(round(number))


def coerce_redirections(value: Any) -> List[Redirection]:
    if not isinstance(value, (list, tuple)):
        return []

    redirections = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            redirections.append(Redirection(**item))
        except (TypeError, ValueError) as e:
            logger.debug("Dropping invalid redirection", error=str(e))
    return redirections


def is_supplementary_field(name: str) -> bool:
    """Field names that carry extra answer text: '*content*' or a code file name."""
    return "content" in name.lower() or bool(_CODE_FILE_NAME.search(name))


def _labelled(name: str, value: str) -> str:
    return f"{name}:\n{value}"


def build_reply(data: Dict[str, Any]) -> Optional[StructuredReply]:
    """
    Post-validate a parsed object into a StructuredReply.

    Returns None when there is no usable ``content``.
    """
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        return None

    extras = [
        _labelled(name, value) for name, value in data.items()
        if name not in RESERVED_FIELDS
        and isinstance(value, str) and value.strip()
        and is_supplementary_field(name)
    ]
    if extras:
        content = "\n\n".join([content] + extras)

    return StructuredReply(
        content=content,
        confidence=coerce_confidence(data.get("confidence")),
        redirections=coerce_redirections(data.get("redirections", [])),
        parsing_error=False
    )


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate, strict=False)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _unescape(value: str) -> str:
    try:
        return json.loads('"' + value + '"', strict=False)
    except ValueError:
        return (value.replace("\\n", "\n")
                     .replace("\\t", "\t")
                     .replace('\\"', '"')
                     .replace("\\\\", "\\"))


@dataclass
class SanitizerInput:
    """The raw model output and its cleaned forms."""
    raw: str
    cleaned: str
    repaired: str


def parse_repaired(payload: SanitizerInput) -> Optional[StructuredReply]:
    data = _load_object(payload.repaired)
    return build_reply(data) if data is not None else None


def parse_reescaped(payload: SanitizerInput) -> Optional[StructuredReply]:
    data = _load_object(aggressive_reescape(payload.cleaned))
    return build_reply(data) if data is not None else None


def extract_fields(payload: SanitizerInput) -> Optional[StructuredReply]:
    """
    Pull content-like string fields out of text that will not parse.

    One match yields its value; several are joined in encounter order, each
    labelled with its field name.
    """
    fields = [
        (name, _unescape(value)) for name, value in _STRING_FIELD.findall(payload.cleaned)
        if is_supplementary_field(name)
    ]
    fields = [(name, value) for name, value in fields if value.strip()]
    if not fields:
        return None

    if len(fields) == 1:
        content = fields[0][1]
    else:
        content = "\n\n".join(_labelled(name, value) for name, value in fields)

    confidence_match = _CONFIDENCE_FIELD.search(payload.cleaned)
    confidence = coerce_confidence(
        confidence_match.group(1) if confidence_match else None,
        default=FALLBACK_CONFIDENCE
    )

    return StructuredReply(content=content, confidence=confidence, redirections=[], parsing_error=False)


PARSE_STRATEGIES: List[Tuple[str, Callable[[SanitizerInput], Optional[StructuredReply]]]] = [
    ("repaired", parse_repaired),
    ("reescaped", parse_reescaped),
    ("field_extraction", extract_fields),
]


def prepare(raw: str) -> SanitizerInput:
    cleaned = extract_json_fence(strip_think_blocks(raw))
    return SanitizerInput(raw=raw, cleaned=cleaned, repaired=apply_literal_repairs(cleaned))


def sanitize_llm_response(raw: str) -> StructuredReply:
    """
    Turn raw model output into a StructuredReply. Never raises.

    Args:
        raw: Text returned by the generation model

    Returns:
        StructuredReply with non-empty content
    """
    payload = prepare(raw or "")

    for name, strategy in PARSE_STRATEGIES:
        reply = strategy(payload)
        if reply is not None:
            logger.debug("LLM response parsed", strategy=name, confidence=reply.confidence)
            return reply

    logger.warning("Failed to parse structured output from LLM, returning raw text",
                   response_length=len(raw or ""))

    content = raw if raw and raw.strip() else EMPTY_RESPONSE_PLACEHOLDER
    return StructuredReply(
        content=content,
        confidence=FALLBACK_CONFIDENCE,
        redirections=[],
        parsing_error=True
    )
