"""
QR payload parser.

Badges in the field carry anything from clean JSON to hand-typed key/value
text. ``parse_payload`` tries, in order:

1. strict JSON (text starting with ``{``)
2. lenient JSON (single quotes, unquoted keys) on the first ``{...}`` block
3. delimited ``KEY: value`` text with at least two recognized keys
4. the trimmed text itself as a bare identifier

The first branch that yields an id wins; branches are never merged.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Alias lists are priority-ordered: earlier keys win when several are present.
ID_KEYS: tuple[str, ...] = ("ID", "id", "dni", "codigo")
NAME_KEYS: tuple[str, ...] = ("alumno", "nombre", "Usuario ejemplo", "name")
GRADE_KEYS: tuple[str, ...] = ("GS", "grado", "seccion", "grade")
GUARDIAN_KEYS: tuple[str, ...] = ("Tutor", "padre", "tutor", "Padre/tutor", "guardian")
CONTACT_KEYS: tuple[str, ...] = ("contacto", "celular", "telefono", "whatsapp", "phone")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": NAME_KEYS,
    "grade": GRADE_KEYS,
    "guardian": GUARDIAN_KEYS,
    "contact": CONTACT_KEYS,
}

MIN_KV_RECOGNIZED_KEYS = 2

_BRACE_BLOCK = re.compile(r"\{.*\}", re.DOTALL)
_UNQUOTED_KEY = re.compile(r'([{,]\s*)([^\s"{},:\[\]][^"{},:\[\]]*?)\s*:')
_KV_LINE_SPLIT = re.compile(r"[\n\r;|,]")
_KV_PAIR_SPLIT = re.compile(r"[:=]")
_KEY_STRIP = "\"'{}[] \t"
_VALUE_STRIP = "\"'{}[] \t"


def _upper_unique(keys: tuple[str, ...]) -> tuple[str, ...]:
    seen: list[str] = []
    for key in keys:
        upper = key.upper()
        if upper not in seen:
            seen.append(upper)
    return tuple(seen)


_ID_KEYS_UPPER = _upper_unique(ID_KEYS)
_FIELD_ALIASES_UPPER = {field: _upper_unique(keys) for field, keys in FIELD_ALIASES.items()}
_RECOGNIZED_UPPER: frozenset[str] = frozenset(
    _ID_KEYS_UPPER + tuple(k for keys in _FIELD_ALIASES_UPPER.values() for k in keys)
)


@dataclass(frozen=True)
class ParsedIdentity:
    id: str
    name: str | None = None
    grade: str | None = None
    guardian: str | None = None
    contact: str | None = None
    source: str = "bare"  # strict_json | lenient_json | key_value | bare


def _coerce_text(value: Any) -> str | None:
    """Coerce a payload value to text; ``None`` when it carries nothing usable."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        text = str(value)
    elif isinstance(value, float):
        # 74859632.0 -> "74859632"; keep every digit of integral values.
        text = str(int(value)) if value.is_integer() else repr(value)
    else:
        text = str(value)
    text = text.strip()
    return text or None


def _first_alias(lookup: Callable[[str], Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        text = _coerce_text(lookup(key))
        if text is not None:
            return text
    return None


def _from_mapping(data: dict[str, Any], source: str) -> ParsedIdentity | None:
    identity = _first_alias(data.get, ID_KEYS)
    if identity is None:
        return None
    fields = {field: _first_alias(data.get, keys) for field, keys in FIELD_ALIASES.items()}
    return ParsedIdentity(id=identity, source=source, **fields)


def _parse_strict_json(text: str) -> ParsedIdentity | None:
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return _from_mapping(data, "strict_json")


def _normalize_lenient_json(block: str) -> str:
    normalized = block.replace("'", '"')
    return _UNQUOTED_KEY.sub(lambda m: f'{m.group(1)}"{m.group(2).strip()}":', normalized)


def _parse_lenient_json(text: str) -> ParsedIdentity | None:
    match = _BRACE_BLOCK.search(text)
    if not match:
        return None
    candidate = _normalize_lenient_json(match.group(0))
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return _from_mapping(data, "lenient_json")


def _parse_key_value(text: str) -> ParsedIdentity | None:
    pairs: dict[str, str] = {}
    for line in _KV_LINE_SPLIT.split(text):
        parts = _KV_PAIR_SPLIT.split(line, maxsplit=1)
        if len(parts) != 2:
            continue
        key = parts[0].strip(_KEY_STRIP).upper()
        value = parts[1].strip(_VALUE_STRIP)
        if not key or key in pairs:
            continue
        pairs[key] = value

    recognized = [key for key in pairs if key in _RECOGNIZED_UPPER]
    if len(recognized) < MIN_KV_RECOGNIZED_KEYS:
        return None

    identity = _first_alias(pairs.get, _ID_KEYS_UPPER)
    if identity is None:
        return None
    fields = {
        field: _first_alias(pairs.get, keys) for field, keys in _FIELD_ALIASES_UPPER.items()
    }
    return ParsedIdentity(id=identity, source="key_value", **fields)


def parse_payload(raw: str | None) -> ParsedIdentity | None:
    """
    Returns the canonical identity for a raw QR payload, or ``None`` when the
    payload is empty (the caller reports "QR not recognized").

    Never raises.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None

    for branch in (_parse_strict_json, _parse_lenient_json, _parse_key_value):
        parsed = branch(text)
        if parsed is not None:
            logger.debug("Parsed payload via %s: id=%s", parsed.source, parsed.id)
            return parsed

    return ParsedIdentity(id=text, source="bare")
