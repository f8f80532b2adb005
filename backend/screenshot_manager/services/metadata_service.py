"""
Screenshot Manager API - Metadata Pipeline
==========================================

What:  Converts screenshot annotations between three shapes:
         raw caller input   {"description": " Login bug ", "tags": ["UI", "ui"]}
         application form   {"description": "Login bug", "tags": ["UI"]}
         store encoding     {"description": "Login bug", "tags": "[\"UI\"]"}
How:   Pure functions; no I/O. ScreenshotService chains them for an update:
         validate(raw) → prepare_update(raw) → check_size → merge → encode
Who:   ScreenshotService (update/read paths) and the tests.

Store constraints:
    The object store keeps custom metadata as a flat string → string map with
    a 2 KB ceiling. Tags are therefore stored as JSON array text. Empty fields
    are omitted from the map, so "absent" and "never set" are the same thing
    on the way back.

    S3 user metadata travels as HTTP headers and must be ASCII. Text fields
    are percent-encoded outside printable ASCII ("Café" → "Caf%C3%A9", and a
    literal "%" → "%25"); tags use JSON \\u escapes. The size ceiling applies
    to this encoded form, so non-Latin text costs several bytes per character.

Allow-listed fields:
    title        string, up to 120 characters
    description  string, up to 500 characters
    tags         list of up to 10 strings, each up to 50 characters,
                 unique case-insensitively
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

# ── Limits ────────────────────────────────────────────────────────────────
MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 500
MAX_TAGS = 10
MAX_TAG_LENGTH = 50
MAX_METADATA_BYTES = 2048

# Free-text fields and their maximum lengths, in error-report order
TEXT_FIELDS: Dict[str, int] = {
    "title": MAX_TITLE_LENGTH,
    "description": MAX_DESCRIPTION_LENGTH,
}
TAGS_FIELD = "tags"
ALLOWED_FIELDS = tuple(TEXT_FIELDS) + (TAGS_FIELD,)

# Printable ASCII except "%" is stored verbatim; everything else is escaped
_STORED_TEXT_SAFE = "".join(chr(code) for code in range(0x20, 0x7F) if chr(code) != "%")


@dataclass
class ValidationResult:
    """Outcome of `validate`: every failed check, not only the first."""

    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class SizeCheckResult:
    """Outcome of `check_size`: encoded byte size against the store ceiling."""

    valid: bool
    size: int
    limit: int = MAX_METADATA_BYTES


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list) and not value)


def _dedupe_tags(tags: List[str]) -> List[str]:
    """Drop case-insensitive repeats, keeping the first spelling seen."""
    seen = set()
    unique = []
    for tag in tags:
        folded = tag.lower()
        if folded in seen:
            continue
        seen.add(folded)
        unique.append(tag)
    return unique


# ══════════════════════════════════════════════════════════════════════════
# Input Normalization
# ══════════════════════════════════════════════════════════════════════════

def sanitize(raw: Any) -> Dict[str, Any]:
    """
    Normalize caller input into the application form.

    Text fields are coerced to str, trimmed, dropped when empty and truncated
    to their maximum length. Tags keep only non-blank strings, each trimmed and
    truncated, deduplicated case-insensitively (first occurrence wins), capped
    at MAX_TAGS and dropped when nothing is left. Unknown fields are dropped
    silently; `validate` is what reports them.

        >>> sanitize({"tags": ["a", "A", "a "]})
        {'tags': ['a']}
    """
    if not isinstance(raw, Mapping):
        return {}

    sanitized: Dict[str, Any] = {}

    for name, max_length in TEXT_FIELDS.items():
        value = raw.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            sanitized[name] = text[:max_length]

    tags = raw.get(TAGS_FIELD)
    if isinstance(tags, list):
        cleaned = [
            tag.strip()[:MAX_TAG_LENGTH]
            for tag in tags
            if isinstance(tag, str) and tag.strip()
        ]
        cleaned = _dedupe_tags(cleaned)[:MAX_TAGS]
        if cleaned:
            sanitized[TAGS_FIELD] = cleaned

    return sanitized


def validate(raw: Any) -> ValidationResult:
    """
    Check caller input against the field rules, accumulating all failures.

    Runs on the input as sent (before `sanitize`) so that error messages
    describe what the caller actually submitted. `None`, "" and [] are valid
    values meaning "clear this field".
    """
    if not isinstance(raw, Mapping):
        return ValidationResult(valid=False, errors=["Metadata must be an object"])

    errors: List[str] = []

    unknown = [name for name in raw if name not in ALLOWED_FIELDS]
    if unknown:
        errors.append(f"Unknown fields: {', '.join(str(name) for name in unknown)}")

    for name, max_length in TEXT_FIELDS.items():
        value = raw.get(name)
        if value is None:
            continue
        label = name.capitalize()
        if not isinstance(value, str):
            errors.append(f"{label} must be a string")
        elif len(value) > max_length:
            errors.append(
                f"{label} must not exceed {max_length} characters (got {len(value)})"
            )

    tags = raw.get(TAGS_FIELD)
    if tags is not None:
        if not isinstance(tags, list):
            errors.append("Tags must be a list")
        else:
            if len(tags) > MAX_TAGS:
                errors.append(f"Maximum {MAX_TAGS} tags allowed (got {len(tags)})")

            folded: List[str] = []
            for index, tag in enumerate(tags):
                if not isinstance(tag, str):
                    errors.append(f"Tag at index {index} must be a string")
                    continue
                if not tag.strip():
                    errors.append("Tags cannot be empty strings")
                elif len(tag) > MAX_TAG_LENGTH:
                    errors.append(
                        f'Tag "{tag}" exceeds maximum length of {MAX_TAG_LENGTH} characters'
                    )
                folded.append(tag.strip().lower())

            if len(set(folded)) != len(folded):
                errors.append("Duplicate tags are not allowed")

    return ValidationResult(valid=not errors, errors=errors)


def prepare_update(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Build the patch handed to `merge` for an update request.

    Sanitized values overlay the stored ones. A field the caller sent as None,
    "", [] or whitespace sanitizes away; it is carried as an explicit None so
    that `merge` deletes it instead of keeping the old value.
    """
    patch = sanitize(raw)
    for name in ALLOWED_FIELDS:
        if name in raw and name not in patch:
            patch[name] = None
    return patch


# ══════════════════════════════════════════════════════════════════════════
# Store Encoding
# ══════════════════════════════════════════════════════════════════════════

def encode(metadata: Mapping[str, Any]) -> Dict[str, str]:
    """
    Flatten application metadata into the store's string → string map.

    Text fields are percent-encoded outside printable ASCII, tags become
    ASCII JSON array text, empty or absent fields are left out of the map
    entirely. Every value in the result is pure ASCII.

        >>> encode({"title": "Café 100%", "tags": ["日本"]})
        {'title': 'Caf%C3%A9 100%25', 'tags': '["\\\\u65e5\\\\u672c"]'}
    """
    flat: Dict[str, str] = {}
    for name in TEXT_FIELDS:
        value = metadata.get(name)
        if isinstance(value, str) and value:
            flat[name] = quote(value, safe=_STORED_TEXT_SAFE)

    tags = metadata.get(TAGS_FIELD)
    if isinstance(tags, list) and tags:
        flat[TAGS_FIELD] = json.dumps(tags, ensure_ascii=True, separators=(",", ":"))

    return flat


def decode(flat: Any) -> Dict[str, Any]:
    """
    Rebuild application metadata from a stored map.

    Lossy-safe: stored tag text that is not a JSON list is read as "no tags",
    non-string entries in the list are skipped, unknown keys are ignored.
    Malformed stored data never blocks reading the object.
    """
    if not isinstance(flat, Mapping):
        return {}

    metadata: Dict[str, Any] = {}
    for name in TEXT_FIELDS:
        value = flat.get(name)
        if isinstance(value, str) and value:
            metadata[name] = unquote(value)

    raw_tags = flat.get(TAGS_FIELD)
    if raw_tags:
        try:
            tags = json.loads(raw_tags)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparsable stored tags: %r", raw_tags)
            tags = None
        if isinstance(tags, list):
            tags = [tag for tag in tags if isinstance(tag, str) and tag]
            if tags:
                metadata[TAGS_FIELD] = tags

    return metadata


def check_size(metadata: Mapping[str, Any]) -> SizeCheckResult:
    """Measure the byte size of the stored map (compact JSON) against the ceiling."""
    encoded = json.dumps(encode(metadata), separators=(",", ":"))
    size = len(encoded.encode("utf-8"))
    return SizeCheckResult(valid=size <= MAX_METADATA_BYTES, size=size)


# ══════════════════════════════════════════════════════════════════════════
# Merge-on-write
# ══════════════════════════════════════════════════════════════════════════

def merge(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Overlay `incoming` on `existing`, field by field.

    A field present in `incoming` with None, "" or [] is removed; any other
    value replaces the stored one wholesale (tags are never appended).
    Fields absent from `incoming` are kept, and names outside ALLOWED_FIELDS
    in `incoming` are ignored. Neither argument is modified.
    """
    merged = {
        name: list(value) if isinstance(value, list) else value
        for name, value in existing.items()
    }
    for name, value in incoming.items():
        if name not in ALLOWED_FIELDS:
            continue
        if _is_empty(value):
            merged.pop(name, None)
        else:
            merged[name] = list(value) if isinstance(value, list) else value
    return merged
