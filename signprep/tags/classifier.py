"""Classifier separating template variables from signature-provider tags.

Every bracketed token is exactly one of:

- ``provider``: matches the provider-tag grammar below, in either brace style.
- ``ordinary``: non-empty body without ``*`` or ``:``; filled in by rendering.
- ``noise``: anything else (reported, never substituted).

Provider patterns overlap. They are tried most specific first, so a pattern
carrying an explicit subtype wins over the generic ``signerN`` fallbacks.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from signprep.tags.models import BraceStyle, ProviderSubtype, Tag, TagKind

_TOKEN_RE = re.compile(r"\{\{([^{}]*)\}\}|\{([^{}]*)\}")
_SIGNER_INDEX_RE = re.compile(r"signer(\d+)", re.IGNORECASE)

_N = r"(?P<n>[1-9]\d*)"

# (pattern, explicit subtype). ``None`` derives the subtype from the body text.
_PROVIDER_GRAMMAR: tuple[tuple[re.Pattern[str], ProviderSubtype | None], ...] = (
    (re.compile(rf"sig\d*_es_:signer{_N}(?::signature)?", re.IGNORECASE), "signature"),
    (re.compile(rf"\*es_:signer{_N}:\w+", re.IGNORECASE), None),
    (re.compile(rf"date_es_:signer{_N}:date", re.IGNORECASE), "date"),
    (re.compile(rf"initial_es_:signer{_N}(?::\w+)?", re.IGNORECASE), "initial"),
    (re.compile(rf"text_es_:signer{_N}:\w+", re.IGNORECASE), "text"),
    (re.compile(rf"check_es_:signer{_N}:\w+", re.IGNORECASE), "checkbox"),
    (re.compile(rf"esig_\w+:signer{_N}", re.IGNORECASE), "signature"),
    (re.compile(rf"signer{_N}:date", re.IGNORECASE), "date"),
    (re.compile(rf"signer{_N}:signature", re.IGNORECASE), "signature"),
    (re.compile(rf"signer{_N}:initials?", re.IGNORECASE), "initial"),
    (re.compile(rf"\w+_es_:signer{_N}(?::\w+)*", re.IGNORECASE), None),
)

_GENERIC_SUBTYPE_MARKERS = (":signature", ":initial", ":date")
_TRAILING_SIGNER_RE = re.compile(rf"\w*signer{_N}", re.IGNORECASE)

_PROVIDER_NAME_MARKERS = ("signer", "sig_es", "_es_", "signature", "date_es")


def classify(text: str) -> list[Tag]:
    """Return every bracketed token in ``text`` in positional order."""

    tags: list[Tag] = []
    for match in _TOKEN_RE.finditer(text):
        if match.group(1) is not None:
            body = match.group(1)
            brace_style: BraceStyle = "double"
        else:
            body = match.group(2)
            brace_style = "single"
        tags.append(_build_tag(match.group(0), body, brace_style, match.start(), match.end()))
    return tags


def classify_token(raw: str) -> Tag:
    """Classify a single raw token such as ``{name}`` or ``{{signer1:date}}``."""

    tags = classify(raw)
    if len(tags) != 1 or tags[0].span != (0, len(raw)):
        return Tag(raw=raw, body=raw, brace_style="single", kind="noise", span=(0, len(raw)))
    return tags[0]


def is_provider_tag(raw: str) -> bool:
    return classify_token(raw).is_provider


def provider_tags(text: str) -> list[Tag]:
    return [tag for tag in classify(text) if tag.is_provider]


def count_provider_tags(text: str) -> int:
    return len(provider_tags(text))


def ordinary_variable_names(text: str | Iterable[Tag]) -> list[str]:
    """Unique ordinary variable names in first-seen order."""

    tags = classify(text) if isinstance(text, str) else text
    names: list[str] = []
    seen: set[str] = set()
    for tag in tags:
        if tag.is_ordinary and tag.name not in seen:
            names.append(tag.name)
            seen.add(tag.name)
    return names


def looks_like_provider_name(name: str) -> bool:
    """Name heuristic used by the bypass renderer to skip provider-ish keys."""

    lowered = name.lower()
    return any(marker in lowered for marker in _PROVIDER_NAME_MARKERS)


def mentions_provider_vocabulary(text: str) -> bool:
    """True when free text (e.g. an offending tag fragment) uses provider vocabulary."""

    lowered = text.lower()
    return "sig_es_" in lowered or "*es_" in lowered or "signer" in lowered


def _build_tag(raw: str, body: str, brace_style: BraceStyle, start: int, end: int) -> Tag:
    match = _match_provider(body.strip())
    if match is not None:
        subtype, recipient_index = match
        return Tag(
            raw=raw,
            body=body,
            brace_style=brace_style,
            kind="provider",
            span=(start, end),
            provider_subtype=subtype,
            recipient_index=recipient_index,
        )

    kind: TagKind = "noise"
    stripped = body.strip()
    if stripped and "*" not in stripped and ":" not in stripped:
        kind = "ordinary"
    return Tag(raw=raw, body=body, brace_style=brace_style, kind=kind, span=(start, end))


def _match_provider(body: str) -> tuple[ProviderSubtype, int | None] | None:
    if not body:
        return None

    for pattern, subtype in _PROVIDER_GRAMMAR:
        match = pattern.fullmatch(body)
        if match is not None:
            return subtype or _derive_subtype(body), int(match.group("n"))

    lowered = body.lower()
    if "signer" in lowered and any(marker in lowered for marker in _GENERIC_SUBTYPE_MARKERS):
        return _derive_subtype(body), _recipient_index(body)

    match = _TRAILING_SIGNER_RE.fullmatch(body)
    if match is not None:
        return "signature", int(match.group("n"))

    return None


def _derive_subtype(body: str) -> ProviderSubtype:
    lowered = body.lower()
    if "text_es_" in lowered:
        return "text"
    if "check_es_" in lowered or ":checkbox" in lowered:
        return "checkbox"
    if "date" in lowered:
        return "date"
    if "initial" in lowered:
        return "initial"
    return "signature"


def _recipient_index(body: str) -> int | None:
    match = _SIGNER_INDEX_RE.search(body)
    if match is None:
        return None
    value = int(match.group(1))
    return value if value > 0 else None
