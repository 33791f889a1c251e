"""Generate canonical provider text tags for a recipient list."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from signprep.submit.models import Recipient
from signprep.tags.classifier import classify_token
from signprep.tags.models import ProviderSubtype


@dataclass(frozen=True)
class TextTag:
    tag: str
    type: ProviderSubtype
    recipient: str
    recipient_index: int
    description: str


@dataclass
class TextTagValidation:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def signature_tag(recipient_index: int = 1, field_name: str = "signature") -> str:
    return f"{{{{*ES_:signer{recipient_index}:{field_name}}}}}"


def date_tag(recipient_index: int = 1, field_name: str = "date") -> str:
    return f"{{{{*ES_:signer{recipient_index}:{field_name}}}}}"


def text_tag(recipient_index: int = 1, field_name: str = "name") -> str:
    return f"{{{{{field_name}_es_:signer{recipient_index}}}}}"


def checkbox_tag(recipient_index: int = 1, field_name: str = "agree") -> str:
    return f"{{{{{field_name}_es_:signer{recipient_index}:checkbox}}}}"


def generate_text_tags(recipients: Sequence[Recipient], include_name: bool = False) -> list[TextTag]:
    """Signature and date tags (plus an optional name field) per recipient, 1-based."""

    tags: list[TextTag] = []
    for offset, recipient in enumerate(recipients):
        index = offset + 1
        label = recipient.name or recipient.email
        tags.append(
            TextTag(
                tag=signature_tag(index, f"signature_{index}"),
                type="signature",
                recipient=recipient.email,
                recipient_index=index,
                description=f"Signature field for {label}",
            )
        )
        tags.append(
            TextTag(
                tag=date_tag(index, f"date_{index}"),
                type="date",
                recipient=recipient.email,
                recipient_index=index,
                description=f"Date field for {label}",
            )
        )
        if include_name:
            tags.append(
                TextTag(
                    tag=text_tag(index, f"name_{index}"),
                    type="text",
                    recipient=recipient.email,
                    recipient_index=index,
                    description=f"Name field for {label}",
                )
            )
    return tags


def validate_text_tags(tags: Sequence[TextTag]) -> TextTagValidation:
    validation = TextTagValidation()
    seen: set[str] = set()
    for position, item in enumerate(tags, start=1):
        if not (item.tag.startswith("{{") and item.tag.endswith("}}")):
            validation.valid = False
            validation.errors.append(f"Tag {position}: must be wrapped in double curly braces")
        elif not classify_token(item.tag).is_provider:
            validation.valid = False
            validation.errors.append(f"Tag {position}: not a recognised provider tag: {item.tag}")
        if not item.recipient:
            validation.warnings.append(f"Tag {position}: no recipient specified")
        if item.tag in seen:
            validation.warnings.append(f"Tag {position}: duplicate field name {item.tag}")
        seen.add(item.tag)
    return validation


def text_tag_instructions(recipients: Sequence[Recipient], include_name: bool = False) -> str:
    """Plain-text instructions listing where each recipient's tags should go."""

    tags = generate_text_tags(recipients, include_name=include_name)
    lines = ["Text tag instructions", "=" * 21, ""]
    for offset, recipient in enumerate(recipients):
        index = offset + 1
        lines.append(f"Recipient {index}: {recipient.name or recipient.email}")
        lines.append("-" * 40)
        lines.extend(f"{item.description}: {item.tag}" for item in tags if item.recipient_index == index)
        lines.append("")
    lines.append("Place each tag exactly where the field should appear; do not split a tag across lines.")
    return "\n".join(lines)
