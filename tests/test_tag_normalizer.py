from __future__ import annotations

from signprep.tags.classifier import classify, ordinary_variable_names
from signprep.tags.normalizer import canonical_form, normalization_report, normalize


def test_normalize_rewrites_single_brace_provider_tags_only() -> None:
    text = "Sign {sig_es_:signer1:signature} for {clientName} on {signer1:date}"

    assert normalize(text) == (
        "Sign {{sig_es_:signer1:signature}} for {clientName} on {{signer1:date}}"
    )


def test_normalize_is_idempotent_and_keeps_ordinary_tokens() -> None:
    text = "{a} {{signer2:signature}} {b} {Sig_es_:signer1} {a:b}"

    once = normalize(text)

    assert normalize(once) == once
    assert ordinary_variable_names(once) == ordinary_variable_names(text) == ["a", "b"]
    assert "{a:b}" in once


def test_already_canonical_text_is_unchanged() -> None:
    text = "{{*ES_:signer1:signature}} and {{signer1:date}}"

    assert normalize(text) == text


def test_canonical_form_keeps_body_verbatim() -> None:
    tag = classify("{ signer1:signature }")[0]

    assert canonical_form(tag) == "{{ signer1:signature }}"


def test_normalization_report_counts_brace_styles() -> None:
    report = normalization_report("{signer1:date} {{signer2:date}} {{signer2:signature}} {name}")

    assert report.single_brace_count == 1
    assert report.double_brace_count == 2
    assert report.has_provider_tags
    assert report.has_mixed_formats
