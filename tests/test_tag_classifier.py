from __future__ import annotations

import pytest

from signprep.tags.classifier import (
    classify,
    classify_token,
    count_provider_tags,
    is_provider_tag,
    looks_like_provider_name,
    mentions_provider_vocabulary,
    ordinary_variable_names,
    provider_tags,
)


def test_classify_separates_ordinary_and_provider_tags_in_order() -> None:
    text = "Client: {clientName} sign {sig_es_:signer1:signature}"

    tags = classify(text)

    assert [tag.raw for tag in tags] == ["{clientName}", "{sig_es_:signer1:signature}"]
    assert tags[0].kind == "ordinary"
    assert tags[0].name == "clientName"
    assert tags[0].brace_style == "single"
    assert tags[1].kind == "provider"
    assert tags[1].provider_subtype == "signature"
    assert tags[1].recipient_index == 1
    assert text[tags[1].start : tags[1].end] == tags[1].raw


@pytest.mark.parametrize(
    ("raw", "subtype", "recipient"),
    [
        ("{sig_es_:signer1}", "signature", 1),
        ("{{*ES_:signer1:signature}}", "signature", 1),
        ("{Sig_es_:signer2:signature}", "signature", 2),
        ("{Sig2_es_:signer3}", "signature", 3),
        ("{esig_company:signer1}", "signature", 1),
        ("{{date_es_:signer1:date}}", "date", 1),
        ("{signer2:date}", "date", 2),
        ("{signer4:signature}", "signature", 4),
        ("{signer1:initial}", "initial", 1),
        ("{initial_es_:signer1:initials}", "initial", 1),
        ("{text_es_:signer2:title}", "text", 2),
        ("{check_es_:signer1:agree}", "checkbox", 1),
        ("{{*ES_:signer2:date_2}}", "date", 2),
        ("{cosigner2}", "signature", 2),
    ],
)
def test_provider_grammar_subtypes(raw: str, subtype: str, recipient: int) -> None:
    tag = classify_token(raw)

    assert tag.kind == "provider"
    assert tag.provider_subtype == subtype
    assert tag.recipient_index == recipient


def test_generic_signer_fallback_without_index() -> None:
    tag = classify_token("{{company_signer:date}}")

    assert tag.kind == "provider"
    assert tag.provider_subtype == "date"
    assert tag.recipient_index is None
    assert tag.brace_style == "double"


@pytest.mark.parametrize("raw", ["{a:b}", "{ }", "{*bold}", "{{}}"])
def test_non_variable_tokens_are_noise(raw: str) -> None:
    assert classify_token(raw).kind == "noise"


def test_every_token_gets_exactly_one_kind_and_classify_is_repeatable() -> None:
    text = "{a} {{b}} {signer1:date} {x:y} {} {{sig_es_:signer2:signature}} {a}"

    first = classify(text)
    second = classify(text)

    assert first == second
    assert len(first) == 7
    assert all(tag.kind in {"ordinary", "provider", "noise"} for tag in first)
    assert [tag.start for tag in first] == sorted(tag.start for tag in first)


def test_counts_and_names_helpers() -> None:
    text = "{a} {b} {a} {signer1:signature} {{signer1:date}} {note:x}"

    assert count_provider_tags(text) == 2
    assert [tag.raw for tag in provider_tags(text)] == ["{signer1:signature}", "{{signer1:date}}"]
    assert ordinary_variable_names(text) == ["a", "b"]
    assert ordinary_variable_names(classify(text)) == ["a", "b"]


def test_is_provider_tag_requires_a_single_whole_token() -> None:
    assert is_provider_tag("{signer1:signature}")
    assert not is_provider_tag("{clientName}")
    assert not is_provider_tag("prefix {signer1:signature}")


def test_provider_name_heuristics() -> None:
    assert looks_like_provider_name("signer1_name")
    assert looks_like_provider_name("client_es_field")
    assert looks_like_provider_name("Signature")
    assert not looks_like_provider_name("clientName")

    assert mentions_provider_vocabulary("{sig_es_:signer1:signature")
    assert not mentions_provider_vocabulary("{clientName")
