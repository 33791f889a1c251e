from __future__ import annotations

import io
import zipfile

import pytest
from docx import Document

from signprep.render.docx_renderer import find_brace_issue, render_docx_template
from signprep.utils.errors import TemplateSyntaxError


def _docx_bytes(*paragraph_runs: list[str]) -> bytes:
    document = Document()
    for runs in paragraph_runs:
        paragraph = document.add_paragraph()
        for text in runs:
            paragraph.add_run(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _paragraph_texts(content: bytes) -> list[str]:
    return [paragraph.text for paragraph in Document(io.BytesIO(content)).paragraphs]


def _document_xml(content: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        return archive.read("word/document.xml").decode("utf-8")


def test_replaces_ordinary_tag_split_across_runs() -> None:
    content = _docx_bytes(["Dear {client", "Name}, welcome"])

    result = render_docx_template(content, {"clientName": "Acme"})

    assert _paragraph_texts(result.document_bytes) == ["Dear Acme, welcome"]
    assert result.renderer == "primary"
    assert result.summary.replaced_count == 1


def test_provider_tags_are_canonicalized_and_counted() -> None:
    content = _docx_bytes(
        ["Name: {clientName}"],
        ["Sign: {sig_es_:signer1:signature}"],
        ["Date: {{signer1:date}}"],
    )

    result = render_docx_template(content, {"clientName": "Acme"})

    assert _paragraph_texts(result.document_bytes) == [
        "Name: Acme",
        "Sign: {{sig_es_:signer1:signature}}",
        "Date: {{signer1:date}}",
    ]
    assert result.provider_tags_before == 2
    assert result.provider_tags_after == 2
    assert result.provider_tags_preserved
    assert result.missing_variables == []
    assert result.summary.preserved_count == 2


def test_provider_tags_can_be_left_exactly_as_written() -> None:
    content = _docx_bytes(["{clientName} {sig_es_:signer1:signature}"])

    result = render_docx_template(content, {"clientName": "Acme"}, canonicalize_provider_tags=False)

    assert _paragraph_texts(result.document_bytes) == ["Acme {sig_es_:signer1:signature}"]


def test_values_are_escaped_in_xml_and_none_renders_empty() -> None:
    content = _docx_bytes(["[{company}] [{note}]"])

    result = render_docx_template(content, {"company": "A&B <Ltd>", "note": None})

    assert "A&amp;B &lt;Ltd&gt;" in _document_xml(result.document_bytes)
    assert _paragraph_texts(result.document_bytes) == ["[A&B <Ltd>] []"]


def test_missing_variables_are_reported_not_raised() -> None:
    content = _docx_bytes(["{a} and {b} and {b}"])

    result = render_docx_template(content, {"a": 1})

    assert result.missing_variables == ["b"]
    assert _paragraph_texts(result.document_bytes) == ["1 and {b} and {b}"]
    assert result.summary.missing_count == 2


def test_noise_tokens_are_left_untouched() -> None:
    content = _docx_bytes(["{a:b} {*x}"])

    result = render_docx_template(content, {"a:b": "nope"})

    assert _paragraph_texts(result.document_bytes) == ["{a:b} {*x}"]
    assert result.summary.noise_count == 2


def test_table_cells_are_rendered() -> None:
    document = Document()
    table = document.add_table(rows=1, cols=2)
    table.cell(0, 0).paragraphs[0].text = "{party}"
    table.cell(0, 1).paragraphs[0].text = "{signer2:signature}"
    buffer = io.BytesIO()
    document.save(buffer)

    result = render_docx_template(buffer.getvalue(), {"party": "Buyer"})

    cells = Document(io.BytesIO(result.document_bytes)).tables[0].rows[0].cells
    assert cells[0].text == "Buyer"
    assert cells[1].text == "{{signer2:signature}}"
    assert result.provider_tags_before == result.provider_tags_after == 1


@pytest.mark.parametrize(
    ("text", "error_id", "tag"),
    [
        ("Hello {{{name}}}", "duplicate_open_tag", "{{{name}}}"),
        ("Hello {name}}} there", "duplicate_close_tag", "{name}}}"),
        ("Hello {name", "unclosed_tag", "{name"),
        ("Hello name} there", "unopened_tag", "name}"),
    ],
)
def test_find_brace_issue_names_the_offending_text(text: str, error_id: str, tag: str) -> None:
    assert find_brace_issue(text) == (error_id, tag)


def test_find_brace_issue_accepts_well_formed_text() -> None:
    assert find_brace_issue("{a} {{b}} {signer1:date} plain") is None


def test_syntax_error_is_raised_before_anything_is_rendered() -> None:
    content = _docx_bytes(["{clientName}"], ["Broken {{{title}}}"])

    with pytest.raises(TemplateSyntaxError) as exc_info:
        render_docx_template(content, {"clientName": "Acme", "title": "T"})

    assert exc_info.value.error_id == "duplicate_open_tag"
    assert exc_info.value.tag == "{{{title}}}"
    assert "Template format error" in str(exc_info.value)
    assert "Problematic tag: {{{title}}}" in str(exc_info.value)
