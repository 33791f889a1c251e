"""Typer CLI entrypoint for signprep."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any

import httpx
import typer

from apps.cli.io import (
    build_output_paths,
    existing_output_files,
    load_template_data,
    write_json_atomic,
    write_render_output_atomic,
)
from signprep.config.loader import load_settings
from signprep.config.models import Settings
from signprep.convert.converter import LibreOfficeConverter
from signprep.detect.analyzer import analyze_document
from signprep.extract.content import DocxContentExtractor
from signprep.render.template_renderer import render_document
from signprep.sniff.format_sniffer import identify, resolve_extension
from signprep.submit.models import DocumentRecord, Recipient, SubmissionPolicy
from signprep.submit.provider_client import ProviderClient
from signprep.submit.records import JsonDocumentStore
from signprep.submit.recovery import recover_document
from signprep.submit.submitter import ResilientSubmitter
from signprep.tags.classifier import classify
from signprep.tags.normalizer import normalization_report, normalize
from signprep.utils.errors import (
    CollaboratorFailure,
    RemoteRejectedError,
    TemplateSyntaxError,
    UnsupportedFormatError,
)

app = typer.Typer(help="E-signature document preparation CLI", rich_markup_mode=None)

EXIT_OK = 0
EXIT_INTERNAL = 1
EXIT_MISSING_VARIABLES = 2
EXIT_TEMPLATE_SYNTAX = 3
EXIT_UNSUPPORTED_FORMAT = 4
EXIT_AMBIGUOUS = 5
EXIT_FAILED = 6

_OUTCOME_EXIT_CODES = {"confirmed": EXIT_OK, "ambiguous": EXIT_AMBIGUOUS, "failed": EXIT_FAILED}

SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", exists=True, dir_okay=False, help="Settings YAML file."),
]


@app.callback()
def cli_callback(
    verbose: Annotated[bool, typer.Option("--verbose", help="Log JSON events to stderr.")] = False,
) -> None:
    """signprep command group."""

    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")


@app.command("sniff")
def sniff_command(
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
) -> None:
    """Identify a file's format from its magic bytes."""

    guess = identify(path)
    payload = guess.model_dump(mode="json")
    payload["resolved_extension"] = resolve_extension(path)
    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))


@app.command("tags")
def tags_command(
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    show_normalized: Annotated[
        bool, typer.Option("--normalized", help="Also print the text with provider tags normalized.")
    ] = False,
) -> None:
    """List every bracketed token in a .docx or plain-text file with its classification."""

    if resolve_extension(path) == ".docx":
        try:
            text = asyncio.run(DocxContentExtractor().extract_plain_text(path))
        except CollaboratorFailure as exc:
            typer.echo(f"ERROR: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc
    else:
        text = path.read_text(encoding="utf-8", errors="replace")

    report = normalization_report(text)
    payload: dict[str, Any] = {
        "tags": [
            {
                "raw": tag.raw,
                "kind": tag.kind,
                "brace_style": tag.brace_style,
                "provider_subtype": tag.provider_subtype,
                "recipient_index": tag.recipient_index,
                "span": list(tag.span),
            }
            for tag in classify(text)
        ],
        "single_brace_provider_tags": report.single_brace_count,
        "double_brace_provider_tags": report.double_brace_count,
        "mixed_formats": report.has_mixed_formats,
    }
    if show_normalized:
        payload["normalized_text"] = normalize(text)
    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))


@app.command("render")
def render_command(
    template: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    data: Annotated[Path, typer.Option("--data", exists=True, dir_okay=False, help="JSON/YAML values.")],
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    strict: Annotated[
        bool, typer.Option("--strict", help="Exit 2 when any ordinary variable has no value.")
    ] = False,
    keep_provider_braces: Annotated[
        bool,
        typer.Option("--keep-provider-braces", help="Leave single-brace provider tags as written."),
    ] = False,
    force: Annotated[bool, typer.Option("--force", help="Overwrite existing outputs.")] = False,
    settings_path: SettingsOption = None,
) -> None:
    """Fill ordinary variables in a template while keeping provider tags intact."""

    settings = _load_settings_or_exit(settings_path)
    try:
        values = load_template_data(data)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    try:
        result = asyncio.run(
            render_document(
                template,
                values,
                _converter(settings),
                canonicalize_provider_tags=not keep_provider_braces,
            )
        )
    except TemplateSyntaxError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_TEMPLATE_SYNTAX) from exc
    except UnsupportedFormatError as exc:
        typer.echo(f"ERROR: {exc} (signature: {exc.signature_hex})")
        raise typer.Exit(code=EXIT_UNSUPPORTED_FORMAT) from exc
    except CollaboratorFailure as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    extension = ".pdf" if result.renderer == "passthrough" else ".docx"
    paths = build_output_paths(out_dir, extension)
    existing = existing_output_files(paths)
    if existing and not force:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"ERROR: outputs already exist ({names}); pass --force to overwrite.")
        raise typer.Exit(code=EXIT_INTERNAL)

    write_render_output_atomic(paths, result)
    typer.echo(
        f"renderer={result.renderer} replaced={result.summary.replaced_count} "
        f"missing={len(result.missing_variables)} "
        f"provider_tags={result.provider_tags_before}->{result.provider_tags_after}"
    )
    if result.missing_variables:
        typer.echo("missing: " + ", ".join(result.missing_variables))
        if strict:
            raise typer.Exit(code=EXIT_MISSING_VARIABLES)


@app.command("detect")
def detect_command(
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    output: Annotated[Path | None, typer.Option("--output", help="Write the analysis JSON here.")] = None,
    settings_path: SettingsOption = None,
) -> None:
    """Propose signature/date fields for a document."""

    settings = _load_settings_or_exit(settings_path)
    try:
        analysis = asyncio.run(
            analyze_document(path, DocxContentExtractor(), _converter(settings), settings.heuristics)
        )
    except UnsupportedFormatError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_UNSUPPORTED_FORMAT) from exc
    except CollaboratorFailure as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    payload = analysis.model_dump(mode="json")
    if output is not None:
        write_json_atomic(output, payload)
    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))


@app.command("send")
def send_command(
    document_id: Annotated[str, typer.Argument()],
    file: Annotated[Path, typer.Option("--file", exists=True, dir_okay=False)],
    store: Annotated[Path, typer.Option("--store", help="JSON document store path.")],
    preset: Annotated[str | None, typer.Option("--preset", help="fast or resilient.")] = None,
    name: Annotated[str | None, typer.Option("--name")] = None,
    message: Annotated[str | None, typer.Option("--message")] = None,
    recipients: Annotated[
        list[str] | None,
        typer.Option("--recipient", help="Signer email; registers the document when it is not in the store."),
    ] = None,
    parallel: Annotated[bool, typer.Option("--parallel", help="Let all recipients sign in any order.")] = False,
    settings_path: SettingsOption = None,
) -> None:
    """Upload a prepared document and create the agreement."""

    settings = _load_settings_or_exit(settings_path)
    policy = settings.submission.to_policy()
    if preset is not None:
        try:
            base = SubmissionPolicy.preset(preset.lower().strip())
        except ValueError as exc:
            typer.echo(f"ERROR: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc
        policy = policy.model_copy(update={"timeout_seconds": base.timeout_seconds})

    async def _send() -> dict[str, Any]:
        document_store = JsonDocumentStore(store)
        if recipients and await document_store.get(document_id) is None:
            await document_store.save(
                DocumentRecord(
                    document_id=document_id,
                    title=name or file.stem,
                    status="ready_for_signature",
                    recipients=[Recipient(email=email, order=index + 1) for index, email in enumerate(recipients)],
                    signing_flow="PARALLEL" if parallel else "SEQUENTIAL",
                    file_path=str(file),
                )
            )
        async with _provider_client(settings) as client:
            transient_id = await client.upload_transient_document(file)
            submitter = ResilientSubmitter(client, document_store, policy)
            result = await submitter.submit(document_id, transient_id, name=name, message=message)
            return result.model_dump(mode="json")

    try:
        payload = asyncio.run(_send())
    except RemoteRejectedError as exc:
        typer.echo(f"ERROR: upload rejected: {exc}")
        raise typer.Exit(code=EXIT_FAILED) from exc
    except httpx.TransportError as exc:
        typer.echo(f"ERROR: upload did not complete: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))
    raise typer.Exit(code=_OUTCOME_EXIT_CODES[payload["outcome"]["state"]])


@app.command("recover")
def recover_command(
    document_id: Annotated[str, typer.Argument()],
    store: Annotated[Path, typer.Option("--store", help="JSON document store path.")],
    settings_path: SettingsOption = None,
) -> None:
    """Re-verify an ambiguous or unverified send against the provider."""

    settings = _load_settings_or_exit(settings_path)

    async def _recover() -> dict[str, Any]:
        async with _provider_client(settings) as client:
            outcome = await recover_document(document_id, JsonDocumentStore(store), client)
            return outcome.model_dump(mode="json")

    try:
        payload = asyncio.run(_recover())
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))
    raise typer.Exit(code=_OUTCOME_EXIT_CODES[payload["state"]])


def _load_settings_or_exit(path: Path | None) -> Settings:
    try:
        return load_settings(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc


def _converter(settings: Settings) -> LibreOfficeConverter:
    return LibreOfficeConverter(
        soffice_bin=settings.conversion.soffice_bin,
        timeout_seconds=settings.conversion.timeout_seconds,
    )


def _provider_client(settings: Settings) -> ProviderClient:
    return ProviderClient(
        settings.provider.base_url,
        settings.provider.token,
        timeout_seconds=settings.provider.http_timeout_seconds,
    )


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
