from __future__ import annotations

import mimetypes
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..config import AppConfig, dump_config
from ..core import ConversionError, ConversionService
from ..logging import BatchSummary
from ..models import InputFile
from ..packaging import package_outputs
from ..settings import Settings, load_settings_config

console = Console()

app = typer.Typer(help="Convert images and PDFs between formats")


def _load_config(path: Path | None) -> AppConfig:
    settings = Settings(config_path=path) if path is not None else None
    return load_settings_config(settings)


def _read_input(path: Path) -> InputFile:
    content_type, _ = mimetypes.guess_type(path.name)
    return InputFile(name=path.name, content_type=content_type, data=path.read_bytes())


@app.command()
def convert(
    files: list[Path],
    to: str = typer.Option("pdf", "--to", help="Target format: pdf, jpeg, png, webp, avif, tiff, bmp"),
    quality: int = typer.Option(80, "--quality", help="Quality for lossy formats (10-95)"),
    max_dim: int | None = typer.Option(None, "--max-dim", min=1, help="Maximum width/height in pixels"),
    compress: bool = typer.Option(False, "--compress", help="Rebuild PDFs from rasterized pages"),
    bundle: bool = typer.Option(False, "--zip", help="Always write a ZIP archive"),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Output directory"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    service = ConversionService(cfg)
    try:
        inputs = [_read_input(path) for path in files]
        request = service.build_request(
            inputs, target=to, quality=quality, max_dimension=max_dim, compress_pdf=compress, bundle=bundle
        )
        batch = service.convert(request)
    except ConversionError as exc:
        console.print(f"[red]Conversion failed[/red]: {exc.code} - {exc}")
        raise typer.Exit(1) from exc
    finally:
        service.close()

    packaged = package_outputs(batch, bundle=bundle)
    output.mkdir(parents=True, exist_ok=True)
    destination = output / packaged.filename
    destination.write_bytes(packaged.body)

    table = Table(title="Conversion outcomes")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Outputs")
    table.add_column("Note")
    for outcome in batch.outcomes:
        table.add_row(
            outcome.source,
            outcome.status,
            ", ".join(artifact.name for artifact in outcome.artifacts),
            outcome.note or "-",
        )
    console.print(table)
    summary = BatchSummary.from_batch(batch)
    console.print(f"{summary.converted} converted, {summary.degraded} degraded of {summary.total}")
    for note, count in summary.notes.items():
        console.print(f"  {count} x {note}", markup=False)
    if batch.job_ids:
        console.print(f"Remote jobs: {', '.join(batch.job_ids)}")
    kind = "archive" if packaged.archived else "file"
    console.print(f"[green]Wrote {kind}[/green] {destination}")


@app.command()
def diag(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    show_config: bool = typer.Option(False, "--show-config", help="Print the effective configuration"),
) -> None:
    cfg = _load_config(config)
    service = ConversionService(cfg)
    try:
        capabilities = service.capabilities
        table = Table(title="Capabilities")
        table.add_column("Capability")
        table.add_column("Status")
        table.add_row("local codec", "available" if capabilities.local_available else capabilities.codec.reason or "unavailable")
        table.add_row("remote service", "configured" if capabilities.remote_available else "not configured")
        for library, version in capabilities.codec.versions().items():
            table.add_row(library, version or "missing")
        table.add_row("targets", ", ".join(capabilities.codec.supported_targets()) or "-")
        console.print(table)
    finally:
        service.close()
    if show_config:
        console.print(dump_config(cfg))


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Listening port"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    import uvicorn

    from api.app import create_app

    cfg = _load_config(config)
    uvicorn.run(create_app(cfg), host=host or cfg.api.host, port=port or cfg.api.port)


if __name__ == "__main__":
    app()
