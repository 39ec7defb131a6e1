"""CLI for OG card rendering.

Usage:
    og-card render --title "Hello World" --description "..." --out card.png
    og-card render --title "Hello World" --format svg --out card.svg
    og-card convert drawing.svg --out drawing.png
    og-card convert https://example.com/logo.svg --out logo.png
    og-card serve
"""

import asyncio
from pathlib import Path as FilePath

import typer
from rich.console import Console

from og_card.errors import OgCardError
from og_card.logging_config import setup_dev_logging
from og_card.service import CardResult, CardService

app = typer.Typer(
    name="og-card",
    help="Render Open Graph card images",
    add_completion=False,
)
console = Console()


def _write_result(result: CardResult, out: FilePath) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(result.content)
    console.print(
        f"[green]Wrote {out}[/green] ({result.media_type}, {len(result.content):,} bytes)"
    )


@app.command("render")
def render(
    title: str = typer.Option(..., "--title", "-t", help="Card title"),
    description: str = typer.Option("", "--description", "-d", help="Card description"),
    output_format: str = typer.Option("png", "--format", "-f", help="png or svg"),
    out: FilePath = typer.Option(FilePath("og-card.png"), "--out", "-o", help="Output file"),
) -> None:
    """Render a card from a title and optional description.

    Examples:
        og-card render -t "Hello World" -o hello.png
        og-card render -t "Hello World" -f svg -o hello.svg
    """
    if output_format not in ("png", "svg"):
        console.print(f"[red]Unsupported format: {output_format}[/red]")
        raise typer.Exit(2)

    service = CardService()
    try:
        result = asyncio.run(service.generate(title, description, output_format))
    except OgCardError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    _write_result(result, out)


@app.command("convert")
def convert(
    source: str = typer.Argument(..., help="SVG file path or http(s) URL"),
    out: FilePath = typer.Option(FilePath("converted.png"), "--out", "-o", help="Output file"),
) -> None:
    """Rasterize an existing SVG to PNG.

    Examples:
        og-card convert drawing.svg -o drawing.png
        og-card convert https://example.com/logo.svg -o logo.png
    """
    service = CardService()
    try:
        if source.startswith(("http://", "https://")):
            result = asyncio.run(service.convert(url=source))
        else:
            path = FilePath(source)
            if not path.is_file():
                console.print(f"[red]No such file: {source}[/red]")
                raise typer.Exit(2)
            result = asyncio.run(service.convert(svg=path.read_text(encoding="utf-8")))
    except OgCardError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    _write_result(result, out)


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
) -> None:
    """Run the HTTP server."""
    import uvicorn

    from og_card.config import settings

    setup_dev_logging(json_format=settings.log_json)
    uvicorn.run(
        "og_card.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


def main() -> None:
    """Entry point for the og-card CLI."""
    app()


if __name__ == "__main__":
    main()
