"""Command-line interface for safelens."""

import json
import logging
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from safelens import __version__
from safelens.analysis.engine import AnalysisOptions, analyze_file, inspect_header, summarize_header
from safelens.errors import SafelensError, create_error_result
from safelens.formats.header_reader import FileRangeSource
from safelens.output.console import print_analysis, print_error, print_header_summary
from safelens.output.json_output import output_json

app = typer.Typer(
    name="safelens",
    help="Inspect safetensors model headers and metadata",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )


def _fail(error: SafelensError, path: Path, json_output: bool) -> NoReturn:
    if json_output:
        output_json(create_error_result(error))
    else:
        print_error(error, str(path))
    raise typer.Exit(1)


@app.command()
def inspect(
    path: Path = typer.Argument(
        ...,
        help=".safetensors file or .json header sidecar",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the analysis as JSON",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show raw metadata and the tensor list",
    ),
    include_tensors: bool = typer.Option(
        True,
        "--tensors/--no-tensors",
        help="Include per-tensor details in the result",
    ),
    max_tensors: int | None = typer.Option(
        None,
        "--max-tensors",
        "-n",
        help="Maximum number of tensors to list (default: all)",
        min=0,
    ),
    trigger_words: bool = typer.Option(
        True,
        "--trigger-words/--no-trigger-words",
        help="Extract LoRA trigger words from tag frequency metadata",
    ),
    max_trigger_words: int = typer.Option(
        5,
        "--max-trigger-words",
        help="Number of trigger words to keep",
        min=0,
    ),
    strict_offsets: bool = typer.Option(
        False,
        "--strict-offsets",
        help="Reject tensors whose byte span disagrees with dtype and shape",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Analyze a safetensors file without loading tensor data.

    Examples:
        safelens inspect model.safetensors
        safelens inspect lora.safetensors --json
        safelens inspect model.safetensors -v --max-tensors 20
    """
    _configure_logging(debug)
    options = AnalysisOptions(
        include_tensors=include_tensors,
        max_tensors=max_tensors,
        extract_trigger_words=trigger_words,
        max_trigger_words=max_trigger_words,
        strict_offsets=strict_offsets,
    )

    try:
        analysis = analyze_file(path, options)
    except SafelensError as e:
        _fail(e, path, json_output)

    if json_output:
        output_json(analysis)
    else:
        print_analysis(analysis, title=str(path), verbose=verbose)


@app.command()
def header(
    path: Path = typer.Argument(..., help=".safetensors file"),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Print the raw header JSON instead of a summary",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Read only the header of a file and summarize it.

    Examples:
        safelens header model.safetensors
        safelens header model.safetensors --json
    """
    _configure_logging(debug)

    try:
        parsed = inspect_header(FileRangeSource(path))
    except SafelensError as e:
        _fail(e, path, json_output)

    if json_output:
        typer.echo(json.dumps(parsed.to_json_dict(), indent=2))
    else:
        print_header_summary(summarize_header(parsed), title=str(path))


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"safelens v{__version__}")


@app.callback()
def main() -> None:
    """safelens - inspect safetensors model files.

    Classifies checkpoints, LoRAs, VAEs and other model files from their
    header and extracts training metadata and trigger words.
    """
    pass


if __name__ == "__main__":
    app()
