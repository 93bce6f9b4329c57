"""Rich console output for analysis results."""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from safelens.analysis.classifier import ModelType
from safelens.analysis.results import PartialAnalysis, SafetensorsAnalysis, TensorInfo
from safelens.errors import SafelensError

console = Console()

MODEL_TYPE_COLORS = {
    ModelType.CHECKPOINT: "blue",
    ModelType.LORA: "magenta",
    ModelType.VAE: "green",
    ModelType.CONTROLNET: "yellow",
    ModelType.TEXT_ENCODER: "cyan",
    ModelType.EMBEDDING: "bright_magenta",
    ModelType.DIFFUSION_MODEL: "bright_blue",
    ModelType.UNKNOWN: "dim",
}

MODEL_TYPE_LABELS = {
    ModelType.CHECKPOINT: "Checkpoint",
    ModelType.LORA: "LoRA",
    ModelType.VAE: "VAE",
    ModelType.CONTROLNET: "ControlNet",
    ModelType.TEXT_ENCODER: "Text Encoder",
    ModelType.EMBEDDING: "Embedding",
    ModelType.DIFFUSION_MODEL: "Diffusion Model",
    ModelType.UNKNOWN: "Unknown",
}


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable form."""
    size: float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def format_parameters(count: int) -> str:
    """Format a parameter count as 1.2B / 3.4M / 5.6K."""
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if count >= threshold:
            return f"{count / threshold:.1f}{suffix}"
    return str(count)


def format_shape(shape: tuple[int, ...]) -> str:
    return "[" + ", ".join(str(d) for d in shape) + "]"


def _model_type_badge(model_type: ModelType) -> str:
    style = MODEL_TYPE_COLORS[model_type]
    return f"[{style}]{MODEL_TYPE_LABELS[model_type]}[/{style}]"


def _key_value_table(title: str, values: dict) -> Table:
    table = Table(title=title, box=box.SIMPLE, show_header=False, title_justify="left")
    table.add_column("Field", style="bold")
    table.add_column("Value", no_wrap=False)
    for key, value in values.items():
        table.add_row(key.replace("_", " ").title(), escape(str(value)))
    return table


def _print_tensors(tensors: tuple[TensorInfo, ...]) -> None:
    table = Table(
        title=f"Tensors ({len(tensors)})",
        box=box.ROUNDED,
        title_justify="left",
        header_style="bold",
    )
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="yellow")
    table.add_column("Shape", style="green")
    table.add_column("Parameters", justify="right")
    table.add_column("Size", justify="right")

    for tensor in tensors:
        table.add_row(
            escape(tensor.name),
            tensor.dtype.value,
            format_shape(tensor.shape),
            format_parameters(tensor.parameters),
            format_size(tensor.size),
        )

    console.print(table)


def print_analysis(analysis: SafetensorsAnalysis, title: str = "", verbose: bool = False) -> None:
    """Print an analysis to the console.

    Args:
        analysis: Analysis result
        title: Panel title, usually the file path
        verbose: Also print raw metadata and the tensor list
    """
    stats = analysis.file_stats

    console.print()
    console.print(
        Panel(
            f"[bold]{escape(title)}[/bold]  {_model_type_badge(analysis.model_type)}",
            expand=False,
        )
    )

    summary = Table(box=box.SIMPLE, show_header=False)
    summary.add_column("Property", style="bold")
    summary.add_column("Value")
    summary.add_row("File Size", format_size(stats.file_size))
    summary.add_row("Header Size", format_size(stats.header_size))
    summary.add_row("Tensors", f"{stats.tensor_count:,}")
    summary.add_row("Parameters", format_parameters(stats.total_parameters))
    summary.add_row(
        "Data Types",
        ", ".join(f"{d.value} ({stats.dtype_distribution[d]})" for d in stats.data_types) or "-",
    )
    frameworks = [name for name, ok in analysis.compatibility.to_dict().items() if ok]
    summary.add_row("Frameworks", ", ".join(frameworks) or "-")
    console.print(summary)

    if analysis.lora_info:
        lora = analysis.lora_info
        console.print(
            _key_value_table(
                "LoRA",
                {
                    "base_model": lora.base_model or "-",
                    "targets": ", ".join(t.value for t in lora.target_components) or "-",
                    "rank": lora.rank if lora.rank is not None else "-",
                    "alpha": lora.alpha if lora.alpha is not None else "-",
                    "trigger_words": ", ".join(lora.trigger_words) or "-",
                    "module": lora.module or "-",
                },
            )
        )

    for label, record in (
        ("Model Spec", analysis.model_spec),
        ("Training", analysis.training),
        ("Hashes", analysis.hashes),
    ):
        values = record.to_dict()
        # Large JSON blobs are only useful in verbose or JSON output
        if not verbose:
            values.pop("tag_frequency", None)
            values.pop("dataset_dirs", None)
        if values:
            console.print(_key_value_table(label, values))

    if verbose:
        if analysis.raw_metadata:
            console.print(_key_value_table("Raw Metadata", analysis.raw_metadata))
        if analysis.tensors:
            _print_tensors(analysis.tensors)

    for warning in analysis.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def print_header_summary(summary: PartialAnalysis, title: str = "") -> None:
    """Print a header-only summary."""
    stats = summary.file_stats

    console.print()
    console.print(
        Panel(f"[bold]{escape(title)}[/bold]  {_model_type_badge(summary.model_type)}", expand=False)
    )

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")
    if stats.header_size is not None:
        table.add_row("Header Size", format_size(stats.header_size))
    if stats.tensor_count is not None:
        table.add_row("Tensors", f"{stats.tensor_count:,}")
    if stats.total_parameters is not None:
        table.add_row("Parameters", format_parameters(stats.total_parameters))
    if stats.data_types:
        table.add_row("Data Types", ", ".join(d.value for d in stats.data_types))
    console.print(table)

    if summary.model_spec and summary.model_spec.to_dict():
        console.print(_key_value_table("Model Spec", summary.model_spec.to_dict()))


def print_error(error: SafelensError, title: str = "") -> None:
    """Print a header-stage failure."""
    prefix = f"{title}: " if title else ""
    console.print(f"[red]{prefix}{error.kind.value}[/red] {escape(error.message)}")
