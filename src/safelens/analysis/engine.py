"""Analysis engine that composes header reading, validation and extraction.

Everything that can fail happens while the header is read and validated.
Once a SafetensorsHeader exists, analyze_safetensors always returns a
result; irregularities are reported through `warnings`.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from safelens.analysis.classifier import ModelType, detect_model_type
from safelens.analysis.lora import DEFAULT_MAX_TRIGGER_WORDS, build_lora_info
from safelens.analysis.metadata import parse_metadata
from safelens.analysis.results import (
    Compatibility,
    FileStats,
    PartialAnalysis,
    PartialFileStats,
    SafetensorsAnalysis,
    TensorInfo,
)
from safelens.analysis.stats import calculate_tensor_stats, tensor_byte_size, tensor_parameters
from safelens.errors import InvalidFormatError
from safelens.formats.header_reader import (
    ByteRangeSource,
    FileRangeSource,
    RangeReader,
    read_header,
)
from safelens.formats.schema import (
    RawTensorInfo,
    SafetensorsHeader,
    parse_header,
    parse_header_json,
    validate_header,
)

logger = logging.getLogger(__name__)

SIDECAR_EXTENSIONS = {".json"}


@dataclass(frozen=True)
class AnalysisOptions:
    """Knobs for analyze_safetensors.

    Attributes:
        include_tensors: Build the per-tensor list
        max_tensors: Cap on the tensor list length (None keeps all)
        extract_trigger_words: Rank tag-frequency tags for LoRAs
        max_trigger_words: Number of trigger words to keep
        strict_offsets: Reject headers whose offset spans disagree with dtype x shape
    """

    include_tensors: bool = True
    max_tensors: int | None = None
    extract_trigger_words: bool = True
    max_trigger_words: int = DEFAULT_MAX_TRIGGER_WORDS
    strict_offsets: bool = False

    def __post_init__(self) -> None:
        if self.max_tensors is not None and self.max_tensors < 0:
            raise ValueError(f"max_tensors must be >= 0, got {self.max_tensors}")
        if self.max_trigger_words < 0:
            raise ValueError(f"max_trigger_words must be >= 0, got {self.max_trigger_words}")


def detect_compatibility(metadata: Mapping[str, str], tensor_names: list[str]) -> Compatibility:
    """Derive framework flags from the `format` metadata key.

    Files without a format tag still count as PyTorch when tensor names
    follow the `.weight` naming convention.
    """
    fmt = metadata.get("format")
    return Compatibility(
        pytorch=fmt == "pt" or any("weight" in name for name in tensor_names),
        tensorflow=fmt == "tf",
        jax=fmt == "jax",
        numpy=fmt == "numpy",
    )


def _tensor_info(name: str, raw: RawTensorInfo) -> TensorInfo:
    return TensorInfo(
        name=name,
        dtype=raw.dtype,
        shape=raw.shape,
        data_offsets=raw.data_offsets,
        size=tensor_byte_size(raw.data_offsets),
        parameters=tensor_parameters(raw.shape),
    )


def analyze_safetensors(
    header: SafetensorsHeader,
    file_size: int,
    options: AnalysisOptions | None = None,
) -> SafetensorsAnalysis:
    """Analyze a validated header.

    Args:
        header: Validated header
        file_size: Total file size in bytes
        options: Analysis options (defaults if omitted)

    Returns:
        SafetensorsAnalysis; statistics always cover every tensor, even
        when the tensor list is truncated
    """
    options = options or AnalysisOptions()
    warnings: list[str] = []

    metadata = header.metadata
    tensors = header.tensors
    tensor_names = list(tensors)

    model_type = detect_model_type(tensor_names, metadata)
    parsed = parse_metadata(metadata)
    stats = calculate_tensor_stats(tensors.values())

    tensor_infos: tuple[TensorInfo, ...] = ()
    if options.include_tensors:
        limit = len(tensors) if options.max_tensors is None else options.max_tensors
        tensor_infos = tuple(
            _tensor_info(name, raw) for name, raw in list(tensors.items())[:limit]
        )
        if len(tensors) > limit:
            message = f"Tensor list truncated to {limit} items"
            logger.info(message)
            warnings.append(message)

    lora_info = None
    if model_type == ModelType.LORA:
        lora_info = build_lora_info(
            tensor_names,
            parsed.training,
            metadata,
            extract_triggers=options.extract_trigger_words,
            max_trigger_words=options.max_trigger_words,
        )

    return SafetensorsAnalysis(
        model_type=model_type,
        file_stats=FileStats(
            file_size=file_size,
            header_size=header.size,
            tensor_count=stats.tensor_count,
            total_parameters=stats.total_parameters,
            data_types=stats.data_types,
            dtype_distribution=MappingProxyType(stats.dtype_distribution),
        ),
        raw_metadata=MappingProxyType(metadata),
        model_spec=parsed.model_spec,
        training=parsed.training,
        hashes=parsed.hashes,
        tensors=tensor_infos,
        compatibility=detect_compatibility(metadata, tensor_names),
        lora_info=lora_info,
        warnings=tuple(warnings),
    )


def analyze_bytes(
    data: bytes | bytearray | memoryview,
    options: AnalysisOptions | None = None,
    file_size: int | None = None,
) -> SafetensorsAnalysis:
    """Analyze a safetensors file held in memory.

    Only the prefix and header need to be present; pass file_size when
    `data` is a header-only slice of a larger file.
    """
    options = options or AnalysisOptions()
    header = parse_header(data, options.strict_offsets)
    return analyze_safetensors(header, len(data) if file_size is None else file_size, options)


def header_from_json(obj: Any, strict_offsets: bool = False) -> SafetensorsHeader:
    """Validate a pre-parsed header object, e.g. from a `.json` sidecar.

    The header size is the length of the object's compact JSON encoding.
    """
    size = len(json.dumps(obj, separators=(",", ":")).encode("utf-8"))
    return validate_header(obj, size, strict_offsets)


def analyze_json(
    obj: Any,
    file_size: int | None = None,
    options: AnalysisOptions | None = None,
) -> SafetensorsAnalysis:
    """Analyze a pre-parsed header object.

    Args:
        obj: Header as decoded JSON
        file_size: Size of the sidecar file; defaults to the header size
        options: Analysis options
    """
    options = options or AnalysisOptions()
    header = header_from_json(obj, options.strict_offsets)
    return analyze_safetensors(header, header.size if file_size is None else file_size, options)


def inspect_header(
    source: ByteRangeSource | RangeReader, strict_offsets: bool = False
) -> SafetensorsHeader:
    """Read and validate only the header through a byte-range source."""
    raw = read_header(source)
    return validate_header(parse_header_json(raw.text), raw.size, strict_offsets)


def analyze_file(filepath: Path | str, options: AnalysisOptions | None = None) -> SafetensorsAnalysis:
    """Analyze a local `.safetensors` file or `.json` header sidecar.

    Safetensors files are read header-only; tensor data is never loaded.

    Raises:
        ModelFileNotFoundError: Path does not exist
        SafelensError: Header could not be read or validated
    """
    options = options or AnalysisOptions()
    source = FileRangeSource(filepath)

    if source.filepath.suffix.lower() in SIDECAR_EXTENSIONS:
        try:
            text = source.filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFormatError(f"Sidecar is not valid UTF-8: {e}") from e
        return analyze_json(parse_header_json(text), source.size, options)

    header = inspect_header(source, options.strict_offsets)
    logger.debug("Analyzing %s (%d tensors)", source.filepath, len(header.tensors))
    return analyze_safetensors(header, source.size, options)


def summarize_header(header: SafetensorsHeader) -> PartialAnalysis:
    """Summarize a header when the file size is unknown.

    Returns:
        PartialAnalysis with model type, partial file stats and metadata
    """
    metadata = header.metadata
    tensor_names = list(header.tensors)
    parsed = parse_metadata(metadata)
    stats = calculate_tensor_stats(header.tensors.values())

    return PartialAnalysis(
        model_type=detect_model_type(tensor_names, metadata),
        file_stats=PartialFileStats(
            header_size=header.size,
            tensor_count=stats.tensor_count,
            total_parameters=stats.total_parameters,
            data_types=stats.data_types,
            dtype_distribution=MappingProxyType(stats.dtype_distribution),
        ),
        raw_metadata=MappingProxyType(metadata),
        model_spec=parsed.model_spec,
        training=parsed.training,
        hashes=parsed.hashes,
        compatibility=detect_compatibility(metadata, tensor_names),
    )
