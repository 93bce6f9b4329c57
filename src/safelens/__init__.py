"""safelens - header and metadata inspector for safetensors model files."""

from safelens.analysis.classifier import ModelType, detect_model_type
from safelens.analysis.engine import (
    AnalysisOptions,
    analyze_bytes,
    analyze_file,
    analyze_json,
    analyze_safetensors,
    inspect_header,
    summarize_header,
)
from safelens.analysis.results import PartialAnalysis, SafetensorsAnalysis
from safelens.errors import ErrorKind, ErrorResult, SafelensError, create_error_result
from safelens.formats.header_reader import (
    BufferRangeSource,
    ByteRangeSource,
    FileRangeSource,
    aread_header,
    read_header,
)
from safelens.formats.schema import SafetensorsHeader, parse_header

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "analyze_bytes",
    "analyze_file",
    "analyze_json",
    "analyze_safetensors",
    "inspect_header",
    "summarize_header",
    "parse_header",
    "read_header",
    "aread_header",
    # Types
    "AnalysisOptions",
    "ModelType",
    "detect_model_type",
    "PartialAnalysis",
    "SafetensorsAnalysis",
    "SafetensorsHeader",
    "BufferRangeSource",
    "ByteRangeSource",
    "FileRangeSource",
    # Errors
    "ErrorKind",
    "ErrorResult",
    "SafelensError",
    "create_error_result",
]
