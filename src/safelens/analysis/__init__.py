"""Analysis of validated safetensors headers.

Pipeline:
    metadata    - typed projections of `__metadata__`
    classifier  - ordered rules mapping names/metadata to a ModelType
    lora        - target components and trigger words for LoRAs
    stats       - per-tensor sizes and file-wide aggregates
    engine      - composes the above into a SafetensorsAnalysis
"""

from safelens.analysis.engine import AnalysisOptions, analyze_safetensors
from safelens.analysis.results import (
    Compatibility,
    FileStats,
    PartialAnalysis,
    PartialFileStats,
    SafetensorsAnalysis,
    TensorInfo,
)

__all__ = [
    "AnalysisOptions",
    "analyze_safetensors",
    "Compatibility",
    "FileStats",
    "PartialAnalysis",
    "PartialFileStats",
    "SafetensorsAnalysis",
    "TensorInfo",
]
