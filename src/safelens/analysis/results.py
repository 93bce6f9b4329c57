"""Result data structures for safetensors analysis."""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from safelens.analysis.classifier import ModelType
from safelens.analysis.lora import LoRAInfo
from safelens.analysis.metadata import ModelHashes, ModelSpecMetadata, TrainingMetadata
from safelens.formats.schema import DataType


@dataclass(frozen=True)
class TensorInfo:
    """A tensor descriptor enriched with its byte size and element count."""

    name: str
    dtype: DataType
    shape: tuple[int, ...]
    data_offsets: tuple[int, int]
    size: int
    parameters: int

    def to_dict(self) -> dict:
        """Convert tensor info to dictionary."""
        return {
            "name": self.name,
            "dtype": self.dtype.value,
            "shape": list(self.shape),
            "data_offsets": list(self.data_offsets),
            "size": self.size,
            "parameters": self.parameters,
        }


@dataclass(frozen=True)
class FileStats:
    """File-wide sizes and tensor aggregates."""

    file_size: int
    header_size: int
    tensor_count: int
    total_parameters: int
    data_types: tuple[DataType, ...]
    dtype_distribution: Mapping[DataType, int]

    def to_dict(self) -> dict:
        """Convert file stats to dictionary."""
        return {
            "file_size": self.file_size,
            "header_size": self.header_size,
            "tensor_count": self.tensor_count,
            "total_parameters": self.total_parameters,
            "data_types": [d.value for d in self.data_types],
            "dtype_distribution": {d.value: n for d, n in self.dtype_distribution.items()},
        }


@dataclass(frozen=True)
class Compatibility:
    """Frameworks the file declares (or appears) to target. Not exclusive."""

    pytorch: bool = False
    tensorflow: bool = False
    jax: bool = False
    numpy: bool = False

    def to_dict(self) -> dict:
        return {
            "pytorch": self.pytorch,
            "tensorflow": self.tensorflow,
            "jax": self.jax,
            "numpy": self.numpy,
        }


@dataclass(frozen=True)
class PartialFileStats:
    """FileStats with every field optional, for header-only inspection."""

    file_size: int | None = None
    header_size: int | None = None
    tensor_count: int | None = None
    total_parameters: int | None = None
    data_types: tuple[DataType, ...] | None = None
    dtype_distribution: Mapping[DataType, int] | None = None

    def to_dict(self) -> dict:
        out: dict = {
            "file_size": self.file_size,
            "header_size": self.header_size,
            "tensor_count": self.tensor_count,
            "total_parameters": self.total_parameters,
        }
        if self.data_types is not None:
            out["data_types"] = [d.value for d in self.data_types]
        if self.dtype_distribution is not None:
            out["dtype_distribution"] = {d.value: n for d, n in self.dtype_distribution.items()}
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class PartialAnalysis:
    """Incomplete analysis: only the model type is guaranteed."""

    model_type: ModelType
    file_stats: PartialFileStats = field(default_factory=PartialFileStats)
    raw_metadata: Mapping[str, str] | None = None
    model_spec: ModelSpecMetadata | None = None
    training: TrainingMetadata | None = None
    hashes: ModelHashes | None = None
    lora_info: LoRAInfo | None = None
    tensors: tuple[TensorInfo, ...] | None = None
    compatibility: Compatibility | None = None
    warnings: tuple[str, ...] | None = None

    def to_dict(self) -> dict:
        """Convert partial analysis to dictionary, omitting unset fields."""
        out: dict = {
            "model_type": self.model_type.value,
            "file_stats": self.file_stats.to_dict(),
        }
        if self.raw_metadata is not None:
            out["raw_metadata"] = dict(self.raw_metadata)
        for name in ("model_spec", "training", "hashes", "lora_info", "compatibility"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value.to_dict()
        if self.tensors is not None:
            out["tensors"] = [t.to_dict() for t in self.tensors]
        if self.warnings is not None:
            out["warnings"] = list(self.warnings)
        return out


@dataclass(frozen=True)
class SafetensorsAnalysis:
    """Complete result of analyzing one safetensors header."""

    model_type: ModelType
    file_stats: FileStats
    raw_metadata: Mapping[str, str]
    model_spec: ModelSpecMetadata
    training: TrainingMetadata
    hashes: ModelHashes
    tensors: tuple[TensorInfo, ...]
    compatibility: Compatibility
    lora_info: LoRAInfo | None = None
    warnings: tuple[str, ...] = ()

    def to_partial(self) -> PartialAnalysis:
        """View this analysis through the partial-result type."""
        stats = self.file_stats
        return PartialAnalysis(
            model_type=self.model_type,
            file_stats=PartialFileStats(
                file_size=stats.file_size,
                header_size=stats.header_size,
                tensor_count=stats.tensor_count,
                total_parameters=stats.total_parameters,
                data_types=stats.data_types,
                dtype_distribution=stats.dtype_distribution,
            ),
            raw_metadata=self.raw_metadata,
            model_spec=self.model_spec,
            training=self.training,
            hashes=self.hashes,
            lora_info=self.lora_info,
            tensors=self.tensors,
            compatibility=self.compatibility,
            warnings=self.warnings,
        )

    def to_dict(self) -> dict:
        """Convert analysis to dictionary."""
        return {
            "model_type": self.model_type.value,
            "file_stats": self.file_stats.to_dict(),
            "raw_metadata": dict(self.raw_metadata),
            "model_spec": self.model_spec.to_dict(),
            "training": self.training.to_dict(),
            "hashes": self.hashes.to_dict(),
            "lora_info": self.lora_info.to_dict() if self.lora_info else None,
            "tensors": [t.to_dict() for t in self.tensors],
            "compatibility": self.compatibility.to_dict(),
            "warnings": list(self.warnings),
        }

    def to_json(self) -> str:
        """Convert analysis to JSON string."""
        return json.dumps(self.to_dict(), indent=2)
