"""Schema validation for decoded safetensors headers.

The header is a JSON object whose entries are tensor descriptors, plus an
optional `__metadata__` object of string pairs. Validation is total: a
header either comes back fully typed or raises before anything downstream
sees it.
"""

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    Strict,
    StrictStr,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from safelens.errors import HeaderValidationError, InvalidJsonError
from safelens.formats.header_reader import decode_header

METADATA_KEY = "__metadata__"


class DataType(str, Enum):
    """Tensor element storage types defined by the safetensors format."""

    BOOL = "BOOL"
    U8 = "U8"
    I8 = "I8"
    F8_E5M2 = "F8_E5M2"
    F8_E4M3 = "F8_E4M3"
    I16 = "I16"
    U16 = "U16"
    F16 = "F16"
    BF16 = "BF16"
    I32 = "I32"
    U32 = "U32"
    F32 = "F32"
    F64 = "F64"
    I64 = "I64"
    U64 = "U64"

    @property
    def itemsize(self) -> int:
        """Bytes per element."""
        return DTYPE_SIZES[self]


DTYPE_SIZES = {
    DataType.BOOL: 1,
    DataType.U8: 1,
    DataType.I8: 1,
    DataType.F8_E5M2: 1,
    DataType.F8_E4M3: 1,
    DataType.I16: 2,
    DataType.U16: 2,
    DataType.F16: 2,
    DataType.BF16: 2,
    DataType.I32: 4,
    DataType.U32: 4,
    DataType.F32: 4,
    DataType.F64: 8,
    DataType.I64: 8,
    DataType.U64: 8,
}

Dimension = Annotated[int, Strict(), Field(ge=0)]


class RawTensorInfo(BaseModel):
    """Tensor descriptor exactly as it appears in the header."""

    model_config = ConfigDict(frozen=True)

    dtype: DataType
    shape: tuple[Dimension, ...]
    data_offsets: tuple[Dimension, Dimension]

    @model_validator(mode="after")
    def _check_offset_order(self) -> "RawTensorInfo":
        start, end = self.data_offsets
        if end < start:
            raise ValueError(f"data_offsets end ({end}) is before start ({start})")
        return self

    @property
    def nbytes(self) -> int:
        """Byte size implied by dtype and shape."""
        return self.dtype.itemsize * math.prod(self.shape)


RawMetadata = dict[str, str]

_metadata_adapter = TypeAdapter(dict[str, StrictStr])


@dataclass(frozen=True)
class SafetensorsHeader:
    """Validated header: its byte size and the typed entries."""

    size: int
    data: Mapping[str, RawTensorInfo | Mapping[str, str]]

    @property
    def metadata(self) -> RawMetadata:
        """The `__metadata__` mapping, empty if the header has none."""
        meta = self.data.get(METADATA_KEY)
        return dict(meta) if isinstance(meta, Mapping) else {}

    @property
    def tensors(self) -> dict[str, RawTensorInfo]:
        """Tensor descriptors in header order."""
        return {
            name: info for name, info in self.data.items() if isinstance(info, RawTensorInfo)
        }

    def to_json_dict(self) -> dict[str, Any]:
        """Header as plain JSON-compatible data."""
        out: dict[str, Any] = {}
        for key, value in self.data.items():
            if isinstance(value, RawTensorInfo):
                out[key] = {
                    "dtype": value.dtype.value,
                    "shape": list(value.shape),
                    "data_offsets": list(value.data_offsets),
                }
            else:
                out[key] = dict(value)
        return out


def parse_header_json(text: str) -> Any:
    """Parse header text as JSON.

    Raises:
        InvalidJsonError: Text is not valid JSON
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidJsonError(f"Invalid header JSON: {e}", {"position": e.pos}) from e
    except RecursionError as e:
        raise InvalidJsonError("Invalid header JSON: nesting too deep", {"position": None}) from e


def _first_error(error: ValidationError) -> str:
    err = error.errors()[0]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def _check_strict_offsets(name: str, info: RawTensorInfo) -> None:
    start, end = info.data_offsets
    if end - start != info.nbytes:
        raise HeaderValidationError(
            name,
            f"data_offsets span {end - start} bytes but {info.dtype.value} "
            f"{list(info.shape)} needs {info.nbytes}",
        )


def validate_header(data: Any, size: int, strict_offsets: bool = False) -> SafetensorsHeader:
    """Validate parsed header JSON against the safetensors schema.

    Args:
        data: Result of JSON-decoding the header text
        size: Header byte length
        strict_offsets: Also require each offset span to match dtype x shape

    Returns:
        Validated SafetensorsHeader

    Raises:
        HeaderValidationError: Any entry violates the schema
    """
    if not isinstance(data, dict):
        raise HeaderValidationError(
            None, f"header must be a JSON object, got {type(data).__name__}"
        )

    entries: dict[str, RawTensorInfo | Mapping[str, str]] = {}
    for key, value in data.items():
        if key == METADATA_KEY:
            if not isinstance(value, dict):
                raise HeaderValidationError(
                    key, f"__metadata__ must be an object, got {type(value).__name__}"
                )
            try:
                entries[key] = MappingProxyType(_metadata_adapter.validate_python(value))
            except ValidationError as e:
                raise HeaderValidationError(key, _first_error(e)) from e
            continue

        try:
            info = RawTensorInfo.model_validate(value)
        except ValidationError as e:
            raise HeaderValidationError(key, _first_error(e)) from e

        if strict_offsets:
            _check_strict_offsets(key, info)
        entries[key] = info

    return SafetensorsHeader(size=size, data=MappingProxyType(entries))


def parse_header(
    buffer: bytes | bytearray | memoryview, strict_offsets: bool = False
) -> SafetensorsHeader:
    """Decode, parse and validate the header of a fully-buffered file.

    Args:
        buffer: File bytes (at least the prefix and the header)
        strict_offsets: Also require each offset span to match dtype x shape

    Returns:
        Validated SafetensorsHeader
    """
    raw = decode_header(buffer)
    return validate_header(parse_header_json(raw.text), raw.size, strict_offsets)
