"""Typed projections of the free-form `__metadata__` dictionary.

Metadata values are always strings, written by a loose ecosystem of
training scripts and converters. Known keys are coerced into three fixed
records; anything unknown, or anything that fails to coerce, is left out
of the typed records and stays available in the raw mapping.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

MODELSPEC_PREFIX = "modelspec."
TRAINING_PREFIX = "ss_"

MODELSPEC_FIELDS = frozenset(
    {
        "sai_model_spec",
        "architecture",
        "implementation",
        "title",
        "description",
        "author",
        "date",
        "resolution",
        "prediction_type",
        "encoder_layer",
    }
)

# Exact keys, checked before the generic ss_ bucket
HASH_KEYS = {
    "sshs_model_hash": "model_hash",
    "sshs_legacy_hash": "legacy_hash",
    "ss_sd_model_hash": "sd_model_hash",
    "ss_new_sd_model_hash": "new_sd_model_hash",
}

INT_FIELDS = frozenset(
    {"num_train_images", "num_epochs", "batch_size", "network_dim", "network_alpha", "clip_skip"}
)
FLOAT_FIELDS = frozenset({"learning_rate", "noise_offset", "caption_dropout_rate"})
BOOL_FIELDS = frozenset({"gradient_checkpointing"})
JSON_FIELDS = frozenset({"dataset_dirs", "tag_frequency"})
STRING_FIELDS = frozenset(
    {
        "base_model_version",
        "optimizer",
        "lr_scheduler",
        "training_started_at",
        "training_finished_at",
        "mixed_precision",
    }
)
TRAINING_FIELDS = INT_FIELDS | FLOAT_FIELDS | BOOL_FIELDS | JSON_FIELDS | STRING_FIELDS

# Training scripts write the per-device batch size under a longer name
FIELD_ALIASES = {"batch_size_per_device": "batch_size"}

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity)")


@dataclass(frozen=True)
class ModelSpecMetadata:
    """SAI model spec fields (`modelspec.*`)."""

    sai_model_spec: str | None = None
    architecture: str | None = None
    implementation: str | None = None
    title: str | None = None
    description: str | None = None
    author: str | None = None
    date: str | None = None
    resolution: str | None = None
    prediction_type: str | None = None
    encoder_layer: str | None = None

    def to_dict(self) -> dict:
        return _compact(asdict(self))


@dataclass(frozen=True)
class TrainingMetadata:
    """Training hyperparameters recorded by kohya-style scripts (`ss_*`)."""

    base_model_version: str | None = None
    num_train_images: int | None = None
    num_epochs: int | None = None
    learning_rate: float | None = None
    batch_size: int | None = None
    network_dim: int | None = None
    network_alpha: int | None = None
    optimizer: str | None = None
    lr_scheduler: str | None = None
    training_started_at: str | None = None
    training_finished_at: str | None = None
    dataset_dirs: Any | None = None
    tag_frequency: Any | None = None
    clip_skip: int | None = None
    mixed_precision: str | None = None
    gradient_checkpointing: bool | None = None
    noise_offset: float | None = None
    caption_dropout_rate: float | None = None

    def to_dict(self) -> dict:
        return _compact(asdict(self))


@dataclass(frozen=True)
class ModelHashes:
    """Model hashes written by training and hashing tools."""

    model_hash: str | None = None
    legacy_hash: str | None = None
    sd_model_hash: str | None = None
    new_sd_model_hash: str | None = None

    def to_dict(self) -> dict:
        return _compact(asdict(self))


@dataclass(frozen=True)
class ParsedMetadata:
    """The three typed records produced from one raw metadata mapping."""

    model_spec: ModelSpecMetadata
    training: TrainingMetadata
    hashes: ModelHashes


def _compact(values: dict) -> dict:
    return {k: v for k, v in values.items() if v is not None}


def parse_int(value: str) -> int | None:
    """Parse the leading integer of a string ("128.0" -> 128).

    Returns:
        The integer, or None if the string does not start with one
    """
    match = _INT_RE.match(value)
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        # Digit strings past the int conversion limit
        return None


def parse_float(value: str) -> float | None:
    """Parse the leading decimal literal of a string ("1e-4" -> 0.0001).

    Returns:
        The float, or None if the string does not start with a number
    """
    match = _FLOAT_RE.match(value)
    if not match:
        return None
    return float(match.group(1).replace("Infinity", "inf"))


def parse_bool(value: str) -> bool:
    # Training scripts write Python's str(True)
    return value == "True"


def parse_json(value: str) -> Any | None:
    # A literal "null" is indistinguishable from a decode failure and stays unset
    try:
        return json.loads(value)
    except (json.JSONDecodeError, RecursionError):
        return None


def _coerce_training_field(field: str, value: str) -> Any | None:
    if field in INT_FIELDS:
        return parse_int(value)
    if field in FLOAT_FIELDS:
        return parse_float(value)
    if field in BOOL_FIELDS:
        return parse_bool(value)
    if field in JSON_FIELDS:
        return parse_json(value)
    return value


def parse_metadata(raw: dict[str, str]) -> ParsedMetadata:
    """Split raw metadata into model spec, training and hash records.

    Hash keys are matched exactly before the `ss_` prefix bucket, so
    `ss_sd_model_hash` lands in the hashes record and never in training.
    Unrecognized keys are skipped; values that fail to coerce stay unset.

    Args:
        raw: The `__metadata__` mapping of a header

    Returns:
        ParsedMetadata with the three typed records
    """
    model_spec: dict[str, str] = {}
    training: dict[str, Any] = {}
    hashes: dict[str, str] = {}

    for key, value in raw.items():
        if key.startswith(MODELSPEC_PREFIX):
            field = key[len(MODELSPEC_PREFIX) :]
            if field in MODELSPEC_FIELDS:
                model_spec[field] = value

        elif key in HASH_KEYS:
            hashes[HASH_KEYS[key]] = value

        elif key.startswith(TRAINING_PREFIX):
            field = key[len(TRAINING_PREFIX) :]
            field = FIELD_ALIASES.get(field, field)
            if field not in TRAINING_FIELDS:
                continue

            coerced = _coerce_training_field(field, value)
            if coerced is None:
                logger.debug("Ignoring unparseable value for %s: %.80r", key, value)
                continue
            training[field] = coerced

    return ParsedMetadata(
        model_spec=ModelSpecMetadata(**model_spec),
        training=TrainingMetadata(**training),
        hashes=ModelHashes(**hashes),
    )
