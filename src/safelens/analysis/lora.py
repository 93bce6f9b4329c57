"""LoRA-specific extraction: target components and trigger words."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from safelens.analysis.metadata import TrainingMetadata, parse_json

DEFAULT_MAX_TRIGGER_WORDS = 5


class LoRATarget(str, Enum):
    """Base-model components a LoRA can patch."""

    UNET = "UNet"
    CLIP_L = "CLIP-L"
    CLIP_G = "CLIP-G"


# kohya naming: te1 is the first (CLIP-L) text encoder, te2 the SDXL CLIP-G one
TARGET_PREFIXES = (
    ("lora_te1_", LoRATarget.CLIP_L),
    ("lora_te2_", LoRATarget.CLIP_G),
    ("lora_unet_", LoRATarget.UNET),
)


@dataclass(frozen=True)
class LoRAInfo:
    """What a LoRA was trained on and what it modifies."""

    base_model: str | None
    target_components: tuple[LoRATarget, ...]
    rank: int | None
    alpha: int | None
    trigger_words: tuple[str, ...]
    module: str | None = None

    def to_dict(self) -> dict:
        return {
            "base_model": self.base_model,
            "target_components": [t.value for t in self.target_components],
            "rank": self.rank,
            "alpha": self.alpha,
            "trigger_words": list(self.trigger_words),
            "module": self.module,
        }


def extract_lora_targets(tensor_names: Sequence[str]) -> list[LoRATarget]:
    """List the components a LoRA touches, in first-seen order.

    Args:
        tensor_names: Tensor names in header order

    Returns:
        Distinct targets, each listed once
    """
    targets: dict[LoRATarget, None] = {}
    for name in tensor_names:
        for prefix, target in TARGET_PREFIXES:
            if name.startswith(prefix):
                targets.setdefault(target, None)
                break
    return list(targets)


def _is_count(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_trigger_words(
    tag_frequency: str | None, max_words: int = DEFAULT_MAX_TRIGGER_WORDS
) -> list[str]:
    """Rank the most frequent training tags.

    The tag-frequency JSON maps dataset category -> {tag: count}. Categories
    are merged with later ones overwriting earlier counts for the same tag
    (counts are not summed), then tags are ranked by descending count.

    Args:
        tag_frequency: JSON-encoded `ss_tag_frequency` value
        max_words: Number of tags to return

    Returns:
        Up to max_words tags; empty for missing or malformed input
    """
    if not tag_frequency:
        return []

    parsed = parse_json(tag_frequency)
    if not isinstance(parsed, dict):
        return []

    merged: dict[str, float] = {}
    for category in parsed.values():
        if isinstance(category, dict):
            merged.update((tag, count) for tag, count in category.items() if _is_count(count))

    ranked = sorted(merged.items(), key=lambda item: item[1], reverse=True)
    return [tag for tag, _ in ranked[: max(max_words, 0)]]


def build_lora_info(
    tensor_names: Sequence[str],
    training: TrainingMetadata,
    raw_metadata: dict[str, str],
    extract_triggers: bool = True,
    max_trigger_words: int = DEFAULT_MAX_TRIGGER_WORDS,
) -> LoRAInfo:
    """Assemble LoRAInfo from tensor names and parsed training metadata."""
    trigger_words: list[str] = []
    if extract_triggers:
        trigger_words = extract_trigger_words(
            raw_metadata.get("ss_tag_frequency"), max_trigger_words
        )

    return LoRAInfo(
        base_model=training.base_model_version,
        target_components=tuple(extract_lora_targets(tensor_names)),
        rank=training.network_dim,
        alpha=training.network_alpha,
        trigger_words=tuple(trigger_words),
        module=raw_metadata.get("ss_network_module"),
    )
