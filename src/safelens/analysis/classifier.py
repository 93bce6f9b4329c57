"""Model type inference from metadata hints and tensor-name patterns.

Classification is an ordered list of rules evaluated top-down; the first
rule whose predicate matches decides the type. Metadata rules come first,
so an explicit architecture always beats name-pattern guessing, and the
checkpoint rule sits above the embedding fallback so a small checkpoint
slice is not mistaken for an embedding.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

ARCHITECTURE_KEY = "modelspec.architecture"

# Embeddings carry a handful of tensors at most
EMBEDDING_MAX_TENSORS = 5


class ModelType(str, Enum):
    """Kinds of model a safetensors file can hold."""

    CHECKPOINT = "checkpoint"
    LORA = "lora"
    VAE = "vae"
    CONTROLNET = "controlnet"
    TEXT_ENCODER = "text_encoder"
    EMBEDDING = "embedding"
    DIFFUSION_MODEL = "diffusion_model"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NameFeatures:
    """Boolean features of a tensor name list, computed once per file."""

    tensor_count: int
    has_lora: bool
    has_vae: bool
    has_unet: bool
    has_controlnet: bool
    has_text_model: bool
    has_cond_stage: bool
    has_first_stage: bool
    has_embedding_name: bool

    @classmethod
    def from_names(cls, names: Sequence[str]) -> "NameFeatures":
        return cls(
            tensor_count=len(names),
            has_lora=any(
                "lora_" in n and (".alpha" in n or ".lora_down" in n or ".lora_up" in n)
                for n in names
            ),
            has_vae=any(n.startswith(("decoder.", "encoder.")) for n in names),
            has_unet=any("diffusion_model" in n or "unet" in n for n in names),
            has_controlnet=any(
                "control_" in n or ("input_blocks" in n and "zero_convs" in n) for n in names
            ),
            has_text_model=any("text_model" in n or "text_encoder" in n for n in names),
            has_cond_stage=any("cond_stage_model" in n for n in names),
            has_first_stage=any("first_stage_model" in n for n in names),
            has_embedding_name=any("emb" in n or n == "weight" for n in names),
        )


@dataclass(frozen=True)
class ClassificationContext:
    """Inputs visible to every rule."""

    architecture: str | None
    features: NameFeatures


@dataclass(frozen=True)
class ClassificationRule:
    """One step of the classification cascade."""

    name: str
    predicate: Callable[[ClassificationContext], bool]
    result: ModelType


def _arch_contains(*needles: str) -> Callable[[ClassificationContext], bool]:
    def predicate(ctx: ClassificationContext) -> bool:
        return ctx.architecture is not None and any(n in ctx.architecture for n in needles)

    return predicate


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("metadata_lora", _arch_contains("/lora"), ModelType.LORA),
    ClassificationRule("metadata_vae", _arch_contains("vae"), ModelType.VAE),
    ClassificationRule("metadata_controlnet", _arch_contains("controlnet"), ModelType.CONTROLNET),
    ClassificationRule(
        "metadata_text_encoder", _arch_contains("text_encoder", "clip"), ModelType.TEXT_ENCODER
    ),
    ClassificationRule("lora_tensors", lambda c: c.features.has_lora, ModelType.LORA),
    ClassificationRule(
        "vae_without_unet",
        lambda c: c.features.has_vae and not c.features.has_unet,
        ModelType.VAE,
    ),
    ClassificationRule("controlnet_tensors", lambda c: c.features.has_controlnet, ModelType.CONTROLNET),
    ClassificationRule(
        "text_model_without_unet",
        lambda c: c.features.has_text_model and not c.features.has_unet,
        ModelType.TEXT_ENCODER,
    ),
    ClassificationRule(
        "unet_with_companions",
        lambda c: c.features.has_unet
        and (c.features.has_cond_stage or c.features.has_first_stage or c.features.has_text_model),
        ModelType.CHECKPOINT,
    ),
    ClassificationRule(
        "small_embedding",
        lambda c: c.features.tensor_count <= EMBEDDING_MAX_TENSORS and c.features.has_embedding_name,
        ModelType.EMBEDDING,
    ),
    ClassificationRule("unet_only", lambda c: c.features.has_unet, ModelType.DIFFUSION_MODEL),
)


def detect_model_type(
    tensor_names: Sequence[str],
    metadata: dict[str, str] | None = None,
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
) -> ModelType:
    """Classify a file from its tensor names and metadata.

    Args:
        tensor_names: Tensor names in header order
        metadata: Raw `__metadata__` mapping, if any
        rules: Ordered rule list (first match wins)

    Returns:
        The detected ModelType, UNKNOWN when no rule matches
    """
    architecture = (metadata or {}).get(ARCHITECTURE_KEY)
    ctx = ClassificationContext(
        architecture=architecture.lower() if architecture else None,
        features=NameFeatures.from_names(tensor_names),
    )

    for rule in rules:
        if rule.predicate(ctx):
            logger.debug("Classified as %s by rule %s", rule.result.value, rule.name)
            return rule.result

    return ModelType.UNKNOWN
