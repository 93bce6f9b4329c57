"""Tests for LoRA target and trigger word extraction."""

import json

import pytest

from safelens.analysis.lora import (
    LoRATarget,
    build_lora_info,
    extract_lora_targets,
    extract_trigger_words,
)
from safelens.analysis.metadata import TrainingMetadata, parse_metadata


class TestLoRATargets:
    """Test target component detection from tensor-name prefixes."""

    def test_first_seen_order(self):
        """Test targets are listed in the order first encountered."""
        names = ["lora_te1_x.alpha", "lora_unet_y.weight"]
        assert extract_lora_targets(names) == [LoRATarget.CLIP_L, LoRATarget.UNET]

    def test_deduplicated(self):
        """Test each target appears once regardless of tensor count."""
        names = [
            "lora_unet_a.lora_down.weight",
            "lora_unet_a.lora_up.weight",
            "lora_te2_b.alpha",
            "lora_unet_c.alpha",
            "lora_te2_d.alpha",
        ]
        assert extract_lora_targets(names) == [LoRATarget.UNET, LoRATarget.CLIP_G]

    def test_all_targets(self):
        """Test the three canonical component names."""
        names = ["lora_te2_a", "lora_te1_b", "lora_unet_c"]
        assert [t.value for t in extract_lora_targets(names)] == ["CLIP-G", "CLIP-L", "UNet"]

    def test_prefix_must_start_name(self):
        """Test prefixes embedded mid-name are ignored."""
        assert extract_lora_targets(["model.lora_unet_x", "text.lora_te1_y"]) == []


class TestTriggerWords:
    """Test tag-frequency ranking."""

    def test_top_k_by_count(self):
        """Test tags are ranked by descending count."""
        tag_frequency = json.dumps({"img": {"1girl": 100, "blue_archive": 120, "solo": 95}})
        assert extract_trigger_words(tag_frequency, 2) == ["blue_archive", "1girl"]

    def test_default_limit_is_five(self):
        """Test at most five tags are returned by default."""
        tags = {f"tag{i}": i for i in range(10)}
        result = extract_trigger_words(json.dumps({"c": tags}))
        assert result == ["tag9", "tag8", "tag7", "tag6", "tag5"]

    def test_ties_keep_first_seen_order(self):
        """Test equal counts stay in merge order."""
        tag_frequency = json.dumps({"a": {"x": 5, "y": 5}, "b": {"z": 5}})
        assert extract_trigger_words(tag_frequency) == ["x", "y", "z"]

    def test_duplicate_tags_last_write_wins(self):
        """Test a tag in several categories keeps the last count, not the sum.

        Known quirk: 60 + 60 would outrank "solo", but only the last
        category's count is kept.
        """
        tag_frequency = json.dumps(
            {"set_a": {"hat": 60, "solo": 100}, "set_b": {"hat": 60}}
        )
        assert extract_trigger_words(tag_frequency, 1) == ["solo"]

    def test_later_category_overwrites_count(self):
        """Test a later lower count replaces an earlier higher one."""
        tag_frequency = json.dumps({"a": {"hat": 500, "solo": 100}, "b": {"hat": 1}})
        assert extract_trigger_words(tag_frequency) == ["solo", "hat"]

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "{broken",
            "[1, 2]",
            '"text"',
            "42",
            pytest.param('{"a": ' + "[" * 100_000, id="deeply_nested"),
        ],
    )
    def test_malformed_input_is_empty(self, value):
        """Test absent or malformed input yields no words."""
        assert extract_trigger_words(value) == []

    def test_skips_non_object_categories_and_counts(self):
        """Test junk entries are skipped instead of failing."""
        tag_frequency = json.dumps(
            {"bad": [1, 2], "img": {"ok": 3, "text": "many", "flag": True, "none": None}}
        )
        assert extract_trigger_words(tag_frequency) == ["ok"]

    def test_zero_limit(self):
        """Test a zero limit returns nothing."""
        assert extract_trigger_words(json.dumps({"c": {"a": 1}}), 0) == []


class TestBuildLoRAInfo:
    """Test assembling LoRAInfo from parsed metadata."""

    def test_from_training_metadata(self, lora_metadata, lora_header):
        """Test base model, rank, alpha and module come from metadata."""
        names = [name for name in lora_header if name != "__metadata__"]
        info = build_lora_info(names, parse_metadata(lora_metadata).training, lora_metadata)

        assert info.base_model == "sdxl_base_v1-0"
        assert info.rank == 32
        assert info.alpha == 16
        assert info.module == "networks.lora"
        assert info.target_components == (LoRATarget.CLIP_L, LoRATarget.CLIP_G, LoRATarget.UNET)
        assert info.trigger_words == ("blue_archive", "1girl", "solo", "smile")

    def test_unset_fields_are_none(self):
        """Test missing training values default to None."""
        info = build_lora_info(["lora_unet_a.alpha"], TrainingMetadata(), {})

        assert info.base_model is None
        assert info.rank is None
        assert info.alpha is None
        assert info.module is None
        assert info.trigger_words == ()

    def test_trigger_extraction_disabled(self, lora_metadata):
        """Test trigger words can be switched off."""
        training = parse_metadata(lora_metadata).training
        info = build_lora_info([], training, lora_metadata, extract_triggers=False)
        assert info.trigger_words == ()

    def test_to_dict(self, lora_metadata):
        """Test serialization uses plain strings and lists."""
        training = parse_metadata(lora_metadata).training
        info = build_lora_info(["lora_te1_a.alpha"], training, lora_metadata, max_trigger_words=1)

        assert info.to_dict() == {
            "base_model": "sdxl_base_v1-0",
            "target_components": ["CLIP-L"],
            "rank": 32,
            "alpha": 16,
            "trigger_words": ["blue_archive"],
            "module": "networks.lora",
        }
