"""Pytest fixtures for safelens tests."""

import json
import struct

import pytest


def build_safetensors(header: dict, data: bytes = b"") -> bytes:
    """Serialize a header dict into safetensors bytes (prefix + JSON + data)."""
    header_json = json.dumps(header).encode("utf-8")
    return struct.pack("<Q", len(header_json)) + header_json + data


def tensor(dtype: str, shape: list[int], start: int, end: int) -> dict:
    """Tensor descriptor as it appears in a header."""
    return {"dtype": dtype, "shape": shape, "data_offsets": [start, end]}


@pytest.fixture
def fixtures_dir(tmp_path):
    """Create a temporary fixtures directory."""
    return tmp_path


@pytest.fixture
def simple_header():
    """Header with one F32 tensor and a format tag."""
    return {
        "__metadata__": {"format": "pt"},
        "weight": tensor("F32", [2, 2], 0, 16),
    }


@pytest.fixture
def simple_safetensors_bytes(simple_header):
    """Valid safetensors bytes including tensor data."""
    return build_safetensors(simple_header, struct.pack("<4f", 1.0, 2.0, 3.0, 4.0))


@pytest.fixture
def valid_safetensors_file(fixtures_dir, simple_safetensors_bytes):
    """Create a valid safetensors file."""
    filepath = fixtures_dir / "model.safetensors"
    filepath.write_bytes(simple_safetensors_bytes)
    return filepath


@pytest.fixture
def lora_metadata():
    """kohya-style training metadata for an SDXL LoRA."""
    return {
        "format": "pt",
        "ss_base_model_version": "sdxl_base_v1-0",
        "ss_network_module": "networks.lora",
        "ss_network_dim": "32",
        "ss_network_alpha": "16",
        "ss_learning_rate": "0.0001",
        "ss_num_epochs": "10",
        "ss_gradient_checkpointing": "True",
        "ss_tag_frequency": json.dumps(
            {"img": {"1girl": 100, "blue_archive": 120, "solo": 95, "smile": 10}}
        ),
        "sshs_model_hash": "abc123",
    }


@pytest.fixture
def lora_header(lora_metadata):
    """Header of a LoRA patching both text encoders and the UNet."""
    return {
        "__metadata__": lora_metadata,
        "lora_te1_text_model_encoder_layers_0_mlp_fc1.alpha": tensor("F16", [], 0, 2),
        "lora_te1_text_model_encoder_layers_0_mlp_fc1.lora_down.weight": tensor(
            "F16", [32, 768], 2, 49154
        ),
        "lora_te2_text_model_encoder_layers_0_mlp_fc1.lora_up.weight": tensor(
            "F16", [1280, 32], 49154, 131074
        ),
        "lora_unet_input_blocks_4_1_proj_in.lora_down.weight": tensor(
            "F16", [32, 640], 131074, 172034
        ),
        "lora_unet_input_blocks_4_1_proj_in.lora_up.weight": tensor(
            "F16", [640, 32], 172034, 212994
        ),
    }


@pytest.fixture
def lora_safetensors_file(fixtures_dir, lora_header):
    """LoRA file written header-only, padded to the declared data size."""
    filepath = fixtures_dir / "lora.safetensors"
    filepath.write_bytes(build_safetensors(lora_header, b"\x00" * 212994))
    return filepath


@pytest.fixture
def checkpoint_header():
    """Header shaped like a single-file SD 1.5 checkpoint slice."""
    return {
        "model.diffusion_model.input_blocks.0.0.weight": tensor("F16", [320, 4, 3, 3], 0, 23040),
        "cond_stage_model.transformer.text_model.embeddings.position_ids": tensor(
            "I64", [1, 77], 23040, 23656
        ),
        "first_stage_model.decoder.conv_in.weight": tensor("F32", [512, 4, 3, 3], 23656, 97384),
    }
