"""Safetensors header reading and schema validation."""
