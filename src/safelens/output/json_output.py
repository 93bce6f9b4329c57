"""JSON output for analysis results."""

import json
import sys
from typing import TextIO

from safelens.analysis.results import PartialAnalysis, SafetensorsAnalysis
from safelens.errors import ErrorResult


def output_json(
    result: SafetensorsAnalysis | PartialAnalysis | ErrorResult,
    file: TextIO | None = None,
    indent: int = 2,
) -> None:
    """Write a result as JSON.

    Args:
        result: Analysis, partial analysis or error result
        file: Output file (default: stdout)
        indent: JSON indentation level
    """
    file = file or sys.stdout
    json.dump(result.to_dict(), file, indent=indent)
    file.write("\n")


def result_to_json(
    result: SafetensorsAnalysis | PartialAnalysis | ErrorResult, indent: int = 2
) -> str:
    """Convert a result to a JSON string."""
    return json.dumps(result.to_dict(), indent=indent)
