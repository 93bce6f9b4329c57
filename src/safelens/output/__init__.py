"""Output formatters for analysis results."""

from safelens.output.console import print_analysis, print_header_summary
from safelens.output.json_output import output_json

__all__ = ["print_analysis", "print_header_summary", "output_json"]
