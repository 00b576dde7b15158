# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Handles JSON vs plain text output.
"""

from __future__ import annotations

import json
import sys
from typing import Any


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Print a command result.

    JSON mode pretty-prints the whole dict. Text mode prints one
    ``key: value`` line per field, with lists joined by spaces.
    """
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return

    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            value = " ".join(str(v) for v in value)
        elif isinstance(value, dict):
            value = json.dumps(value, default=str)
        print(f"{key}: {value}")


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
