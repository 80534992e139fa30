"""Shared type aliases."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeAlias

# Normalized label set: every value is a non-empty string.
Labels: TypeAlias = dict[str, str]
# Loose label input accepted at call sites; values are stringified and trimmed.
LabelInput: TypeAlias = Mapping[str, object]
