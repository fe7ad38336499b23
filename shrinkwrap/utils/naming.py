"""Utilities for deriving output, part and temporary filenames."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

INVALID_WINDOWS_CHARS = {'<', '>', ':', '"', '/', '\\', '|', '?', '*'}
FALLBACK_BASE_NAME = 'video'
MAX_BASE_LENGTH = 180
OUTPUT_SUFFIX = '_optimized'
OUTPUT_EXTENSION = '.mp4'
PART_MARKER = '_PART_'

__all__ = [
    'sanitize_base_name',
    'output_filename',
    'output_path',
    'part_suffix',
    'is_optimized_artifact',
    'base_name_for',
    'display_name',
]


def sanitize_base_name(name: Optional[Union[str, Path]]) -> str:
    """
    Normalize an input stem into a filesystem-safe base name.

    - Replaces Windows-reserved characters and the Unicode division slash (⧸).
    - Drops control characters.
    - Trims leading/trailing whitespace and dots, enforcing a deterministic fallback.
    """
    text = str(name or '').strip()
    safe_chars: list[str] = []
    for char in text:
        if char == '⧸' or char in INVALID_WINDOWS_CHARS:
            safe_chars.append('_')
        elif ord(char) < 32:
            continue
        else:
            safe_chars.append(char)

    sanitized = ''.join(safe_chars).strip().strip('. ')
    if len(sanitized) > MAX_BASE_LENGTH:
        sanitized = sanitized[:MAX_BASE_LENGTH].rstrip('. ')
    return sanitized or FALLBACK_BASE_NAME


def base_name_for(input_path: Union[str, Path]) -> str:
    return sanitize_base_name(Path(input_path).stem)


def output_filename(base_name: str, suffix: str = '') -> str:
    """'<base><suffix>_optimized.mp4'"""
    return f"{base_name}{suffix}{OUTPUT_SUFFIX}{OUTPUT_EXTENSION}"


def output_path(output_dir: Union[str, Path], base_name: str, suffix: str = '') -> str:
    return os.path.join(str(output_dir), output_filename(base_name, suffix))


def part_suffix(parent_suffix: str, index: int) -> str:
    """Suffix for the index-th half of a split, nested under the parent's suffix"""
    return f"{parent_suffix}{PART_MARKER}{index}"


def is_optimized_artifact(path: Union[str, Path]) -> bool:
    """True for files this tool wrote, which must not be fed back in"""
    return Path(path).name.endswith(f"{OUTPUT_SUFFIX}{OUTPUT_EXTENSION}")


def display_name(input_path: Union[str, Path], base_name: str, suffix: str = '') -> str:
    """Name shown in the session summary: the input's own name, or '<base><suffix><ext>' for parts"""
    path = Path(input_path)
    if not suffix:
        return path.name
    return f"{base_name}{suffix}{path.suffix or OUTPUT_EXTENSION}"
