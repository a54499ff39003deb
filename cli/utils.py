"""Utility functions for CLI operations."""

import sys
from typing import TextIO

from cli.constants import GREEN, RESET


class ProgressPrinter:
    """Progress observer that redraws a one-line upload status on stdout."""

    def __init__(self, filename: str, total_size: int, stream: TextIO = None):
        """
        Args:
            filename: Display name for the file
            total_size: File size in bytes
            stream: Output stream (defaults to stdout)
        """
        self.filename = filename
        self.total_size = total_size
        self.stream = stream or sys.stdout
        self._finished = False

    def __call__(self, fraction: float) -> None:
        sent = int(self.total_size * fraction)
        self.stream.write(
            f"\rUploading {self.filename}: {format_file_size(sent)} / {format_file_size(self.total_size)} "
            f"({GREEN}{fraction * 100:.1f}%{RESET})"
        )
        self.stream.flush()

    def finish(self) -> None:
        if not self._finished:
            self._finished = True
            self.stream.write('\n')
            self.stream.flush()


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.
    
    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).
    
    Args:
        size_bytes: File size in bytes
        
    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    
    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0
    
    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    
    return f"{size:.2f} PiB"
