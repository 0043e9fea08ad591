"""Framing for a single-file ``multipart/form-data`` body.

The file bytes themselves are streamed by the caller between
:meth:`MultipartFileEncoder.part_header` and
:meth:`MultipartFileEncoder.trailer`, so the encoder never holds the file in
memory.
"""

from __future__ import annotations

import os


def _escape_quotes(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MultipartFileEncoder:
    """Produces the framing around one file part of a multipart form."""

    def __init__(self, field_name: str, filename: str, boundary: str | None = None) -> None:
        self.field_name = field_name
        self.filename = filename
        self.boundary = boundary or os.urandom(16).hex()

    @property
    def content_type(self) -> str:
        """Value for the request's ``Content-Type`` header."""
        return f"multipart/form-data; boundary={self.boundary}"

    def part_header(self) -> bytes:
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{_escape_quotes(self.field_name)}"; '
            f'filename="{_escape_quotes(self.filename)}"\r\n'
            "Content-Type: application/octet-stream\r\n"
            "\r\n"
        ).encode("utf-8")

    def trailer(self) -> bytes:
        return f"\r\n--{self.boundary}--\r\n".encode("ascii")

    def encoded_length(self, file_size: int) -> int:
        """Total body length for a file of *file_size* bytes."""
        return len(self.part_header()) + file_size + len(self.trailer())
