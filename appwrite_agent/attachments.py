"""User file attachments: limits, metadata and prompt notes."""

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel

from appwrite_agent.exceptions import AttachmentValidationError
from appwrite_agent.instructions import InstructionLoader

MAX_FILES = 5
MAX_FILE_BYTES = 10 * 1024 * 1024


class AttachmentInfo(BaseModel):
    """Display metadata kept on the user message after the turn."""

    name: str
    size: int
    mime_type: str = ""


@dataclass(frozen=True)
class FileAttachment:
    """A file attached to a single user turn."""

    name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    def info(self) -> AttachmentInfo:
        return AttachmentInfo(name=self.name, size=self.size, mime_type=self.mime_type)

    @classmethod
    def from_path(cls, path: Path | str) -> "FileAttachment":
        """Read a local file into an attachment."""
        file_path = Path(path).expanduser()
        mime_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            name=file_path.name,
            data=file_path.read_bytes(),
            mime_type=mime_type or "application/octet-stream",
        )


def _format_megabytes(size: int) -> str:
    value = size / (1024 * 1024)
    return f"{int(value)}MB" if value.is_integer() else f"{value:.1f}MB"


def validate_attachments(
    files: Sequence[FileAttachment],
    max_count: int = MAX_FILES,
    max_bytes: int = MAX_FILE_BYTES,
) -> None:
    """Reject attachment sets over the count or per-file size limit."""
    if len(files) > max_count:
        raise AttachmentValidationError(
            f"You can select a maximum of {max_count} files at a time."
        )
    for file in files:
        if file.size > max_bytes:
            raise AttachmentValidationError(
                f'File "{file.name}" is too large. Max size is {_format_megabytes(max_bytes)}.'
            )


def describe_attachments(
    prompt: str,
    files: Sequence[FileAttachment],
    loader: InstructionLoader | None = None,
) -> str:
    """Return the text sent to the model, with a note about attached files."""
    text = (prompt or "").strip()
    if not files:
        return text

    multi_file_note = ""
    if len(files) > 1:
        names = ", ".join(f'"{f.name}"' for f in files)
        multi_file_note = (
            " When calling 'writeFile', you MUST specify the 'fileName' argument. "
            "To upload multiple files, you must make parallel tool calls, one for each file. "
            f"Available files: {names}."
        )
    note = (loader or InstructionLoader()).render(
        "attachment_note.md",
        file_count=len(files),
        file_descriptions=", ".join(f"**{f.name}** ({f.mime_type})" for f in files),
        multi_file_note=multi_file_note,
    )
    if text:
        return f"{text}\n\n{note}"
    return f"Please determine what to do with the attached files, or call a tool to process them.\n\n{note}"


def pick_attachment(
    files: Sequence[FileAttachment],
    file_name: str | None,
) -> FileAttachment | None:
    """Select the attachment a tool call refers to.

    An explicit name must match; without one, a lone attachment is used.
    """
    if file_name:
        for file in files:
            if file.name == file_name:
                return file
        return None
    if len(files) == 1:
        return files[0]
    return None
