import pytest

from appwrite_agent.attachments import (
    FileAttachment,
    describe_attachments,
    pick_attachment,
    validate_attachments,
)
from appwrite_agent.exceptions import AttachmentValidationError
from appwrite_agent.instructions import InstructionLoader

MB = 1024 * 1024


def _file(name: str, size: int, mime_type: str = "text/plain") -> FileAttachment:
    return FileAttachment(name=name, data=b"x" * size, mime_type=mime_type)


def test_six_files_are_rejected():
    files = [_file(f"f{i}.txt", 10) for i in range(6)]

    with pytest.raises(AttachmentValidationError, match="maximum of 5 files"):
        validate_attachments(files)


def test_eleven_megabyte_file_is_rejected():
    with pytest.raises(AttachmentValidationError) as exc:
        validate_attachments([_file("big.bin", 11 * MB)])

    assert str(exc.value) == 'File "big.bin" is too large. Max size is 10MB.'


def test_five_files_of_nine_megabytes_are_accepted():
    validate_attachments([_file(f"f{i}.bin", 9 * MB) for i in range(5)])


def test_info_keeps_only_metadata():
    info = _file("notes.txt", 12).info()

    assert info.name == "notes.txt"
    assert info.size == 12
    assert info.mime_type == "text/plain"


def test_from_path_guesses_mime_type(tmp_path):
    path = tmp_path / "logo.png"
    path.write_bytes(b"\x89PNG")

    attachment = FileAttachment.from_path(path)

    assert attachment.name == "logo.png"
    assert attachment.mime_type == "image/png"
    assert attachment.size == 4


def test_describe_attachments_names_files_for_multi_upload():
    loader = InstructionLoader()
    files = [_file("a.txt", 1), _file("b.txt", 1)]

    text = describe_attachments("upload these", files, loader)

    assert text.startswith("upload these")
    assert "2 file(s)" in text
    assert "'fileName'" in text
    assert '"a.txt", "b.txt"' in text


def test_describe_attachments_without_files_is_the_prompt():
    assert describe_attachments("  hi  ", []) == "hi"


def test_pick_attachment():
    a, b = _file("a.txt", 1), _file("b.txt", 1)

    assert pick_attachment([a], None) is a
    assert pick_attachment([a, b], None) is None
    assert pick_attachment([a, b], "b.txt") is b
    assert pick_attachment([a, b], "c.txt") is None
