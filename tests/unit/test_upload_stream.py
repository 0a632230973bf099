# tests/unit/test_upload_stream.py
from __future__ import annotations
from typing import List, Tuple

import pytest

from library.errors import InvalidRequestError
from library.upload_stream import MultipartStream

BOUNDARY = "xYzBoundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _body(parts: List[Tuple[str, str | None, bytes]]) -> bytes:
    out = b""
    for field, filename, content in parts:
        disposition = f'form-data; name="{field}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        out += (f"--{BOUNDARY}\r\nContent-Disposition: {disposition}\r\n"
                "Content-Type: application/octet-stream\r\n\r\n").encode() + content + b"\r\n"
    return out + f"--{BOUNDARY}--\r\n".encode()


class Chunks:
    """Source de chunks qui compte ce qui a été lu."""

    def __init__(self, body: bytes, size: int = 16) -> None:
        self.pieces = [body[i:i + size] for i in range(0, len(body), size)]
        self.consumed = 0

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for piece in self.pieces:
            self.consumed += 1
            yield piece


async def _read_all(part) -> bytes:
    out = b""
    while True:
        chunk = await part.read(7)
        if not chunk:
            return out
        out += chunk


@pytest.mark.asyncio
async def test_parts_are_exposed_before_the_body_is_read():
    pages = [("files", f"S/V/{i:03}.jpg", bytes([i]) * 200) for i in range(20)]
    chunks = Chunks(_body([("files", "S/V.mokuro", b"{}"), *pages]))
    stream = MultipartStream(CONTENT_TYPE, chunks)

    seen = []
    async for part in stream.parts():
        if not seen:
            # première part lisible alors que l'essentiel du corps n'est pas lu
            assert chunks.consumed < len(chunks.pieces) // 4
        seen.append((part.filename, await _read_all(part)))

    assert seen[0] == ("S/V.mokuro", b"{}")
    assert seen[5] == ("S/V/004.jpg", bytes([4]) * 200)
    assert len(seen) == 21 == stream.parts_seen
    assert chunks.consumed == len(chunks.pieces)


@pytest.mark.asyncio
async def test_text_fields_skipped_and_unread_data_discarded():
    body = _body([
        ("note", None, b"hello"),
        ("files", "S/V/001.jpg", b"A" * 100),
        ("files", "S/V/002.jpg", b"B" * 10),
    ])
    stream = MultipartStream(CONTENT_TYPE, Chunks(body))
    names, contents = [], []
    async for part in stream.parts():
        names.append(part.filename)
        if part.filename.endswith("002.jpg"):
            contents.append(await _read_all(part))
    assert names == ["S/V/001.jpg", "S/V/002.jpg"]
    assert contents == [b"B" * 10]


@pytest.mark.asyncio
async def test_utf8_filenames():
    body = _body([("files", "Série/Vol 1/001.jpg", b"x")])
    stream = MultipartStream(CONTENT_TYPE, Chunks(body))
    assert [p.filename async for p in stream.parts()] == ["Série/Vol 1/001.jpg"]


@pytest.mark.parametrize("content_type", [None, "application/json", "multipart/form-data"])
def test_rejects_non_multipart_or_missing_boundary(content_type):
    with pytest.raises(InvalidRequestError):
        MultipartStream(content_type, Chunks(b""))


@pytest.mark.asyncio
async def test_truncated_body_is_invalid():
    body = _body([("files", "S/V/001.jpg", b"A" * 100)])
    stream = MultipartStream(CONTENT_TYPE, Chunks(body[:-30]))  # coupé en pleine donnée
    with pytest.raises(InvalidRequestError):
        async for part in stream.parts():
            await _read_all(part)
