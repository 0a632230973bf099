# library/upload_stream.py
from __future__ import annotations
from collections import deque
from typing import AsyncIterable, AsyncIterator, Deque, Optional, Tuple

from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

from app.core.logging import get_logger
from .errors import InvalidRequestError

logger = get_logger(__name__)

# événements produits par les callbacks du parser
_HEADERS, _DATA, _END = "headers", "data", "end"

Event = Tuple[str, bytes]


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


class StreamedPart:
    """Part fichier du corps multipart : lisible une seule fois, dans l'ordre d'arrivée."""

    def __init__(self, stream: "MultipartStream", filename: str, field_name: str) -> None:
        self.filename = filename
        self.field_name = field_name
        self.closed = False
        self._stream = stream
        self._buffer = bytearray()
        self._done = False

    @property
    def exhausted(self) -> bool:
        return self._done and not self._buffer

    async def read(self, size: int = -1) -> bytes:
        # au plus un chunk réseau en mémoire
        while not self._buffer and not self._done:
            event = await self._stream.next_event()
            if event is None:
                raise InvalidRequestError("Truncated multipart body.")
            kind, payload = event
            if kind == _DATA:
                self._buffer += payload
            elif kind == _END:
                self._done = True
            else:
                raise InvalidRequestError("Invalid multipart data.")
        if size < 0 or size >= len(self._buffer):
            chunk = bytes(self._buffer)
            self._buffer.clear()
        else:
            chunk = bytes(self._buffer[:size])
            del self._buffer[:size]
        return chunk

    async def close(self) -> None:
        self.closed = True


class MultipartStream:
    """Lecture en flux d'un corps ``multipart/form-data``.

    Les chunks de la requête sont poussés dans ``MultipartParser`` à la demande :
    une part est exposée dès que ses en-têtes sont lus, et son contenu ne transite
    qu'un chunk à la fois. Aucune limite sur le nombre de parts ; les champs sans
    ``filename`` sont sautés.
    """

    def __init__(self, content_type: Optional[str], chunks: AsyncIterable[bytes]) -> None:
        media_type, params = parse_options_header(content_type or "")
        if media_type != b"multipart/form-data":
            raise InvalidRequestError("Expected a multipart/form-data body.")
        boundary = params.get(b"boundary")
        if not boundary:
            raise InvalidRequestError("Missing boundary in multipart.")

        self.parts_seen = 0
        self._chunks = chunks.__aiter__()
        self._events: Deque[Event] = deque()
        self._eof = False
        self._header_name = b""
        self._header_value = b""
        self._disposition = b""
        self._parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        })

    # ----------------- callbacks (synchrones) -----------------
    def _on_part_begin(self) -> None:
        self._disposition = b""

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        if self._header_name.lower() == b"content-disposition":
            self._disposition = self._header_value
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append((_HEADERS, self._disposition))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append((_END, b""))

    # ----------------- lecture -----------------
    def _feed(self, chunk: Optional[bytes]) -> None:
        try:
            if chunk is None:
                self._parser.finalize()
            elif chunk:
                self._parser.write(chunk)
        except FormParserError as e:
            raise InvalidRequestError("Invalid multipart data.") from e

    async def next_event(self) -> Optional[Event]:
        """Prochain événement du parser ; lit la requête seulement si la file est vide."""
        while not self._events:
            if self._eof:
                return None
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._eof = True
                self._feed(None)
                continue
            self._feed(chunk)
        return self._events.popleft()

    async def parts(self) -> AsyncIterator[StreamedPart]:
        while True:
            event = await self.next_event()
            if event is None:
                return
            kind, payload = event
            if kind != _HEADERS:
                continue  # données / fin d'un champ texte
            _, options = parse_options_header(payload)
            if b"filename" not in options:
                logger.debug("upload:skipping non-file field %r", options.get(b"name"))
                continue
            part = StreamedPart(self, _decode(options[b"filename"]), _decode(options.get(b"name", b"")))
            self.parts_seen += 1
            yield part
            # reste non consommé par l'appelant
            while not part.exhausted:
                await part.read()
