"""
Streaming reader for the multipart upload body.

The raw request stream is fed to python-multipart chunk by chunk and the
bytes of the `file` part are handed out through `read()` as they arrive.
Nothing is spooled, so the running byte count is checked before the rest
of the body is pulled off the socket.
"""
import logging
from collections import deque
from typing import AsyncIterator, Deque, Dict, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from drive.shared.errors import BadRequest, PayloadTooLarge

logger = logging.getLogger(__name__)

class MultipartUpload:
    def __init__(self, content_type: Optional[str], body: AsyncIterator[bytes], body_limit: int, field: str = "file"):
        ctype, params = parse_options_header(content_type or "")
        if ctype != b"multipart/form-data" or not params.get(b"boundary"):
            raise BadRequest("No file uploaded")
        self.field = field.encode()
        self.filename: Optional[str] = None
        self.content_type: Optional[str] = None
        self.consumed = 0
        self._limit = body_limit
        self._chunks = body.__aiter__()
        self._pending: Deque[bytes] = deque()
        self._headers: Dict[bytes, bytes] = {}
        self._hname = b""
        self._hvalue = b""
        self._in_file = False
        self._found = False
        self._done = False
        self._eof = False
        self._parser = MultipartParser(params[b"boundary"], callbacks={
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        })

    # parser callbacks

    def _on_part_begin(self):
        self._headers = {}
        self._in_file = False

    def _on_header_field(self, data, start, end):
        self._hname += data[start:end]

    def _on_header_value(self, data, start, end):
        self._hvalue += data[start:end]

    def _on_header_end(self):
        self._headers[self._hname.lower()] = self._hvalue
        self._hname = b""
        self._hvalue = b""

    def _on_headers_finished(self):
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        if options.get(b"name") != self.field or b"filename" not in options:
            return
        if self._found:
            raise BadRequest("Only one file per upload")
        self._found = True
        self._in_file = True
        self.filename = options[b"filename"].decode("utf-8", "replace")
        self.content_type = self._headers.get(b"content-type", b"").decode("latin-1").strip() or None

    def _on_part_data(self, data, start, end):
        # other form fields are dropped
        if self._in_file:
            self._pending.append(bytes(data[start:end]))

    def _on_part_end(self):
        if self._in_file:
            self._in_file = False
            self._done = True

    async def _pump(self) -> None:
        chunk = await anext(self._chunks, None)
        if chunk is not None:
            self.consumed += len(chunk)
            if self.consumed > self._limit:
                logger.info("upload body passed %s bytes, rejecting", self._limit)
                raise PayloadTooLarge("File too large")
        try:
            if chunk is None:
                self._eof = True
                self._parser.finalize()
            else:
                self._parser.write(chunk)
        except MultipartParseError as e:
            raise BadRequest("Malformed multipart body") from e

    async def start(self) -> None:
        """Read up to the headers of the file part. BadRequest if there is none."""
        while not self._found and not self._eof:
            await self._pump()
        if not self._found:
            raise BadRequest("No file uploaded")

    async def read(self, size: int = -1) -> bytes:
        while not self._pending and not self._done and not self._eof:
            await self._pump()
        if self._pending:
            return self._pending.popleft()
        if not self._done:
            raise BadRequest("Upload ended before the file was complete")
        return b""

    async def close(self) -> None:
        self._pending.clear()
