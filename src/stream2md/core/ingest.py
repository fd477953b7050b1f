"""Append-only text buffer fed by streamed chunks"""

import codecs
import logging


logger = logging.getLogger(__name__)


class ChunkIngestor:
    """Accumulates streamed text; never loses or reorders input.

    Chunks may be ``str`` or UTF-8 ``bytes``. Byte chunks go through an incremental
    decoder so a code point split across two chunks is only appended once complete.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._buffer = ""
        self._dirty = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.version = 0

    @property
    def buffer(self) -> str:
        if self._dirty:
            self._buffer += "".join(self._parts)
            self._parts.clear()
            self._dirty = False
        return self._buffer

    def __len__(self) -> int:
        return len(self.buffer)

    def append(self, chunk: str | bytes) -> None:
        """Concatenate chunk to the buffer and bump the version so cached boundaries go stale."""
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))
        if not chunk:
            return
        self._parts.append(chunk)
        self._dirty = True
        self.version += 1

    def flush(self) -> None:
        """Drain the byte decoder; an incomplete trailing sequence becomes U+FFFD."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            logger.debug("flushed %d pending decoder char(s)", len(tail))
            self.append(tail)

    def reset(self) -> None:
        self._parts.clear()
        self._buffer = ""
        self._dirty = False
        self._decoder.reset()
        self.version += 1
