"""Reassemble newline-delimited text lines from arbitrary byte fragments."""

import codecs
from typing import Optional


class LineReassembler:
    """Turn a sequence of raw byte fragments into complete text lines.

    A line may be split across any number of fragments, including inside a
    multi-byte UTF-8 character: bytes are decoded incrementally, so a partial
    character waits in the decoder until the rest of it arrives. The text
    after the last newline is held over as the pending partial line.

    Whitespace-only lines are dropped. Invalid byte sequences are replaced
    with U+FFFD rather than raised, leaving the JSON decoder to reject the
    line.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._flushed = False

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._pending

    def feed(self, fragment: bytes) -> list[str]:
        """Add a fragment and return every line it completes."""
        if self._flushed:
            raise RuntimeError("feed() called after flush()")
        if not fragment:
            return []
        self._pending += self._decoder.decode(fragment)
        if "\n" not in self._pending:
            return []
        *complete, self._pending = self._pending.split("\n")
        return [line for line in complete if line.strip()]

    def flush(self) -> Optional[str]:
        """End of input: return the trailing partial line, if it has content."""
        if self._flushed:
            return None
        self._flushed = True
        remainder = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not remainder.strip():
            return None
        return remainder
