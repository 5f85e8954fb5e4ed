from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import RangeNotSatisfiableError
from .policy import chunk_size_for

# Only the first range of a multi-range header is honoured.
_RANGE_RE = re.compile(r"bytes=(\d*)-(\d*)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ByteRange:
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"

    @property
    def is_first_chunk(self) -> bool:
        return self.start == 0


def parse_range(header: str, total_size: int, content_type: str | None) -> ByteRange:
    """Resolve a ``Range`` header against an object of ``total_size`` bytes.

    Supports ``bytes=N-M``, ``bytes=N-`` (bounded by the chunk size of the
    media class) and ``bytes=-N``. Only an open-ended range is trimmed to the
    object; an explicit end past the last byte is refused.

    Raises:
        RangeNotSatisfiableError: if the header is malformed or the range
            does not lie within the object.
    """
    match = _RANGE_RE.search(header or "")
    if match is None:
        raise RangeNotSatisfiableError(total_size, header)

    start_str, end_str = match.groups()
    last = total_size - 1

    if not start_str and not end_str:
        raise RangeNotSatisfiableError(total_size, header)

    if not start_str:
        suffix = int(end_str)
        if suffix == 0:
            raise RangeNotSatisfiableError(total_size, header)
        start = max(total_size - suffix, 0)
        end = last
    else:
        start = int(start_str)
        if end_str:
            end = int(end_str)
            if end > last:
                raise RangeNotSatisfiableError(total_size, header)
        else:
            end = min(start + chunk_size_for(content_type) - 1, last)

    if start >= total_size or start < 0 or end < start:
        raise RangeNotSatisfiableError(total_size, header)

    return ByteRange(start=start, end=end, total=total_size)
