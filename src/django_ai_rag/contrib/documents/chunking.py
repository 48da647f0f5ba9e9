from collections import deque
from typing import Protocol, Sequence

from .schema import TextSlice

DEFAULT_SEPARATORS = (
    "\n\n",
    "\n",
    "。",
    "！",
    "？",
    ". ",
    "! ",
    "? ",
    " ",
    "",
)


class ChunkTransformer(Protocol):
    """Base class for chunking transformers which break a string into text slices."""

    def transform(self, text: str) -> list[TextSlice]:
        """Transform a string into chunks."""
        ...


class RecursiveChunkTransformer(ChunkTransformer):
    """
    Size-bounded chunking that prefers natural boundaries.

    Text is split on the first separator that occurs in it (paragraphs, then lines,
    then sentences, then words, then single characters). Any piece still larger than
    ``chunk_size`` is split again with the remaining separators. Separators stay
    attached to the piece before them, so the pieces always partition the text.

    Pieces are then merged greedily into chunks of at most ``chunk_size`` characters,
    each chunk repeating up to ``chunk_overlap`` characters from the end of the
    previous one. Every chunk is an exact slice of the input and carries its offsets.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be between 0 and "
                f"chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = tuple(separators)

    def transform(self, text: str) -> list[TextSlice]:
        if not text:
            return []

        pieces = self._split(text, 0, len(text), self.separators)
        return [
            TextSlice(start=start, end=end, content=text[start:end])
            for start, end in self._merge(pieces)
        ]

    def _split(
        self, text: str, start: int, end: int, separators: Sequence[str]
    ) -> list[tuple[int, int]]:
        if end - start <= self.chunk_size:
            return [(start, end)]

        for position, separator in enumerate(separators):
            if separator == "":
                return [
                    (offset, min(offset + self.chunk_size, end))
                    for offset in range(start, end, self.chunk_size)
                ]
            if text.find(separator, start, end) == -1:
                continue

            remaining = separators[position + 1 :]
            pieces = []
            for piece_start, piece_end in self._split_on(text, start, end, separator):
                if piece_end - piece_start <= self.chunk_size:
                    pieces.append((piece_start, piece_end))
                else:
                    pieces.extend(self._split(text, piece_start, piece_end, remaining))
            return pieces

        # No separators configured at all
        return [
            (offset, min(offset + self.chunk_size, end))
            for offset in range(start, end, self.chunk_size)
        ]

    @staticmethod
    def _split_on(
        text: str, start: int, end: int, separator: str
    ) -> list[tuple[int, int]]:
        spans = []
        position = start
        while True:
            index = text.find(separator, position, end)
            if index == -1:
                break
            cut = index + len(separator)
            spans.append((position, cut))
            position = cut
        if position < end:
            spans.append((position, end))
        return spans

    def _merge(self, pieces: list[tuple[int, int]]) -> list[tuple[int, int]]:
        chunks: list[tuple[int, int]] = []
        current: deque[tuple[int, int]] = deque()
        total = 0

        for start, end in pieces:
            length = end - start
            if current and total + length > self.chunk_size:
                chunks.append((current[0][0], current[-1][1]))
                # Keep a tail of at most chunk_overlap characters for the next chunk
                while current and (
                    total > self.chunk_overlap or total + length > self.chunk_size
                ):
                    first_start, first_end = current.popleft()
                    total -= first_end - first_start
            current.append((start, end))
            total += length

        if current:
            chunks.append((current[0][0], current[-1][1]))
        return chunks
