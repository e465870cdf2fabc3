"""
Response Formatting
===================

Splits a long answer into segments the transport can deliver and decides
where the title, page markers and metadata go.

Chunking rules (per segment, on the remaining text):
1. Look at the first max_segment_size characters
2. Cut after the last newline that falls in the window's trailing 30%
3. Otherwise after the last sentence end (". ", "! ", "? ") in that 30%
4. Otherwise after the last space in that 30%
5. Otherwise hard-cut at max_segment_size

Nothing is trimmed, so joining the chunks gives back the exact input.

Only the first max_segment_count segments are emitted; anything beyond
is dropped and counted.
"""

from dataclasses import dataclass, field

from galt.llm.backends import TokenUsage
from galt.tools import Attachment
from galt.utils.logger import Logger

logger = Logger("Formatter")

SENTENCE_ENDS = (". ", "! ", "? ")
MEMORY_NOTE = "🧠 Enhanced with conversation memory"


@dataclass(frozen=True)
class Segment:
    """
    One deliverable piece of a response.

    Attributes:
        text: The chunk of answer text
        index: Position, starting at 1
        total: Number of emitted segments
        title: Set on the first segment only
        page_marker: "Page i of n" when there's more than one segment
        metadata: Tools/token summary, last segment only
        context_note: Memory indicator, first segment only
    """
    text: str
    index: int
    total: int
    title: str | None = None
    page_marker: str | None = None
    metadata: str | None = None
    context_note: str | None = None

    @property
    def is_first(self) -> bool:
        return self.index == 1

    @property
    def is_last(self) -> bool:
        return self.index == self.total


@dataclass
class FormattedResponse:
    segments: list[Segment]
    attachments: list[Attachment] = field(default_factory=list)
    dropped_chars: int = 0

    @property
    def text(self) -> str:
        return "".join(segment.text for segment in self.segments)


class ResponseFormatter:
    """
    Chunks answers and lays out segment metadata.

    Example:
        formatter = ResponseFormatter(max_segment_size=4096, max_segment_count=10)

        formatted = formatter.format(
            reply.content,
            attachments=reply.attachments,
            tools_used=reply.tools_used,
            token_usage=reply.token_usage,
        )
        for segment in formatted.segments:
            print(segment.page_marker, segment.text)
    """

    def __init__(
        self,
        max_segment_size: int = 4096,
        max_segment_count: int = 10,
        break_window: float = 0.3
    ):
        if max_segment_size <= 0:
            raise ValueError("max_segment_size must be positive")
        if max_segment_count <= 0:
            raise ValueError("max_segment_count must be positive")

        self.max_segment_size = max_segment_size
        self.max_segment_count = max_segment_count
        self.break_window = break_window

    def chunk(self, text: str) -> list[str]:
        """Split text into pieces of at most max_segment_size characters."""
        size = self.max_segment_size
        if len(text) <= size:
            return [text]

        chunks = []
        remaining = text
        while len(remaining) > size:
            cut = self._find_cut(remaining[:size])
            chunks.append(remaining[:cut])
            remaining = remaining[cut:]

        if remaining:
            chunks.append(remaining)
        return chunks

    def _find_cut(self, window: str) -> int:
        """Index to cut the window at; the break characters stay in the first piece."""
        floor = len(window) * (1 - self.break_window)

        newline = window.rfind("\n")
        if newline > floor:
            return newline + 1

        sentence = max(window.rfind(end) for end in SENTENCE_ENDS)
        if sentence > floor:
            return sentence + 2

        space = window.rfind(" ")
        if space > floor:
            return space + 1

        return len(window)

    def format(
        self,
        text: str,
        attachments: list[Attachment] | None = None,
        title: str | None = None,
        tools_used: list[str] | None = None,
        token_usage: TokenUsage | None = None,
        used_memory: bool = False
    ) -> FormattedResponse:
        """
        Lay out a response for delivery.

        Args:
            text: The answer text
            attachments: Binary outputs delivered alongside
            title: Heading for the first segment
            tools_used: Tool names to list in the metadata
            token_usage: Counts to list in the metadata
            used_memory: Older turns were recalled for this answer
        """
        chunks = self.chunk(text)
        kept = chunks[: self.max_segment_count]
        dropped = sum(len(c) for c in chunks[self.max_segment_count:])
        if dropped:
            logger.debug(f"Dropped {dropped} chars beyond {self.max_segment_count} segments")

        metadata = self._metadata(tools_used, token_usage)
        total = len(kept)

        segments = [
            Segment(
                text=chunk,
                index=i,
                total=total,
                title=title if i == 1 else None,
                page_marker=f"Page {i} of {total}" if total > 1 else None,
                metadata=metadata if i == total else None,
                context_note=MEMORY_NOTE if used_memory and i == 1 else None,
            )
            for i, chunk in enumerate(kept, start=1)
        ]

        return FormattedResponse(
            segments=segments,
            attachments=list(attachments or []),
            dropped_chars=dropped,
        )

    @staticmethod
    def _metadata(tools_used: list[str] | None, token_usage: TokenUsage | None) -> str | None:
        parts = []
        if tools_used:
            parts.append(f"Used tools: {', '.join(tools_used)}")
        if token_usage is not None and token_usage.total_tokens:
            parts.append(
                f"Tokens: {token_usage.input_tokens} in, "
                f"{token_usage.output_tokens} out, {token_usage.total_tokens} total"
            )
        return " • ".join(parts) or None
