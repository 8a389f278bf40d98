"""
Section Chunking Service

Splits sanitized page text into word-bounded, sentence-terminated chunks
for embedding and RAG retrieval.

Strategy:
---------
1. Truncate input to MAX_CONTENT_CHARS (bounds worst-case cost)
2. Split on whitespace into words
3. Fill a buffer until it holds target_words words, then close the chunk at
   the next sentence end (".", "!" or "?"), scanning at most
   CHUNK_SENTENCE_LOOKAHEAD_WORDS further words. If no sentence end shows
   up within the lookahead the chunk is cut at the lookahead boundary.
4. Leftover words become a final, shorter chunk
5. Keep at most MAX_CHUNKS_PER_URL chunks; the tail of very long pages is
   dropped rather than failing the job

Configuration from settings:
- CHUNK_TARGET_WORDS: 250 (default)
- CHUNK_SENTENCE_LOOKAHEAD_WORDS: 50 (default)
- MAX_CHUNKS_PER_URL: 20 (default)
- MAX_CONTENT_CHARS: 200000 (default)
"""

from typing import Optional

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger

logger = get_logger(__name__)


SENTENCE_ENDINGS = (".", "!", "?")


class SectionChunker:
    """
    Word-count chunker with sentence-boundary alignment.

    Every chunk except possibly the last holds between target_words and
    target_words + lookahead_words words. Joining the chunks with single
    spaces reproduces a prefix of the (truncated) input's word sequence.
    The chunker keeps no state between calls.

    Usage:
    ------
    chunker = SectionChunker()
    chunks = chunker.chunk(cleaned_text)

    for index, chunk_text in enumerate(chunks):
        ...
    """

    def __init__(
        self,
        target_words: Optional[int] = None,
        max_chunks: Optional[int] = None,
        max_input_chars: Optional[int] = None,
        lookahead_words: Optional[int] = None
    ):
        """
        Initialize the chunker with configuration.

        Args:
            target_words: Minimum words before a chunk may close (default from settings)
            max_chunks: Maximum chunks returned per document (default from settings)
            max_input_chars: Input is truncated to this many characters (default from settings)
            lookahead_words: Words scanned for a sentence end after the target (default from settings)
        """
        self.target_words = target_words or settings.CHUNK_TARGET_WORDS
        self.max_chunks = max_chunks or settings.MAX_CHUNKS_PER_URL
        self.max_input_chars = max_input_chars or settings.MAX_CONTENT_CHARS
        self.lookahead_words = (
            lookahead_words
            if lookahead_words is not None
            else settings.CHUNK_SENTENCE_LOOKAHEAD_WORDS
        )

        if self.target_words < 1:
            raise ValueError("target_words must be at least 1")
        if self.lookahead_words < 0:
            raise ValueError("lookahead_words cannot be negative")

    def chunk(
        self,
        text: str,
        target_words: Optional[int] = None,
        max_chunks: Optional[int] = None,
        max_input_chars: Optional[int] = None
    ) -> list[str]:
        """
        Split text into sentence-aligned chunks.

        Args:
            text: Sanitized text to chunk
            target_words: Override the configured target word count
            max_chunks: Override the configured chunk limit
            max_input_chars: Override the configured input character limit

        Returns:
            Ordered list of chunk strings (empty for empty input)
        """
        target = target_words or self.target_words
        limit = max_chunks or self.max_chunks
        max_chars = max_input_chars or self.max_input_chars

        if not text:
            return []

        if len(text) > max_chars:
            logger.info(
                "chunk_input_truncated",
                original_length=len(text),
                truncated_length=max_chars,
            )
            text = text[:max_chars]

        words = text.split()
        chunks: list[str] = []
        buffer: list[str] = []
        position = 0

        while position < len(words) and len(chunks) < limit:
            buffer.append(words[position])
            position += 1

            if len(buffer) < target:
                continue

            if not buffer[-1].endswith(SENTENCE_ENDINGS):
                scanned = 0
                while position < len(words) and scanned < self.lookahead_words:
                    buffer.append(words[position])
                    position += 1
                    scanned += 1
                    if buffer[-1].endswith(SENTENCE_ENDINGS):
                        break

            chunks.append(" ".join(buffer))
            buffer = []

        if buffer and len(chunks) < limit:
            chunks.append(" ".join(buffer))

        logger.debug(
            "chunking_completed",
            word_count=len(words),
            chunk_count=len(chunks),
            truncated=position < len(words),
        )

        return chunks
