"""Document loading and text chunking functionality."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pypdf

from .config import config

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = config.get_logger(__name__)

SENTENCE_ENDINGS = (". ", "! ", "? ", "\n")


class DocumentLoader:
    """Handles loading of PDF documents."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Returns:
            The extracted text of every page, joined by newlines.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                pages = [page.extract_text() or "" for page in pdf_reader.pages]
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            text = "\n".join(pages)
            logger.info(
                "PDF parsed: %d pages, text length %d", len(pages), len(text)
            )
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


class TextChunker:
    """Splits text into non-overlapping chunks of bounded size.

    Chunks are exact slices of the input: no whitespace is trimmed, so joining
    the chunks in order reproduces the text. Split points prefer a sentence
    ending, then any whitespace, in the second half of the window; otherwise
    the window is cut at the size limit.
    """

    def __init__(self, chunk_size: int = 500) -> None:
        """Initialize the TextChunker with a chunk size.

        Args:
            chunk_size: Maximum number of characters per chunk.

        Raises:
            ValueError: If chunk_size is not positive.
        """
        if chunk_size <= 0:
            msg = "chunk_size must be positive"
            raise ValueError(msg)
        self.chunk_size = chunk_size

    def _split_point(self, text: str, start: int) -> int:
        end = start + self.chunk_size
        if end >= len(text):
            return len(text)

        # Window already ends on a boundary
        if text[end - 1].isspace() or text[end].isspace():
            return end

        window = text[start:end]
        min_cut = self.chunk_size // 2

        sentence_cut = max(window.rfind(ending) for ending in SENTENCE_ENDINGS)
        if sentence_cut >= min_cut:
            # Keep the punctuation and the following space in this chunk
            return start + sentence_cut + (1 if window[sentence_cut] == "\n" else 2)

        space_cut = max(window.rfind(" "), window.rfind("\t"))
        if space_cut >= min_cut:
            return start + space_cut + 1

        return end

    def iter_spans(self, text: str) -> Iterator[tuple[int, int]]:
        """Yield ``(start, end)`` offsets of consecutive chunks."""
        start = 0
        while start < len(text):
            end = self._split_point(text, start)
            yield start, end
            start = end

    def split_text(self, text: str) -> list[str]:
        """Split text into chunks.

        Returns:
            Chunk strings in document order; empty list for empty text.
        """
        chunks = [text[start:end] for start, end in self.iter_spans(text)]
        logger.info("Text split into %d chunks", len(chunks))
        return chunks
