from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from ...logging_config import get_logger

log = get_logger("summarizex.services.chunking")


"""
Text larger than the provider accepts in one request is split into parts on
paragraph boundaries. Each part is summarized on its own and the part
summaries are combined in a final pass.
"""
@dataclass
class TextChunk:
    text: str
    chunk_index: int


class ParagraphChunker:
    def __init__(self, max_chars: int, separator: str = "\n\n"):
        if max_chars < 1:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars
        self.separator = separator

    def chunk(self, text: str) -> List[TextChunk]:
        """Pack paragraphs greedily into chunks of at most ``max_chars``, in order."""
        pieces: List[str] = []
        for para in re.split(r"\n\s*\n", text):
            para = para.strip()
            if not para:
                continue
            if len(para) > self.max_chars:
                pieces.extend(self._split_long(para))
            else:
                pieces.append(para)

        chunks: List[TextChunk] = []
        current: List[str] = []
        curr_size = 0
        for piece in pieces:
            added = len(piece) + (len(self.separator) if current else 0)
            # finalize the chunk if this paragraph would overflow it
            if current and curr_size + added > self.max_chars:
                chunks.append(TextChunk(text=self.separator.join(current), chunk_index=len(chunks)))
                current = [piece]
                curr_size = len(piece)
            else:
                current.append(piece)
                curr_size += added

        if current:
            chunks.append(TextChunk(text=self.separator.join(current), chunk_index=len(chunks)))

        log.debug("Chunked %d chars into %d chunks (max_chars=%d)", len(text), len(chunks), self.max_chars)
        return chunks

    def _split_long(self, para: str) -> List[str]:
        # Avoid cutting in the middle of a word if possible
        parts: List[str] = []
        start = 0
        while start < len(para):
            end = start + self.max_chars
            if end < len(para):
                last_space = para.rfind(" ", start, end + 1)
                if last_space > start:
                    end = last_space
            part = para[start:end].strip()
            if part:
                parts.append(part)
            start = end
        return parts
