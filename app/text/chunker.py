from dataclasses import dataclass


@dataclass(frozen=True)
class TextChunk:
    index: int
    text: str


def chunk_text(text: object, chunk_size: int = 4000, overlap: int = 500) -> list[TextChunk]:
    """Split text into fixed-size, overlapping character windows.

    Each window starts ``chunk_size - overlap`` characters after the previous
    one, so the cursor strictly advances while ``overlap < chunk_size``.
    Windows that are blank after trimming are dropped without consuming an
    index.

    Raises:
        ValueError: if chunk_size is not positive or overlap is outside
            ``[0, chunk_size)``.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be >= 0 and smaller than chunk_size")
    if not isinstance(text, str) or not text:
        return []

    chunks: list[TextChunk] = []
    length = len(text)
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        piece = text[start:end].strip()
        if piece:
            chunks.append(TextChunk(index=len(chunks), text=piece))
        if end == length:
            break
        start = end - overlap
    return chunks