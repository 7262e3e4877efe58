"""Document retriever - nearest chunks to a query vector, scoped per user."""

import math

from gapguard.db.context import RequestContext
from gapguard.db.repositories import DocumentRepository
from gapguard.models.chat import ChunkMatch


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is all zeros)."""
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


async def search_chunks(
    *,
    ctx: RequestContext,
    query_vector: list[float],
    documents: DocumentRepository,
    top_k: int = 5,
    min_similarity: float = 0.5,
) -> list[ChunkMatch]:
    """Find the caller's chunks most similar to a query vector.

    Scoring strategy:
    - Only chunks of the caller's documents that finished indexing are considered
    - Score each chunk by cosine similarity to the query vector
    - Drop chunks scoring below ``min_similarity``
    - Sort by score descending, then by (document id, chunk index) for determinism
    - Apply ``top_k``

    Args:
        ctx: Request context (enforces ownership)
        query_vector: Query embedding
        documents: Document repository
        top_k: Maximum number of results to return
        min_similarity: Inclusive similarity threshold

    Returns:
        List of ChunkMatch sorted by relevance (descending similarity)
    """
    if top_k <= 0:
        return []

    chunks = await documents.list_searchable_chunks(ctx)

    scored: list[ChunkMatch] = []
    for chunk in chunks:
        # Skip foreign rows and vectors from a different dimension
        if chunk.user_id != ctx.user_id or len(chunk.vector) != len(query_vector):
            continue

        similarity = cosine_similarity(query_vector, chunk.vector)
        if similarity >= min_similarity:
            scored.append(
                ChunkMatch(
                    document_id=chunk.document_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    similarity=similarity,
                )
            )

    scored.sort(key=lambda m: (-m.similarity, str(m.document_id), m.chunk_index))
    return scored[:top_k]
