"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

import math

from openai import OpenAI


def embed_texts(
    texts: list[str],
    model: str = "text-embedding-3-small",
    client: OpenAI | None = None,
) -> list[list[float]]:
    """Embed a list of texts using the OpenAI embeddings API.

    Args:
        texts: Strings to embed.
        model: OpenAI embedding model name.
        client: OpenAI client; one is built from ``OPENAI_API_KEY`` if omitted.

    Returns:
        A list of embedding vectors (one per input text).
    """
    if not texts:
        return []
    client = client or OpenAI()
    response = client.embeddings.create(input=texts, model=model)
    return [item.embedding for item in response.data]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm
