"""Keyword retrieval over a single document's chunks.

Scoring is deliberately lexical: every question token of three or more
characters is counted as a literal, case-insensitive substring in each chunk,
and a chunk's score is the sum of those counts.  When nothing matches, the
leading chunks are returned instead so that the model always gets some
context.
"""

from __future__ import annotations

import re
from typing import List, Sequence

import numpy as np

from ..models import Chunk

MIN_TOKEN_LEN = 3
FALLBACK_CHUNKS = 4

_TOKEN_SPLIT = re.compile(r"\W+")


def tokenise(question: str) -> List[str]:
    """Lower-case word tokens of at least ``MIN_TOKEN_LEN`` characters, in question order."""
    return [t for t in _TOKEN_SPLIT.split((question or "").lower()) if len(t) >= MIN_TOKEN_LEN]


def score_chunks(chunks: Sequence[Chunk], tokens: Sequence[str]) -> np.ndarray:
    """Return one integer score per chunk.

    Tokens are matched as regex-escaped literals, so punctuation in the
    question cannot change the pattern.
    """
    scores = np.zeros(len(chunks), dtype=np.int64)
    if not tokens:
        return scores
    patterns = [re.compile(re.escape(t)) for t in tokens]
    for idx, chunk in enumerate(chunks):
        text = chunk.text.lower()
        scores[idx] = sum(len(p.findall(text)) for p in patterns)
    return scores


def leading_chunks(chunks: Sequence[Chunk], limit: int) -> List[Chunk]:
    """Return the first ``limit`` chunks in document order."""
    if limit < 1:
        raise ValueError("limit must be at least 1")
    return list(chunks[:limit])


def retrieve(chunks: Sequence[Chunk], question: str, limit: int) -> List[Chunk]:
    """Select up to ``limit`` chunks relevant to ``question``.

    Chunks are ranked by descending score with ties broken by ordinal, and
    only positively scored chunks are kept.  If no chunk scores, the first
    ``min(FALLBACK_CHUNKS, limit)`` chunks are returned in document order.
    The result is empty only when ``chunks`` is.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")
    if not chunks:
        return []
    scores = score_chunks(chunks, tokenise(question))
    ordinals = np.array([c.ordinal for c in chunks], dtype=np.int64)
    # lexsort sorts by the last key first: score descending, then ordinal.
    order = np.lexsort((ordinals, -scores))
    selected = [chunks[i] for i in order if scores[i] > 0][:limit]
    if not selected:
        selected = leading_chunks(chunks, min(FALLBACK_CHUNKS, limit))
    return selected
