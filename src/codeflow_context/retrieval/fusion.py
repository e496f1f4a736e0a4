"""
Fusion of the two query views into one ranking.

Each hit's score is multiplied by its view weight. A chunk hit by both
views keeps the larger weighted score; scores are never summed. Ranking is
a stable descending sort, so ties keep first-seen order (line view first).
"""

from __future__ import annotations

from typing import Dict, Hashable, List, Sequence

from ..embeddings.models import RetrievedItem

LINE_WEIGHT = 0.55
WINDOW_WEIGHT = 0.35


def fuse(
    by_line: Sequence[RetrievedItem],
    by_window: Sequence[RetrievedItem],
    top_k: int,
    line_weight: float = LINE_WEIGHT,
    window_weight: float = WINDOW_WEIGHT,
) -> List[RetrievedItem]:
    fused: Dict[Hashable, RetrievedItem] = {}

    def put(item: RetrievedItem, weight: float) -> None:
        weighted = item.score * weight
        key = item.fusion_key
        prev = fused.get(key)
        if prev is None:
            fused[key] = item.model_copy(update={"score": weighted})
        elif weighted > prev.score:
            prev.score = weighted

    for item in by_line:
        put(item, line_weight)
    for item in by_window:
        put(item, window_weight)

    # sorted() is stable; dict preserves first-seen order.
    ranked = sorted(fused.values(), key=lambda i: i.score, reverse=True)
    return ranked[: max(top_k, 0)]
