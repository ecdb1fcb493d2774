from __future__ import annotations

"""
Per-listing scoring for fuzzy catalog search.

For every query token the scorer takes the best weighted similarity over the
configured listing fields, adds it to a running total that is capped at 1.0
after each token, and finally divides by the token count so long queries are
not favoured.
"""

from typing import Dict, Optional, Sequence

from .config import Listing, ScoringConfig
from .similarity import similarity


class ListingScorer:
    """Scores a listing against a tokenized query using a ScoringConfig."""

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self.config = config or ScoringConfig()

    def field_scores(self, listing: Listing, token: str) -> Dict[str, float]:
        """Weighted similarity between ``token`` and each configured field."""
        scores: Dict[str, float] = {}
        for field, weight in self.config.field_weights.items():
            value = getattr(listing, field, None)
            scores[field] = similarity(value, token, self.config.containment_score) * weight
        return scores

    def token_score(self, listing: Listing, token: str) -> float:
        scores = self.field_scores(listing, token)
        return max(scores.values()) if scores else 0.0

    def score(self, listing: Listing, tokens: Sequence[str]) -> float:
        if not tokens:
            return 0.0

        total = 0.0
        for token in tokens:
            total = min(1.0, total + self.token_score(listing, token))

        return total / max(1, len(tokens))
