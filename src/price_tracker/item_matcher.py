"""Resolve vendor items to canonical cross-vendor items.

Matching pipeline (in order of confidence):
  1. Exact match on the normalized name within the tenant
  2. Fuzzy match: 0.7 * name similarity + 0.2 * unit match + 0.1 * category match
  3. Create a new canonical item

Matching never crosses tenants. The unit synonym and category keyword tables
come from :class:`MatchingConfig` so they can vary per deployment.
"""

import logging
import sqlite3

from .config import MatchingConfig
from .errors import ItemMatchingError
from .item_normalizer import clean_item_name, guess_category, name_similarity, normalize_unit
from .models import CanonicalItem, MatchResult, MatchType
from .sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class ItemMatcher:
    """Finds or creates the canonical item for an incoming vendor item."""

    def __init__(self, store: SQLiteStore, config: MatchingConfig | None = None):
        self.store = store
        self.config = config or MatchingConfig()
        self._unit_lookup = self.config.unit_lookup()

    def resolve(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        name: str,
        unit: str | None,
        category_hint: str | None = None,
    ) -> MatchResult:
        """Resolve an item to a canonical item, creating one if nothing matches.

        Args:
            tenant_id: Tenant the item belongs to
            vendor_id: Vendor reporting the item
            item_number: Vendor's item number
            name: Item name as printed on the invoice
            unit: Unit of measure as printed on the invoice
            category_hint: Known category; guessed from the name when omitted

        Returns:
            MatchResult naming the canonical item

        Raises:
            ItemMatchingError: If storage fails while resolving
        """
        normalized = clean_item_name(name) or name.strip().lower()
        category = category_hint or self.guess_category(name)
        unit = (unit or "").strip() or self.config.default_unit
        log_extra = {
            "tenant_id": tenant_id,
            "vendor_id": vendor_id,
            "item_number": item_number,
        }

        try:
            exact = self.store.find_canonical_by_normalized_name(tenant_id, normalized)
            if exact:
                logger.info(
                    "Exact canonical match",
                    extra={"event": "match.exact", "canonical_item_id": exact.id, **log_extra},
                )
                return MatchResult(
                    canonical_item_id=exact.id,
                    canonical_name=exact.name,
                    match_type=MatchType.EXACT,
                    confidence=1.0,
                    reason="exact name",
                )

            fuzzy = self.find_best_candidate(tenant_id, normalized, unit, category)
            if fuzzy is not None:
                logger.info(
                    "Fuzzy canonical match",
                    extra={
                        "event": "match.fuzzy",
                        "canonical_item_id": fuzzy.canonical_item_id,
                        "confidence": fuzzy.confidence,
                        "reason": fuzzy.reason,
                        **log_extra,
                    },
                )
                return fuzzy

            candidate = CanonicalItem(
                tenant_id=tenant_id,
                name=normalized,
                normalized_name=normalized,
                category=category,
                unit=unit,
                description=f"Auto-created from {name}",
            )
            stored = self.store.create_canonical_item(candidate)
        except sqlite3.Error as e:
            logger.error(
                "Canonical item resolution failed",
                extra={"event": "match.error", **log_extra},
            )
            raise ItemMatchingError(
                f"Could not resolve canonical item: {e}", tenant_id, vendor_id, item_number
            ) from e

        # A concurrent caller may have created the same name first.
        match_type = MatchType.CREATED if stored.id == candidate.id else MatchType.EXACT
        logger.info(
            "Canonical item resolved by creation",
            extra={
                "event": f"match.{match_type.value}",
                "canonical_item_id": stored.id,
                **log_extra,
            },
        )
        return MatchResult(
            canonical_item_id=stored.id,
            canonical_name=stored.name,
            match_type=match_type,
            confidence=1.0,
            reason="new canonical item" if match_type == MatchType.CREATED else "exact name",
        )

    def find_best_candidate(
        self,
        tenant_id: str,
        normalized_name: str,
        unit: str | None,
        category: str | None,
    ) -> MatchResult | None:
        """Highest-scoring existing canonical item at or above the match threshold."""
        best: MatchResult | None = None
        best_score = 0.0

        for item in self.store.list_canonical_items(tenant_id):
            score, name_sim, unit_match, category_match = self.score_candidate(
                normalized_name, unit, category, item
            )
            if score > best_score and score >= self.config.match_threshold:
                best_score = score
                best = MatchResult(
                    canonical_item_id=item.id,
                    canonical_name=item.name,
                    match_type=MatchType.FUZZY,
                    confidence=round(score, 4),
                    reason=self._match_reason(name_sim, unit_match, category_match),
                )

        return best

    def score_candidate(
        self,
        normalized_name: str,
        unit: str | None,
        category: str | None,
        item: CanonicalItem,
    ) -> tuple[float, float, bool, bool]:
        """Weighted similarity of an incoming item against one canonical item.

        Returns:
            (score, name similarity, unit matched, category matched)
        """
        name_sim = name_similarity(normalized_name, clean_item_name(item.name))
        unit_match = normalize_unit(unit, self._unit_lookup) == normalize_unit(
            item.unit, self._unit_lookup
        )
        category_match = bool(category and item.category) and (
            category.lower() == item.category.lower()
        )

        score = name_sim * self.config.name_weight
        if unit_match:
            score += self.config.unit_weight
        if category_match:
            score += self.config.category_weight
        return score, name_sim, unit_match, category_match

    def guess_category(self, item_name: str) -> str:
        """Category from the configured keyword table."""
        return guess_category(
            item_name, self.config.category_keywords, self.config.default_category
        )

    @staticmethod
    def _match_reason(name_similarity: float, unit_match: bool, category_match: bool) -> str:
        reasons = []
        if name_similarity > 0.9:
            reasons.append("very similar name")
        elif name_similarity > 0.7:
            reasons.append("similar name")
        if unit_match:
            reasons.append("same unit")
        if category_match:
            reasons.append("same category")
        return ", ".join(reasons) or "basic similarity"
