# ============================================================================
# src/medical_digitizer/extraction/merger.py
# ============================================================================
"""
Entity Extraction Merger

Combines the always-present baseline EntitySet with an optional AI pass.

Merge policy, per category:
- "None" sentinels and blanks are dropped from both sides first
- Baseline empty: the AI list replaces it as returned
- Both non-empty: order-preserving union, baseline first; duplicates are
  detected case-insensitively and the first spelling wins

The AI pass is best effort. No config, a timeout, a transport error or a
mis-shaped response all fall back to the baseline with no AI confidence.
"""

from dataclasses import dataclass
from typing import List, Optional
import asyncio
import logging

from ..core.confidence import AI_ENHANCED_CONFIDENCE
from ..core.models import EntitySet, strip_sentinel
from ..utils.exceptions import EnhancementError
from ..utils.logging import log_performance
from .ai_enhancer import AIEnhancementConfig, EntityEnhancer

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    entities: EntitySet
    ai_confidence: Optional[int] = None

    @property
    def ai_applied(self) -> bool:
        return self.ai_confidence is not None


def union_preserving_order(first: List[str], second: List[str]) -> List[str]:
    merged = []
    seen = set()
    for value in list(first) + list(second):
        key = value.casefold()
        if key in seen:
            continue
        seen.add(key)
        merged.append(value)
    return merged


def merge_entities(baseline: EntitySet, ai: EntitySet) -> EntitySet:
    """Field-by-field merge of a successful AI result into the baseline."""
    merged = {}
    for category in EntitySet.categories():
        base_values = strip_sentinel(baseline.get(category))
        ai_values = strip_sentinel(ai.get(category))

        if not base_values:
            merged[category] = ai_values
        elif not ai_values:
            merged[category] = base_values
        else:
            merged[category] = union_preserving_order(base_values, ai_values)

    return EntitySet(**merged)


class EntityMerger:
    """
    Runs the optional AI pass and merges it into the baseline.

    Usage:
        merger = EntityMerger()
        result = await merger.merge(raw_text, baseline, ai_config)
    """

    def __init__(self, enhancer: Optional[EntityEnhancer] = None):
        self.enhancer = enhancer or EntityEnhancer()
        self.logger = logging.getLogger(__name__)

    @log_performance(logger, "Entity merge")
    async def merge(
        self,
        raw_text: str,
        baseline: EntitySet,
        ai_config: Optional[AIEnhancementConfig] = None,
    ) -> MergeResult:
        """
        Merge AI-enhanced entities into the baseline set.

        Never raises for AI problems; those degrade to the baseline.
        """
        if ai_config is None:
            return MergeResult(entities=baseline)

        try:
            ai_entities = await asyncio.wait_for(
                self.enhancer.enhance(raw_text, ai_config),
                timeout=ai_config.timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                f"AI enhancement timed out after {ai_config.timeout}s, using baseline extraction"
            )
            return MergeResult(entities=baseline)
        except EnhancementError as e:
            self.logger.warning(f"AI enhancement failed, using baseline extraction: {e}")
            return MergeResult(entities=baseline)
        except Exception as e:
            self.logger.warning(
                f"Unexpected AI enhancement error, using baseline extraction: "
                f"{type(e).__name__}: {e}"
            )
            return MergeResult(entities=baseline)

        merged = merge_entities(baseline, ai_entities)
        self.logger.debug(
            f"Merged AI entities: {baseline.total_entities()} baseline -> "
            f"{merged.total_entities()} total"
        )
        return MergeResult(entities=merged, ai_confidence=AI_ENHANCED_CONFIDENCE)
