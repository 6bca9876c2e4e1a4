"""
Similar-message discovery.

Given a target message and a candidate pool, find the messages that
describe the same situation so the operator can answer them with one
reply. The pipeline runs cheapest and most certain tier first:

1. Exact duplicates after text normalisation
2. Embedding cosine similarity with an accept threshold and a top-k floor
3. A language model judging semantic equivalence

Design Considerations:
- The pool is narrowed once (target removed, same category first, capped)
  and every tier sees the same pool
- Tier failures are logged and cascade; nothing is raised to the caller
- Thresholds are fixed per call and come from ANALYZER_CONFIG
"""

import logging
from typing import Dict, List, Optional, Sequence

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.base import BaseLLMProvider, describe_providers
from src.email_processing.handlers.content import (
    decode_html_entities,
    normalize_for_comparison,
    truncate,
)
from src.email_processing.models import (
    Message,
    MessageCategory,
    SimilarityMatch,
    SimilarityMethod,
    SimilarityResult,
)
from src.email_processing.similarity.embeddings import (
    EmbeddingProvider,
    FallbackEmbeddingProvider,
    cosine_similarity,
)

logger = logging.getLogger(__name__)


class SimilarMessageFinder:
    """
    Finds messages equivalent to a target message.

    Args:
        embedder: Embedding backend, TF-IDF-only when omitted
        judges: Language-model providers in priority order for the LLM tier
        config: Overrides for ANALYZER_CONFIG["similarity"]
    """

    def __init__(self, embedder: Optional[EmbeddingProvider] = None,
                 judges: Sequence[BaseLLMProvider] = (),
                 config: Optional[Dict] = None):
        self.embedder = embedder or FallbackEmbeddingProvider()
        self.judges = list(judges)
        self.config = {**ANALYZER_CONFIG["similarity"], **(config or {})}

    async def find_similar(self, target: Message, candidates: Sequence[Message]) -> List[str]:
        """Ids of candidates similar to the target, best match first."""
        result = await self.find_similar_detailed(target, candidates)
        return result.ids

    async def find_similar_detailed(self, target: Message, candidates: Sequence[Message]) -> SimilarityResult:
        """
        Run the tiered pipeline and report which tier produced the matches.

        Args:
            target: Message to find matches for
            candidates: Candidate pool, may include the target itself

        Returns:
            SimilarityResult with ordered matches; empty with method NONE
            when nothing qualifies
        """
        if not target.body or not target.body.strip():
            logger.debug(f"Target {target.id} has an empty body, skipping similarity search")
            return SimilarityResult()

        pool = self.narrow_pool(target, candidates)
        if not pool:
            return SimilarityResult()

        exact = self.exact_duplicates(target, pool)
        if exact.matches:
            logger.info(f"Found {len(exact.matches)} exact duplicates of {target.id}")
            return exact

        if self.config["primary_method"] == "llm":
            tiers = [self._llm_tier, self._embedding_tier]
        else:
            tiers = [self._embedding_tier, self._llm_tier]

        for tier in tiers:
            result = await tier(target, pool)
            if result.matches:
                logger.info(
                    f"{result.method.value} tier matched {len(result.matches)} messages for {target.id}"
                )
                return result

        logger.info(f"No similar messages found for {target.id}")
        return SimilarityResult()

    def narrow_pool(self, target: Message, candidates: Sequence[Message]) -> List[Message]:
        """
        Remove the target, move same-category candidates first and cap the pool.

        Category preference only applies when the target has a category
        other than General. Relative order is preserved within each group.
        """
        without_target = [m for m in candidates if m.id != target.id]
        category = target.category
        if category and category != MessageCategory.GENERAL:
            same = [m for m in without_target if m.category == category]
            other = [m for m in without_target if m.category != category]
            without_target = same + other
        return without_target[:self.config["pool_cap"]]

    def exact_duplicates(self, target: Message, pool: Sequence[Message]) -> SimilarityResult:
        normalized_target = normalize_for_comparison(target.body)
        matches = [
            SimilarityMatch(message_id=m.id, score=1.0, method=SimilarityMethod.EXACT)
            for m in pool
            if normalize_for_comparison(m.body) == normalized_target
        ]
        return SimilarityResult(matches=matches, method=SimilarityMethod.EXACT if matches else SimilarityMethod.NONE)

    async def _embedding_tier(self, target: Message, pool: Sequence[Message]) -> SimilarityResult:
        """
        Score the pool by cosine similarity.

        Every candidate at or above the accept threshold is returned. If none
        reaches it, the top-k candidates above the floor are returned instead.
        """
        texts = [decode_html_entities(target.body)] + [decode_html_entities(m.body) for m in pool]
        try:
            vectors = await self.embedder.embed(texts)
        except Exception as e:
            logger.warning(f"Embedding tier failed, falling through: {e}")
            return SimilarityResult()
        if len(vectors) != len(texts):
            logger.warning(f"Embedding tier got {len(vectors)} vectors for {len(texts)} texts, falling through")
            return SimilarityResult()

        target_vector = vectors[0]
        scored = [
            (index, m, cosine_similarity(target_vector, vector))
            for index, (m, vector) in enumerate(zip(pool, vectors[1:]))
        ]

        accepted = [(i, m, s) for i, m, s in scored if s >= self.config["accept_threshold"]]
        if not accepted:
            above_floor = [(i, m, s) for i, m, s in scored if s > self.config["floor_threshold"]]
            accepted = sorted(above_floor, key=lambda item: (-item[2], item[0]))[:self.config["top_k"]]
        else:
            accepted.sort(key=lambda item: (-item[2], item[0]))

        matches = [
            SimilarityMatch(message_id=m.id, score=score, method=SimilarityMethod.EMBEDDING)
            for _, m, score in accepted
        ]
        return SimilarityResult(matches=matches, method=SimilarityMethod.EMBEDDING if matches else SimilarityMethod.NONE)

    async def _llm_tier(self, target: Message, pool: Sequence[Message]) -> SimilarityResult:
        """
        Ask the judges, in priority order, which candidates are equivalent.

        Ids a judge returns that were not submitted are dropped. A judge that
        fails or answers with malformed output is skipped.
        """
        if not self.judges:
            return SimilarityResult()

        submitted = pool[:self.config["llm_candidate_limit"]]
        candidates = [
            {"id": m.id, "body": truncate(decode_html_entities(m.body), self.config["llm_candidate_chars"])}
            for m in submitted
        ]
        target_text = truncate(decode_html_entities(target.body), self.config["llm_target_chars"])
        valid_ids = [m.id for m in submitted]

        for judge in self.judges:
            try:
                returned = await judge.judge_similarity(target_text, candidates)
            except Exception as e:
                logger.warning(f"Similarity judge {judge.name} failed: {e}")
                continue

            returned_set = set(returned)
            ids = [message_id for message_id in valid_ids if message_id in returned_set]
            dropped = returned_set - set(valid_ids)
            if dropped:
                logger.warning(f"Judge {judge.name} returned unknown ids, ignoring: {sorted(dropped)}")
            logger.info(f"Similarity judge {judge.name} returned {len(ids)} matches")
            matches = [SimilarityMatch(message_id=i, score=1.0, method=SimilarityMethod.LLM) for i in ids]
            return SimilarityResult(matches=matches, method=SimilarityMethod.LLM if matches else SimilarityMethod.NONE)

        logger.warning(f"All similarity judges failed ({describe_providers(self.judges)})")
        return SimilarityResult()
