"""Two-stage relevance ranking for catalog search.

final = 0.6 × semantic (model-scored) + 0.4 × lexical (rule-scored)

The semantic stage is one cheap model call that scores every candidate at
once.  If that call fails for any reason every semantic score becomes a
neutral 50, so ranking degrades to lexical order instead of failing.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from storechat.config import MATCHER_MAX_TOKENS, MATCHER_MODEL, MATCHER_TEMPERATURE
from storechat.services.llm_client import parse_json_reply
from storechat.services.metrics import metrics

logger = logging.getLogger(__name__)

SEMANTIC_WEIGHT = 0.6
LEXICAL_WEIGHT = 0.4
NEUTRAL_SEMANTIC_SCORE = 50.0
MAX_RESULTS = 10

MATCH_PROMPT = """Match the user query to relevant {kind}s using semantic similarity.

User query: "{query}"

Available {kind}s:
{items}

MATCHING RULES:
- Semantic similarity: "sake" matches "sake bottle building"
- Synonyms: "beginner" = "intro" = "starter" = "first time"
- Partial matches OK: "pottery" matches "hand building pottery"
- Consider: name (highest weight), tags, category, description
- Ignore exact word order

Return a JSON object with one score (0-100) per {kind}, in order:
{{"scores": [95, 20, 85, 10, ...]}}

Be generous with matches but prioritize the most relevant."""


def item_name(item: dict[str, Any], kind: str) -> str:
    """Services are keyed by ``serviceName``, products by ``name``."""
    if kind == "service":
        return str(item.get("serviceName") or item.get("name") or "")
    return str(item.get("name") or item.get("serviceName") or "")


def lexical_score(query: str, item: dict[str, Any], kind: str) -> float:
    q = query.lower().strip()
    tokens = q.split()
    name = item_name(item, kind).lower()
    category = str(item.get("category") or "").lower()
    tags = [t.strip() for t in str(item.get("tags") or "").lower().split(",")]
    description = str(item.get("description") or "").lower()

    score = 0
    if name == q:
        score += 40
    elif q in name:
        score += 30
    score += sum(10 for tok in tokens if len(tok) > 2 and tok in name)
    if category and q in category:
        score += 20
    score += sum(15 for tag in tags if tag and any(tok in tag for tok in tokens))
    if description and q in description:
        score += 10
    return float(min(score, 100))


def combine_scores(semantic: float, lexical: float) -> float:
    semantic = max(0.0, min(100.0, float(semantic)))
    lexical = max(0.0, min(100.0, float(lexical)))
    return SEMANTIC_WEIGHT * semantic + LEXICAL_WEIGHT * lexical


def _describe(items: list[dict[str, Any]], kind: str) -> str:
    return "\n".join(
        f'{i}. Name: "{item_name(item, kind)}", '
        f'Category: "{item.get("category") or "N/A"}", '
        f'Tags: "{item.get("tags") or "N/A"}", '
        f'Description: "{item.get("description") or "N/A"}"'
        for i, item in enumerate(items)
    )


def semantic_scores(query: str, items: list[dict[str, Any]], kind: str, llm) -> list[float]:
    """One model call scoring every item; neutral scores on any failure."""
    neutral = [NEUTRAL_SEMANTIC_SCORE] * len(items)
    if llm is None:
        return neutral
    prompt = MATCH_PROMPT.format(kind=kind, query=query, items=_describe(items, kind))
    t0 = time.perf_counter()
    try:
        response = llm.complete(
            [{"role": "user", "content": prompt}],
            model=MATCHER_MODEL,
            max_tokens=MATCHER_MAX_TOKENS,
            temperature=MATCHER_TEMPERATURE,
            json_mode=True,
        )
        parsed = parse_json_reply(response.content, lenient=True)
        raw_scores = parsed.get("scores") if isinstance(parsed, dict) else parsed
        if not isinstance(raw_scores, list):
            raise ValueError("no scores array in reply")
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("openrouter", "semantic_match", type(exc).__name__, elapsed)
        logger.warning("Semantic scoring failed, using neutral scores: %s", exc)
        return neutral

    scores: list[float] = []
    for i in range(len(items)):
        try:
            scores.append(float(raw_scores[i]))
        except (IndexError, TypeError, ValueError):
            scores.append(NEUTRAL_SEMANTIC_SCORE)
    return scores


def semantic_match(
    query: str | None,
    items: list[dict[str, Any]],
    kind: str,
    llm=None,
    *,
    limit: int = MAX_RESULTS,
) -> list[dict[str, Any]]:
    """Rank *items* against *query*.

    Returns copies of the items annotated with ``_score``,
    ``_semantic_score`` and ``_lexical_score``, best first, at most *limit*.
    An empty query returns every item unranked at score 100.
    """
    if not query or not query.strip() or not items:
        return [{**item, "_score": 100.0} for item in items]

    semantic = semantic_scores(query, items, kind, llm)
    ranked = []
    for item, sem in zip(items, semantic):
        lex = lexical_score(query, item, kind)
        ranked.append(
            {
                **item,
                "_score": round(combine_scores(sem, lex), 2),
                "_semantic_score": sem,
                "_lexical_score": lex,
            }
        )
    ranked.sort(key=lambda it: it["_score"], reverse=True)
    return ranked[:limit]
