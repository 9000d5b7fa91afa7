"""Preference-driven recommendations across services and products.

Flow:
  1. Without a goal or category, ask for preferences (``PreferencesForm``).
  2. Hard filters: category, budget band, ``budget_max``.
  3. Soft filters (experience, time of day, weekday/weekend, duration):
     applied only if at least two offerings survive them.
  4. With a goal, one model call scores the survivors; otherwise the first
     ``limit`` survivors are returned.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from storechat.config import MATCHER_MODEL, MATCHER_TEMPERATURE
from storechat.models import FunctionResult, make_component
from storechat.services.llm_client import parse_json_reply
from storechat.services.metrics import metrics
from storechat.tools.context import ToolContext

logger = logging.getLogger(__name__)

MIN_MATCH_SCORE = 40
FALLBACK_MATCH_SCORE = 70
DEFAULT_PICK_SCORE = 80
FALLBACK_PICKS = 5
# Soft filters are skipped when they would leave fewer items than this
MIN_SOFT_FILTER_RESULTS = 2

PREFERENCE_FIELDS: list[dict[str, Any]] = [
    {
        "name": "goal",
        "label": "What are you looking for?",
        "type": "textarea",
        "required": True,
        "placeholder": "Tell us what you're interested in or what you'd like to achieve...",
    },
    {
        "name": "experience_level",
        "label": "Experience level",
        "type": "select",
        "required": False,
        "options": [
            {"value": "beginner", "label": "Beginner - New to this"},
            {"value": "intermediate", "label": "Intermediate - Some experience"},
            {"value": "advanced", "label": "Advanced - Very experienced"},
            {"value": "any", "label": "No preference"},
        ],
    },
    {
        "name": "budget",
        "label": "Budget",
        "type": "select",
        "required": False,
        "options": [
            {"value": "low", "label": "Budget-friendly"},
            {"value": "medium", "label": "Mid-range"},
            {"value": "high", "label": "Premium"},
            {"value": "any", "label": "No preference"},
        ],
    },
    {
        "name": "time_preference",
        "label": "Preferred time",
        "type": "select",
        "required": False,
        "options": [
            {"value": "morning", "label": "Morning"},
            {"value": "afternoon", "label": "Afternoon"},
            {"value": "evening", "label": "Evening"},
            {"value": "any", "label": "No preference"},
        ],
    },
]

BUDGET_RANGES = {"low": (0, 50), "medium": (30, 150), "high": (100, float("inf"))}
TIME_RANGES = {"morning": (5, 12), "afternoon": (12, 17), "evening": (17, 23)}
DURATION_RANGES = {"quick": (0, 45), "standard": (45, 90), "extended": (90, 480)}

LEVEL_KEYWORDS = {
    "beginner": ["beginner", "intro", "introduction", "starter", "basic", "first time",
                 "newbie", "fundamentals", "level 1", "entry"],
    "intermediate": ["intermediate", "level 2", "continuing", "progression", "next level"],
    "advanced": ["advanced", "expert", "pro", "professional", "master", "level 3", "intensive"],
}
DAY_KEYWORDS = {
    "weekday": ["monday", "tuesday", "wednesday", "thursday", "friday",
                "mon", "tue", "wed", "thu", "fri", "weekday"],
    "weekend": ["saturday", "sunday", "sat", "sun", "weekend"],
}

RECOMMEND_PROMPT = """You are a recommendation engine. Match the user's goal to the most relevant offerings.

USER'S GOAL: "{goal}"
{preferences}
AVAILABLE OFFERINGS:
{items}

MATCHING GUIDELINES:
- Focus on semantic relevance to the user's goal
- Consider user preferences when ranking
- A "beginner" looking for pottery should rank beginner classes higher
- Consider synonyms and related concepts
- Price sensitivity: if budget is "low", prefer affordable options
- Return higher scores (80-100) for strong matches, lower (30-60) for weak matches

Return a JSON object with scores and brief reasoning for top matches:
{{"matches": [{{"index": 0, "score": 95, "reason": "Perfect match for beginner pottery"}}]}}

Only include items with score >= {min_score}. Sort by score descending."""

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})")


def _price(item: dict[str, Any]) -> float:
    try:
        return float(str(item.get("price") or 0).replace("$", "").replace(",", ""))
    except ValueError:
        return 0.0


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_hour(value: str | None) -> int | None:
    """Hour 0-23 from ``"9:30"``, ``"2:00 pm"``, ``"14:00"``."""
    if not value:
        return None
    match = _TIME_RE.search(value)
    if not match:
        return None
    hour = int(match.group(1))
    lowered = value.lower()
    if "pm" in lowered and hour < 12:
        hour += 12
    if "am" in lowered and hour == 12:
        hour = 0
    return hour


def _soft(items: list[dict[str, Any]], kept: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return kept if len(kept) >= MIN_SOFT_FILTER_RESULTS else items


def apply_preference_filters(items: list[dict[str, Any]], prefs: dict[str, Any]) -> list[dict[str, Any]]:
    filtered = list(items)

    category = prefs.get("category")
    if category:
        needle = category.lower()
        filtered = [i for i in filtered if needle in str(i.get("category") or "").lower()]

    budget = prefs.get("budget")
    if budget in BUDGET_RANGES:
        low, high = BUDGET_RANGES[budget]
        filtered = [i for i in filtered if _price(i) == 0 or low <= _price(i) <= high]

    budget_max = prefs.get("budget_max")
    if budget_max:
        filtered = [i for i in filtered if _price(i) == 0 or _price(i) <= budget_max]

    keywords = LEVEL_KEYWORDS.get(prefs.get("experience_level") or "")
    if keywords:
        def _text(i: dict[str, Any]) -> str:
            return " ".join(
                str(i.get(k) or "") for k in ("_name", "tags", "description", "category")
            ).lower()

        filtered = _soft(filtered, [i for i in filtered if any(kw in _text(i) for kw in keywords)])

    hours = TIME_RANGES.get(prefs.get("time_preference") or "")
    if hours:
        def _in_hours(i: dict[str, Any]) -> bool:
            hour = parse_hour(str(i.get("startTime") or i.get("time") or ""))
            return hour is None or hours[0] <= hour < hours[1]

        filtered = _soft(filtered, [i for i in filtered if _in_hours(i)])

    days = DAY_KEYWORDS.get(prefs.get("day_preference") or "")
    if days:
        def _on_days(i: dict[str, Any]) -> bool:
            value = str(i.get("days") or "").lower()
            return not value or any(kw in value for kw in days)

        filtered = _soft(filtered, [i for i in filtered if _on_days(i)])

    band = DURATION_RANGES.get(prefs.get("duration_preference") or "")
    if band:
        def _in_band(i: dict[str, Any]) -> bool:
            duration = _int(i.get("duration"))
            return duration == 0 or band[0] <= duration <= band[1]

        filtered = _soft(filtered, [i for i in filtered if _in_band(i)])

    return filtered


def _describe(items: list[dict[str, Any]]) -> str:
    lines = []
    for index, item in enumerate(items):
        price = f"${item['price']}" if item.get("price") else "N/A"
        lines.append(
            f'{index}. [{item["_type"].upper()}] "{item["_name"]}" - '
            f'Category: {item.get("category") or "General"}, Price: {price}, '
            f'Tags: {item.get("tags") or ""}, Description: {item.get("description") or ""}'
        )
    return "\n".join(lines)


def _fallback(items: list[dict[str, Any]]) -> list[tuple[dict[str, Any], float, str]]:
    return [(item, FALLBACK_MATCH_SCORE, "Matches your criteria") for item in items[:FALLBACK_PICKS]]


def rank_by_goal(
    goal: str, items: list[dict[str, Any]], prefs: dict[str, Any], llm,
) -> list[tuple[dict[str, Any], float, str]]:
    """Score *items* against *goal*; ``(item, score, reason)`` best first."""
    if llm is None:
        return _fallback(items)

    pref_lines = [
        f"{label}: {prefs[key]}"
        for key, label in (
            ("experience_level", "User experience level"),
            ("budget", "Budget preference"),
            ("time_preference", "Time preference"),
        )
        if prefs.get(key) and prefs[key] != "any"
    ]
    preferences = "\nUSER PREFERENCES:\n" + "\n".join(pref_lines) + "\n" if pref_lines else ""
    prompt = RECOMMEND_PROMPT.format(
        goal=goal, preferences=preferences, items=_describe(items), min_score=MIN_MATCH_SCORE,
    )

    t0 = time.perf_counter()
    try:
        response = llm.complete(
            [{"role": "user", "content": prompt}],
            model=MATCHER_MODEL,
            max_tokens=800,
            temperature=MATCHER_TEMPERATURE,
            json_mode=True,
            reasoning_enabled=False,
        )
        parsed = parse_json_reply(response.content, lenient=True)
    except Exception as exc:
        metrics.record_failure(
            "openrouter", "recommendations", type(exc).__name__, (time.perf_counter() - t0) * 1000,
        )
        logger.warning("Recommendation scoring failed, using fallback order: %s", exc)
        return _fallback(items)

    matches = parsed.get("matches") if isinstance(parsed, dict) else None
    if not isinstance(matches, list):
        return _fallback(items)

    ranked = []
    for match in matches:
        if not isinstance(match, dict):
            continue
        index = match.get("index")
        if not isinstance(index, int) or not 0 <= index < len(items):
            continue
        try:
            score = float(match.get("score") or FALLBACK_MATCH_SCORE)
        except (TypeError, ValueError):
            score = FALLBACK_MATCH_SCORE
        if score < MIN_MATCH_SCORE:
            continue
        ranked.append((items[index], score, str(match.get("reason") or "Matches your preferences")))
    ranked.sort(key=lambda r: r[1], reverse=True)
    return ranked


def get_recommendations(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    goal = params.get("goal")
    category = params.get("category")
    limit = params.get("limit", 3)

    if not goal and not category:
        defaults = {
            key: params.get(key) or ""
            for key in ("experience_level", "budget", "time_preference", "goal")
        }
        form = make_component(
            "PreferencesForm",
            {
                "fields": PREFERENCE_FIELDS,
                "title": "Help us find the perfect match for you!",
                "subtitle": "Tell us a bit about what you're looking for",
                "defaultValues": defaults,
            },
            f"preferences-form-{ctx.store.id}",
        )
        return FunctionResult(
            success=True,
            awaiting_input=True,
            data={"needs_preferences": True, "fields": PREFERENCE_FIELDS},
            message=(
                "I'd love to help you find the perfect option! Let me ask you a few quick "
                "questions to understand what you're looking for."
            ),
            components=[form],
        )

    offering_type = params.get("offering_type", "both")
    offerings: list[dict[str, Any]] = []
    if offering_type in ("services", "both"):
        offerings += [
            {**s, "_type": "service", "_name": s.get("serviceName") or s.get("name") or ""}
            for s in ctx.rows("services") or []
        ]
    if offering_type in ("products", "both"):
        offerings += [
            {**p, "_type": "product", "_name": p.get("name") or ""}
            for p in ctx.rows("products") or []
        ]

    if not offerings:
        return FunctionResult.fail(
            "No offerings available to recommend. Please ensure your sheet has Services or Products data."
        )

    total = len(offerings)
    candidates = apply_preference_filters(offerings, params)
    logger.debug("Recommendations: %d of %d offerings pass filters", len(candidates), total)

    if goal and candidates:
        picks = rank_by_goal(goal, candidates, params, ctx.llm)[:limit]
    else:
        picks = [(item, DEFAULT_PICK_SCORE, "Matches your preferences") for item in candidates[:limit]]

    recommendations = [{**item, "_score": score, "matchReason": reason} for item, score, reason in picks]
    preferences_used = {
        key: params.get(key)
        for key in ("goal", "experience_level", "budget", "time_preference", "category")
    }

    components = []
    if recommendations:
        components.append(
            make_component(
                "RecommendationList",
                {"recommendations": recommendations, "preferences": preferences_used},
                f"recommendations-{ctx.store.id}",
            )
        )

    count = len(recommendations)
    return FunctionResult(
        success=True,
        data={
            "recommendations": recommendations,
            "count": count,
            "preferences_used": preferences_used,
            "total_available": total,
        },
        message=(
            f"Based on your preferences, here are my top {count} recommendation{'s' if count > 1 else ''} for you!"
            if count
            else "I couldn't find any offerings that match your specific preferences. "
            "Try adjusting your criteria or browse all our options."
        ),
        components=components,
    )
