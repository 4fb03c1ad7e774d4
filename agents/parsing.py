"""
Tolerant parsing of model responses.

Models wrap their JSON in prose, code fences, trailing commas and the odd
Python-style literal. ``extract_json`` tries progressively more forgiving
strategies; ``parse_ai_response`` normalises the per-mode response shapes
into one ``MarketAnalysis`` and returns None when nothing usable is found.
"""

from __future__ import annotations

import ast
import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from agents.base import MarketAnalysis, TradeAction

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r"```[a-zA-Z]*\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_SENTIMENT_KEYS = ("market_sentiment", "sentiment", "overall_sentiment", "market_view")
_SUMMARY_KEYS = ("summary", "analysis", "reasoning", "decision_summary", "market_analysis")
_PICK_KEYS = ("top_picks", "stocks_to_watch", "watchlist", "picks")


def _first_object(text: str) -> Optional[dict[str, Any]]:
    """Return the first JSON object that decodes cleanly from any '{' in text."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            obj, _end = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        except RecursionError:
            # Nesting too deep to decode; later braces are mostly inside it
            return None
        if isinstance(obj, dict):
            return obj
    return None


def _outer_braces(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    end = text.rfind("}")
    return text[start:end + 1] if end > start else text[start:]


def extract_json(text: str) -> tuple[dict[str, Any], bool]:
    """Extract a JSON object from model output.

    Returns:
        (parsed_dict, repaired) where ``repaired`` is False only when the
        whole text was already valid JSON.

    Raises:
        ValueError: If no strategy yields a JSON object.
    """
    stripped = text.strip()
    if not stripped:
        raise ValueError("Empty response")

    # 1. Direct parse
    try:
        obj = json.loads(stripped)
        if isinstance(obj, dict):
            return obj, False
    except (json.JSONDecodeError, RecursionError):
        pass

    # 2/3. Fenced code blocks
    for pattern in (_FENCED_JSON_RE, _FENCED_ANY_RE):
        for block in pattern.findall(stripped):
            obj = _first_object(block)
            if obj is not None:
                return obj, True

    # 4. First decodable object in prose
    obj = _first_object(stripped)
    if obj is not None:
        return obj, True

    candidate = _outer_braces(stripped)
    if candidate is None:
        raise ValueError("All JSON extraction strategies failed: no object found")

    # 5. Trailing commas
    no_trailing = _TRAILING_COMMA_RE.sub(r"\1", candidate)
    try:
        obj = json.loads(no_trailing)
        if isinstance(obj, dict):
            return obj, True
    except (json.JSONDecodeError, RecursionError):
        pass

    # 6. Python-style literals (single quotes, True/False/None)
    try:
        obj = ast.literal_eval(no_trailing)
        if isinstance(obj, dict):
            return obj, True
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        pass

    # 7. Truncated output: close any open strings, brackets and braces
    repaired = _close_open_structures(no_trailing)
    try:
        obj = json.loads(repaired)
        if isinstance(obj, dict):
            return obj, True
    except (json.JSONDecodeError, RecursionError):
        pass

    raise ValueError("All JSON extraction strategies failed")


def _close_open_structures(text: str) -> str:
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()
    tail = '"' if in_string else ""
    body = _TRAILING_COMMA_RE.sub(r"\1", text.rstrip().rstrip(",") + tail)
    return body + "".join(reversed(stack))


# ---------------------------------------------------------------------------
# Response normalisation
# ---------------------------------------------------------------------------

def _first_str(data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict):
            nested = _first_str(value, ("summary", "overview", "sentiment", "outlook"))
            if nested:
                return nested
    return ""


def _sentiment(data: dict[str, Any]) -> str:
    for source in (data, data.get("market_analysis"), data.get("competition_analysis")):
        if not isinstance(source, dict):
            continue
        raw = _first_str(source, _SENTIMENT_KEYS)
        if raw:
            upper = raw.upper()
            for label in ("BULLISH", "BEARISH", "NEUTRAL"):
                if label in upper:
                    return label
    return "NEUTRAL"


def _picks(data: dict[str, Any]) -> list[str]:
    for source in (data, data.get("market_analysis"), data.get("trading_signals")):
        if not isinstance(source, dict):
            continue
        for key in _PICK_KEYS:
            value = source.get(key)
            if isinstance(value, list):
                picks = []
                for item in value:
                    if isinstance(item, str):
                        picks.append(item)
                    elif isinstance(item, dict) and item.get("stock_code"):
                        picks.append(str(item["stock_code"]))
                return picks
    return []


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        try:
            return float(cleaned) if cleaned else None
        except ValueError:
            return None
    return None


def _normalize_action(raw: Any) -> Optional[TradeAction]:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("action") or raw.get("type") or raw.get("side")
    if not isinstance(kind, str) or not kind.strip():
        return None
    code = raw.get("stock_code") or raw.get("symbol") or raw.get("ticker") or ""
    try:
        return TradeAction(
            action=kind.strip().upper(),
            stock_code=str(code).strip().upper(),
            stock_name=str(raw.get("stock_name") or raw.get("name") or ""),
            quantity=_to_float(raw.get("quantity") or raw.get("shares")) or 0.0,
            reasoning=str(raw.get("reasoning") or raw.get("reason") or ""),
            confidence=_to_float(raw.get("confidence")),
            stop_loss=_to_float(raw.get("stop_loss")),
            target_price=_to_float(raw.get("target_price") or raw.get("take_profit")),
            leverage=_to_float(raw.get("leverage")),
        )
    except ValidationError as e:
        logger.warning(f"Dropping malformed action {raw!r}: {e}")
        return None


def parse_ai_response(text: str) -> Optional[MarketAnalysis]:
    """Parse a raw model response into a ``MarketAnalysis``; None on failure."""
    if not text or not text.strip():
        return None
    try:
        data, repaired = extract_json(text)
    except (ValueError, RecursionError) as e:
        logger.warning(f"Response parsing failed: {e}")
        return None
    if repaired:
        logger.debug("Response JSON needed repair")

    raw_actions = data.get("actions", data.get("trades", []))
    if isinstance(raw_actions, dict):
        raw_actions = [raw_actions]
    if not isinstance(raw_actions, list):
        raw_actions = []

    actions = []
    for raw in raw_actions:
        action = _normalize_action(raw)
        if action is None:
            logger.warning(f"Dropping malformed action: {raw!r}")
            continue
        actions.append(action)

    proceed = data.get("proceed_with_trading")
    return MarketAnalysis(
        sentiment=_sentiment(data),
        top_picks=_picks(data),
        summary=_first_str(data, _SUMMARY_KEYS)[:1000],
        proceed_with_trading=proceed if isinstance(proceed, bool) else None,
        actions=actions,
    )
