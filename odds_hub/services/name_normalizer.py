"""
Name normalization for source and selection labels.

Two strategies, chosen once when the normalizer is built:

  remote    An OpenAI-compatible chat-completion endpoint returns the
            canonical name with a confidence score.  Enabled only when an
            API key is configured.
  fallback  Deterministic rules: lower-case, strip punctuation, title-case,
            then the alias table.  Always available.

When the remote strategy is enabled, any remote failure (timeout, HTTP
error, malformed reply) drops to the fallback for that call.  ``normalize``
never raises.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import requests
from rapidfuzz import fuzz, process

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.6
REMOTE_DEFAULT_CONFIDENCE = 0.8
SUGGESTION_CUTOFF = 85

# Checked in order; the first key found anywhere in the cleaned name wins and
# replaces the whole name.
SOURCE_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("bet365",      "Bet365"),
    ("william hill", "William Hill"),
    ("paddy power", "Paddy Power"),
    ("betfair",     "Betfair"),
    ("ladbrokes",   "Ladbrokes"),
    ("coral",       "Coral"),
    ("888 sport",   "888 Sport"),
    ("unibet",      "Unibet"),
    ("betway",      "Betway"),
    ("sky bet",     "Sky Bet"),
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizationResult:
    normalized_name: str
    confidence: float
    reasoning: Optional[str] = None
    suggestions: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            "normalized_name": self.normalized_name,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "suggestions": list(self.suggestions),
        }


def alias_suggestions(name: str, limit: int = 3) -> Tuple[str, ...]:
    """Canonical aliases that fuzzy-match ``name``, best first."""
    matches = process.extract(
        name.lower(),
        [key for key, _ in SOURCE_ALIASES],
        scorer=fuzz.token_set_ratio,
        score_cutoff=SUGGESTION_CUTOFF,
        limit=limit,
    )
    return tuple(SOURCE_ALIASES[index][1] for _, _, index in matches)


def fallback_normalize(raw_name: str) -> NormalizationResult:
    """
    Rule-based normalization.

    Examples:
        "bet365"          → "Bet365"        (alias)
        "Paddy  Power!!"  → "Paddy Power"   (alias)
        "manchester utd." → "Manchester Utd"
    """
    cleaned = _NON_ALNUM.sub(" ", raw_name.strip().lower())
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()

    if not cleaned:
        # Nothing alphanumeric to work with; keep the input rather than
        # returning an empty name.
        return NormalizationResult(
            normalized_name=raw_name.strip() or raw_name,
            confidence=FALLBACK_CONFIDENCE,
            reasoning="Fallback rule-based normalization",
        )

    normalized = " ".join(token[0].upper() + token[1:] for token in cleaned.split(" "))

    lowered = normalized.lower()
    for key, canonical in SOURCE_ALIASES:
        if key in lowered:
            return NormalizationResult(
                normalized_name=canonical,
                confidence=FALLBACK_CONFIDENCE,
                reasoning="Fallback rule-based normalization",
            )

    return NormalizationResult(
        normalized_name=normalized,
        confidence=FALLBACK_CONFIDENCE,
        reasoning="Fallback rule-based normalization",
        suggestions=alias_suggestions(lowered),
    )


# ---------------------------------------------------------------------------
# Remote client
# ---------------------------------------------------------------------------

class RemoteNormalizationClient:
    """Client for an OpenAI-compatible chat-completions endpoint."""

    SYSTEM_PROMPT = (
        "You normalize sports betting names (bookmakers, teams, players) to "
        "their standard, canonical forms."
    )

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("RemoteNormalizationClient requires an api_key")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> Optional[RemoteNormalizationClient]:
        """Build a client from the environment, or None when no key is set."""
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            return None
        return cls(
            api_key=api_key,
            model=os.getenv("NORMALIZER_MODEL", "gpt-3.5-turbo"),
            base_url=os.getenv("NORMALIZER_BASE_URL", "https://api.openai.com/v1"),
            timeout=float(os.getenv("NORMALIZER_TIMEOUT_SECONDS", "5")),
        )

    def _build_prompt(self, raw_name: str, context_hint: Optional[str]) -> str:
        return (
            f'Normalize this name to its canonical form: "{raw_name}"\n'
            f"Context: {context_hint or 'Sports betting'}\n"
            'Respond in JSON: {"normalizedName": "...", "confidence": 0.95, '
            '"suggestions": ["..."], "reasoning": "..."}'
        )

    def normalize(self, raw_name: str, context_hint: Optional[str] = None) -> NormalizationResult:
        """
        Ask the remote service for a canonical name.

        Raises:
            requests.RequestException: On transport or HTTP errors.
            ValueError: When the reply is not the expected JSON object.
        """
        response = self.session.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_prompt(raw_name, context_hint)},
                ],
                "temperature": 0.1,
                "max_tokens": 200,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Unexpected completion payload: {exc}") from exc
        if not content:
            raise ValueError("Empty completion content")

        return self._parse_reply(content)

    @staticmethod
    def _parse_reply(content: str) -> NormalizationResult:
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Reply is not JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ValueError("Reply is not a JSON object")
        name = parsed.get("normalizedName")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Reply has no normalizedName")

        try:
            confidence = float(parsed.get("confidence", REMOTE_DEFAULT_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = REMOTE_DEFAULT_CONFIDENCE
        confidence = min(1.0, max(0.0, confidence))

        suggestions = parsed.get("suggestions") or []
        return NormalizationResult(
            normalized_name=name.strip(),
            confidence=confidence,
            reasoning=parsed.get("reasoning") or "AI-powered normalization",
            suggestions=tuple(str(s) for s in suggestions if s),
        )


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class NameNormalizer:
    """
    Remote-first name normalizer with a deterministic fallback.

    Usage::

        normalizer = NameNormalizer(remote=RemoteNormalizationClient.from_env())
        result = normalizer.normalize("paddy_power", context_hint="Bookmaker")
    """

    def __init__(self, remote: Optional[RemoteNormalizationClient] = None):
        self._remote = remote
        self.remote_enabled = remote is not None
        self._remote_calls = 0
        self._fallback_calls = 0
        self._remote_failures = 0
        self._stats_lock = threading.Lock()

        if self.remote_enabled:
            logger.info("Name normalizer using remote model %s", remote.model)
        else:
            logger.warning(
                "No remote normalization configured; using rule-based fallback"
            )

    def normalize(self, raw_name: str, context_hint: Optional[str] = None) -> NormalizationResult:
        if not self.remote_enabled:
            return self._fallback(raw_name)

        try:
            result = self._remote.normalize(raw_name, context_hint)
        except Exception as exc:
            logger.warning("Remote normalization failed for %r: %s", raw_name, exc)
            with self._stats_lock:
                self._remote_failures += 1
            return self._fallback(raw_name)

        with self._stats_lock:
            self._remote_calls += 1
        return result

    def _fallback(self, raw_name: str) -> NormalizationResult:
        with self._stats_lock:
            self._fallback_calls += 1
        return fallback_normalize(raw_name)

    def usage_stats(self) -> Dict:
        with self._stats_lock:
            stats = {
                "remote_calls": self._remote_calls,
                "remote_failures": self._remote_failures,
                "fallback_calls": self._fallback_calls,
            }
        if self.remote_enabled:
            stats.update({"status": "available", "model": self._remote.model})
        else:
            stats.update({"status": "fallback_only", "model": None})
        return stats
