"""
Multi-strategy intent detection cascade.

Strategies run in a fixed order and stop at the first result whose
confidence reaches the configured threshold:

1. basic       weighted keyword table
2. contextual  state-restricted vocabulary, with a bonus for expected intents
3. phonetic    mispronunciation rewrite, then the keyword table again
4. delegated   keyword fallback classifier at a fixed medium confidence

The detector never raises. Internal failures come back as an
``error_fallback`` result with zero confidence.

Usage:
    detector = IntentDetector()
    result = detector.detect("hola", session)
    # IntentResult(intent="greeting", confidence=1.0, strategy=IntentStrategy.BASIC, ...)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dialogue_router.config import IntentConfig, settings
from dialogue_router.conversation.state_machine import Session, SessionState
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.keyword_classifier import UNKNOWN, KeywordFallbackClassifier
from dialogue_router.nlu.normalizer import normalize
from dialogue_router.nlu.phonetics import combined_similarity
from dialogue_router.nlu.rules import (
    CONTEXT_EXPECTED,
    FORGOT_PASSWORD_WORDS,
    INTENT_KEYWORDS,
    PHONETIC_VARIANTS,
    STATE_INTENTS,
    contains_phrase,
    match_payment_method,
    matched_phrases,
)

logger = get_turn_logger(__name__)

_YES_ONLY = re.compile(r"^(si|s|yes|y|cliente|registrado|tengo cuenta)$")
_NO_ONLY = re.compile(r"^(no|n|tampoco|no soy|no estoy)$")
_PHONE_LIKE = re.compile(r"^[\d\s+\-()]+$")
_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SIX_DIGITS = re.compile(r"^\d{6}$")
_MIN_PASSWORD_CHARS = 4


class IntentStrategy(str, Enum):
    BASIC = "basic"
    CONTEXTUAL = "contextual"
    PHONETIC = "phonetic"
    DELEGATED = "delegated"
    FALLBACK = "fallback"
    ERROR_FALLBACK = "error_fallback"


@dataclass
class IntentResult:
    """Detector output for one turn. Consumed once by the router."""
    intent: str
    confidence: float
    strategy: IntentStrategy
    normalized_text: str = ""
    original_text: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.intent == UNKNOWN


def is_valid_transition(state: SessionState, intent: str) -> bool:
    """True when ``intent`` is actionable from ``state``."""
    return intent in STATE_INTENTS.get(state.value, frozenset())


class IntentDetector:
    """Reconciles keyword, contextual, phonetic and fallback intent sources."""

    def __init__(
        self,
        fallback_classifier: Optional[KeywordFallbackClassifier] = None,
        config: Optional[IntentConfig] = None,
    ):
        self.fallback_classifier = fallback_classifier or KeywordFallbackClassifier()
        self.config = config or settings.intent
        self._keywords = sorted({kw for table in INTENT_KEYWORDS.values() for kw in table})

    def detect(self, text: str, session: Session) -> IntentResult:
        try:
            return self._detect(text or "", session)
        except Exception:
            logger.exception("Intent detection failed")
            return IntentResult(
                intent=UNKNOWN,
                confidence=0.0,
                strategy=IntentStrategy.ERROR_FALLBACK,
                normalized_text="",
                original_text=text or "",
            )

    def _detect(self, text: str, session: Session) -> IntentResult:
        normalized = normalize(text)
        threshold = self.config.threshold

        def result(intent: str, confidence: float, strategy: IntentStrategy) -> IntentResult:
            return IntentResult(
                intent=intent,
                confidence=min(confidence, 1.0),
                strategy=strategy,
                normalized_text=normalized,
                original_text=text,
            )

        intent, confidence = self.score_basic(normalized)
        logger.debug("Basic intent: %s (%.2f)", intent, confidence)
        if intent != UNKNOWN and confidence >= threshold:
            return result(intent, confidence, IntentStrategy.BASIC)
        best = (intent, confidence, IntentStrategy.BASIC)

        ctx_intent, ctx_confidence = self.score_contextual(normalized, session, raw=text)
        logger.debug("Contextual intent: %s (%.2f)", ctx_intent, ctx_confidence)
        if ctx_intent != UNKNOWN and ctx_confidence > best[1]:
            best = (ctx_intent, ctx_confidence, IntentStrategy.CONTEXTUAL)
        if best[0] != UNKNOWN and best[1] >= threshold:
            return result(*best)

        ph_intent, ph_confidence = self.score_phonetic(normalized)
        logger.debug("Phonetic intent: %s (%.2f)", ph_intent, ph_confidence)
        if ph_intent != UNKNOWN and ph_confidence > best[1]:
            best = (ph_intent, ph_confidence, IntentStrategy.PHONETIC)
        if best[0] != UNKNOWN and best[1] >= threshold:
            return result(*best)

        try:
            delegated = self.fallback_classifier.classify(normalized)
        except Exception:
            logger.warning("Fallback classifier failed", exc_info=True)
            delegated = UNKNOWN
        if delegated != UNKNOWN:
            logger.debug("Delegated intent: %s", delegated)
            return result(delegated, self.config.delegated_confidence, IntentStrategy.DELEGATED)

        return result(UNKNOWN, best[1], IntentStrategy.FALLBACK)

    # ------------------------------------------------------------------ #
    # Scoring functions
    # ------------------------------------------------------------------ #

    def score_basic(self, normalized: str) -> tuple[str, float]:
        """Highest total keyword weight wins; confidence is the mean matched weight."""
        best_intent, best_total, best_hits = UNKNOWN, 0.0, []
        for intent, weights in INTENT_KEYWORDS.items():
            hits = matched_phrases(normalized, weights)
            total = sum(weights[kw] for kw in hits)
            if total > best_total:
                best_intent, best_total, best_hits = intent, total, hits
        if not best_hits:
            return UNKNOWN, self.config.no_match_confidence
        return best_intent, min(best_total / len(best_hits), 1.0)

    def confidence_for(self, normalized: str, intent: str) -> float:
        """Keyword confidence of a specific intent, as used for contextual rescoring."""
        weights = INTENT_KEYWORDS.get(intent, {})
        hits = matched_phrases(normalized, weights)
        if not hits:
            return self.config.no_match_confidence
        return min(sum(weights[kw] for kw in hits) / len(hits), 1.0)

    def score_contextual(
        self, normalized: str, session: Session, raw: str = ""
    ) -> tuple[str, float]:
        intent = self._contextual_intent(normalized, raw.strip(), session)
        if intent == UNKNOWN:
            return UNKNOWN, 0.0
        confidence = self.confidence_for(normalized, intent)
        if intent in CONTEXT_EXPECTED.get(session.state.value, frozenset()):
            confidence += self.config.contextual_bonus
        return intent, min(confidence, 1.0)

    def _contextual_intent(self, normalized: str, raw: str, session: Session) -> str:
        state = session.state

        if state in (SessionState.AWAITING_CLIENT_CONFIRMATION,
                     SessionState.AWAITING_CANCEL_CONFIRMATION):
            if _YES_ONLY.match(normalized):
                return "yes"
            if _NO_ONLY.match(normalized):
                return "no"

        elif state == SessionState.AWAITING_PHONE:
            if normalized and _PHONE_LIKE.match(normalized):
                return "phone_input"

        elif state == SessionState.AWAITING_PASSWORD:
            if contains_phrase(normalized, FORGOT_PASSWORD_WORDS) or "olvid" in normalized:
                return "forgot_password"
            if len(normalized) >= _MIN_PASSWORD_CHARS:
                return "password_input"

        elif state == SessionState.AWAITING_SMS_CODE:
            if _SIX_DIGITS.match(normalized.replace(" ", "")):
                return "code_input"

        elif state in (SessionState.AWAITING_REG_EMAIL, SessionState.AWAITING_UPDATE_EMAIL):
            if _EMAIL_SHAPE.match(raw):
                return "email_input"

        elif state == SessionState.AWAITING_REG_PASSWORD:
            if normalized:
                return "password_input"

        elif state == SessionState.AWAITING_PAYMENT_METHOD:
            if match_payment_method(normalized):
                return "payment_method"

        elif state in (SessionState.AWAITING_REG_NAME, SessionState.AWAITING_REG_DNI,
                       SessionState.AWAITING_TEMP_NAME, SessionState.AWAITING_TEMP_DNI,
                       SessionState.AWAITING_UPDATE_TELEFONO,
                       SessionState.AWAITING_UPDATE_DIRECCION):
            if normalized:
                return "text_input"

        if session.authenticated and contains_phrase(normalized, ("pedido", "compra", "mis pedidos")):
            return "order_status"

        return UNKNOWN

    def score_phonetic(self, normalized: str) -> tuple[str, float]:
        """Rewrite mispronounced tokens to their keyword, then rescore.

        A token is rewritten when it starts with a listed variant or is
        phonetically close to any known keyword.
        """
        tokens = normalized.split()
        rewritten = []
        changed = False
        for token in tokens:
            replacement = self._phonetic_replacement(token)
            changed = changed or replacement != token
            rewritten.append(replacement)
        if not changed:
            return UNKNOWN, 0.0
        return self.score_basic(" ".join(rewritten))

    def _phonetic_replacement(self, token: str) -> str:
        if token in self._keywords:
            return token
        for correct, variants in PHONETIC_VARIANTS.items():
            if token != correct and any(token.startswith(v) for v in variants):
                return correct
        if len(token) < 4:
            return token
        best, best_score = token, 0.0
        for keyword in self._keywords:
            if " " in keyword:
                continue
            score = combined_similarity(token, keyword, self.config.phonetic_weight)
            if score >= self.config.phonetic_similarity and score > best_score:
                best, best_score = keyword, score
        return best
