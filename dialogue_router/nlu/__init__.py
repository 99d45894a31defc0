from dialogue_router.nlu.intent_detector import IntentDetector, IntentResult, IntentStrategy
from dialogue_router.nlu.keyword_classifier import KeywordFallbackClassifier
from dialogue_router.nlu.normalizer import correct_transcription, normalize, normalize_for_search

__all__ = [
    "IntentDetector",
    "IntentResult",
    "IntentStrategy",
    "KeywordFallbackClassifier",
    "normalize",
    "normalize_for_search",
    "correct_transcription",
]
