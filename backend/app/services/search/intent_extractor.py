# backend/app/services/search/intent_extractor.py
"""
Intent classification + entity extraction for free-text input.

The LLM (structured output) classifies search/create/unclear and pulls
entities normalized to English. On timeout, open circuit, API error or
refusal a deterministic regex extractor takes over. Date/time validation is
always deterministic and runs after either path.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
import logging
import time
from typing import Any, Dict, List, Optional, cast

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.constants import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES
from app.core.exceptions import EmptyQueryException
from app.services.search.circuit_breaker import CircuitBreaker, CircuitOpenError
from app.services.search.config import SearchConfig, get_search_config
from app.services.search.date_parser import (
    detect_time_conflicts,
    is_past_datetime,
    parse_date_phrase,
    parse_time,
)
from app.services.search.date_tokens import INLINE_TRANSLATIONS
from app.services.search.embedding_provider import OPENAI_TIMEOUT_S
from app.services.search.errors import SearchErrorCode
from app.services.search.language_detection import detect_language
from app.services.search.llm_schema import LLMIntentResponse
from app.services.search.location_guard import find_known_city
from app.services.search.metrics import record_openai_latency
from app.services.search.patterns import (
    CITY_AFTER_PREPOSITION,
    CREATE_INTENT,
    DATE_PHRASE_IN_QUERY,
    ISO_DATE,
    TIME_MENTION,
)
from app.services.search.text_normalizer import CATEGORY_KEYWORDS, normalize_query

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "el": "Greek",
    "it": "Italian",
    "es": "Spanish",
    "fr": "French",
}

SYSTEM_PROMPT = """You are a multilingual event assistant for Eventa, a community events platform.
The user's interface language is {ui_name} ({ui_lang}).

Rules:
1. User input may be in English, Greek, Italian, Spanish or French. Set displayLang to the input language.
2. ALL structured fields (title, type, city, venue, date, time, description) MUST be normalized to English.
3. The paraphrase MUST be in {ui_name}.

Intent:
- "search": find / show me / what's on / near me / happening / events in (any language)
- "create": create / add / host / schedule / publish / organize / plan / set up (any language)
- "unclear": neither, or ambiguous

Entities:
- city and venue: keep proper nouns as written ("Milano", "The Dock")
- date: natural English phrase ("tomorrow", "this Friday", "next Saturday"); do not compute dates
- time: short English form ("8pm", "20:00")

For create, list missing required fields among: title, date, time, location.
Paraphrase examples: "Looking for events in Athens this weekend." / "Create an open mic at The Dock next Saturday 8pm?" /
"Do you want to search for an event or create one?"
"""

FALLBACK_PARAPHRASES: Dict[str, Dict[str, str]] = {
    "en": {
        "search": "Looking for events matching your request.",
        "create": "Create this event?",
        "unclear": "Do you want to search for an event or create one?",
    },
    "el": {
        "search": "Ψάχνω για εκδηλώσεις που ταιριάζουν στο αίτημά σας.",
        "create": "Δημιουργία αυτής της εκδήλωσης;",
        "unclear": "Θέλετε να αναζητήσετε μια εκδήλωση ή να δημιουργήσετε μία;",
    },
    "it": {
        "search": "Cerco eventi corrispondenti alla tua richiesta.",
        "create": "Creare questo evento?",
        "unclear": "Vuoi cercare un evento o crearne uno?",
    },
    "es": {
        "search": "Buscando eventos que coincidan con tu solicitud.",
        "create": "¿Crear este evento?",
        "unclear": "¿Quieres buscar un evento o crear uno?",
    },
    "fr": {
        "search": "Je cherche des événements correspondant à votre demande.",
        "create": "Créer cet événement ?",
        "unclear": "Voulez-vous rechercher un événement ou en créer un ?",
    },
}

REGEX_CONFIDENCE = 0.5
LLM_MAX_TOKENS = 500


@dataclass
class ExtractedIntent:
    title: Optional[str] = None
    type: Optional[str] = None
    city: Optional[str] = None
    venue: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    description: Optional[str] = None
    date_iso: Optional[str] = None
    time_24h: Optional[str] = None


@dataclass
class IntentResult:
    intent: str
    confidence: float
    display_lang: str
    extracted: ExtractedIntent = field(default_factory=ExtractedIntent)
    paraphrase: str = ""
    missing_fields: List[str] = field(default_factory=list)
    time_conflicts: Optional[List[str]] = None
    past_date: bool = False
    invalid_date: bool = False
    parsing_mode: str = "regex"
    error_code: Optional[str] = None
    latency_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "confidence": round(self.confidence, 3),
            "display_lang": self.display_lang,
            "extracted": asdict(self.extracted),
            "paraphrase": self.paraphrase,
            "missing_fields": list(self.missing_fields),
            "validation": {
                "past_date": self.past_date,
                "invalid_date": self.invalid_date,
                "time_conflicts": self.time_conflicts,
            },
            "parsing_mode": self.parsing_mode,
            "error_code": self.error_code,
            "latency_ms": self.latency_ms,
        }


def _paraphrase(ui_lang: str, intent: str) -> str:
    return FALLBACK_PARAPHRASES.get(ui_lang, FALLBACK_PARAPHRASES[DEFAULT_LANGUAGE])[intent]


def _find_date_phrase(text: str) -> Optional[str]:
    match = DATE_PHRASE_IN_QUERY.search(text)
    if match:
        return match.group(0)
    lowered = text.lower()
    # Foreign relative phrases ("domani", "αυτό το σαββατοκύριακο"); longest first
    for phrase in sorted(INLINE_TRANSLATIONS, key=len, reverse=True):
        if len(phrase) > 2 and phrase in lowered:
            return phrase
    return None


def _find_type(text: str) -> Optional[str]:
    for token in normalize_query(text).keywords:
        if token in CATEGORY_KEYWORDS:
            return token
    return None


def _valid_iso(value: Optional[str]) -> bool:
    if not value or not ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


class IntentExtractor:
    """
    Extracts intent and entities from user text.

    Usage:
        extractor = IntentExtractor(breaker=registry_breaker)
        result = await extractor.extract("find jazz in Athens this weekend", ui_lang="en")
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.config = config or get_search_config()
        self.breaker = breaker or CircuitBreaker(name="intent_llm")
        self._client = client

    @property
    def llm_enabled(self) -> bool:
        return self._client is not None or settings.openai_api_key is not None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI client with strict timeouts."""
        if self._client is None:
            api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
            self._client = AsyncOpenAI(
                api_key=api_key,
                timeout=OPENAI_TIMEOUT_S,
                max_retries=max(0, self.config.max_retries),
            )
        return self._client

    async def extract(
        self, text: str, ui_lang: str = DEFAULT_LANGUAGE, now: Optional[datetime] = None
    ) -> IntentResult:
        """
        Classify and extract.

        Raises:
            EmptyQueryException: If text is empty or whitespace
        """
        if not text or not text.strip():
            raise EmptyQueryException()
        if ui_lang not in SUPPORTED_LANGUAGES:
            ui_lang = DEFAULT_LANGUAGE

        start_time = time.perf_counter()
        result = await self._classify(text, ui_lang)

        try:
            self._post_process(result, text, now)
        except Exception as e:
            logger.error(f"Intent post-processing failed: {e}", exc_info=True)
            result = IntentResult(
                intent="unclear",
                confidence=0.0,
                display_lang=result.display_lang,
                paraphrase=_paraphrase(ui_lang, "unclear"),
                parsing_mode=result.parsing_mode,
                error_code=SearchErrorCode.INTENT_PROCESSING.value,
            )

        result.latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            f"Intent: {result.intent} ({result.parsing_mode}, lang={result.display_lang}, "
            f"ui={ui_lang}) city={result.extracted.city} date_iso={result.extracted.date_iso} "
            f"error_code={result.error_code} latency={result.latency_ms}ms"
        )
        return result

    async def _classify(self, text: str, ui_lang: str) -> IntentResult:
        if not self.llm_enabled:
            return self.extract_regex(text, ui_lang)

        timeout_seconds = self.config.parsing_timeout_ms / 1000.0
        try:
            started = time.perf_counter()
            response = await asyncio.wait_for(
                self.breaker.call(self._make_api_call, text, ui_lang), timeout=timeout_seconds
            )
            record_openai_latency("intent", int((time.perf_counter() - started) * 1000))
            return self._from_llm(response)
        except asyncio.TimeoutError:
            logger.warning(f"Intent LLM timed out after {timeout_seconds:.1f}s")
        except CircuitOpenError:
            logger.info("Intent LLM circuit is OPEN, using regex fallback")
        except OpenAIError as e:
            logger.warning(f"OpenAI API error: {e}")
        except ValueError as e:
            logger.warning(f"Intent LLM returned no usable output: {e}")
        except Exception as e:
            logger.error(f"Unexpected intent LLM error: {e}", exc_info=True)
        return self.extract_regex(text, ui_lang)

    async def _make_api_call(self, text: str, ui_lang: str) -> LLMIntentResponse:
        model = self.config.parsing_model
        request_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [
                {
                    "role": "system",
                    "content": SYSTEM_PROMPT.format(ui_name=LANGUAGE_NAMES[ui_lang], ui_lang=ui_lang),
                },
                {"role": "user", "content": text},
            ],
            "response_format": LLMIntentResponse,
        }
        # GPT-5 models reject temperature=0 and max_tokens
        if str(model).startswith("gpt-5"):
            request_kwargs["max_completion_tokens"] = LLM_MAX_TOKENS
        else:
            request_kwargs["temperature"] = 0
            request_kwargs["max_tokens"] = LLM_MAX_TOKENS

        response = await self.client.beta.chat.completions.parse(**request_kwargs)
        message = response.choices[0].message

        if message.refusal:
            raise ValueError(f"LLM refusal: {message.refusal}")
        if message.parsed is None:
            raise ValueError("LLM returned no parsed content")
        return cast(LLMIntentResponse, message.parsed)

    @staticmethod
    def _from_llm(response: LLMIntentResponse) -> IntentResult:
        entities = response.extracted
        return IntentResult(
            intent=response.intent,
            confidence=response.confidence,
            display_lang=response.displayLang,
            extracted=ExtractedIntent(
                title=entities.title,
                type=entities.type,
                city=entities.city,
                venue=entities.venue,
                date=entities.date,
                time=entities.time,
                description=entities.description,
            ),
            paraphrase=response.paraphrase,
            missing_fields=list(response.missingFields or []),
            parsing_mode="llm",
        )

    def extract_regex(self, text: str, ui_lang: str = DEFAULT_LANGUAGE) -> IntentResult:
        """Deterministic fallback: keyword intent, "in <City>", date/time phrases, category keywords."""
        intent = "create" if CREATE_INTENT.search(text) else "search"

        city_match = CITY_AFTER_PREPOSITION.search(text)
        city = city_match.group(1).strip() if city_match else find_known_city(text)

        time_match = TIME_MENTION.search(text)
        return IntentResult(
            intent=intent,
            confidence=REGEX_CONFIDENCE,
            display_lang=detect_language(text),
            extracted=ExtractedIntent(
                city=city,
                type=_find_type(text),
                date=_find_date_phrase(text),
                time=time_match.group(0).strip() if time_match else None,
            ),
            paraphrase=_paraphrase(ui_lang, intent),
            parsing_mode="regex",
        )

    @staticmethod
    def _post_process(result: IntentResult, text: str, now: Optional[datetime]) -> None:
        entities = result.extracted

        if _valid_iso(entities.date_iso):
            entities.date_iso = entities.date_iso.strip()
        else:
            entities.date_iso = None
            if entities.date:
                entities.date_iso = parse_date_phrase(entities.date, now=now)
                result.invalid_date = entities.date_iso is None

        entities.time_24h = parse_time(entities.time) if entities.time else None
        result.time_conflicts = detect_time_conflicts(text)
        result.past_date = is_past_datetime(entities.date_iso, entities.time_24h or "23:59", now=now)

        if result.intent == "create":
            missing: List[str] = []
            if not entities.title:
                missing.append("title")
            if not entities.date_iso:
                missing.append("date")
            if not entities.time_24h:
                missing.append("time")
            if not entities.city and not entities.venue:
                missing.append("location")
            result.missing_fields = missing
        else:
            result.missing_fields = []

        if result.intent == "unclear":
            result.error_code = SearchErrorCode.UNCLEAR.value
