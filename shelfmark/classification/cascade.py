"""
Classification Cascade

Assigns DDC / LCC / call number / subject headings in three layers,
cheapest first:

1. Verified row in the local classification cache
2. Open Library classification data (free)
3. LLM, seeded with similar cached rows so call numbers follow house style
"""

import json
from datetime import datetime
from typing import Any, Callable, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from shelfmark.classification.cache import (
    ClassificationCacheEntry,
    ClassificationCacheRepository,
    ClassificationSource,
)
from shelfmark.classification.llm import BaseLLMClient, LLMError, LLMRateLimitError
from shelfmark.classification.prompts import build_system_prompt, build_user_prompt
from shelfmark.exceptions import ClassificationRateLimitedError, ClassificationServiceError
from shelfmark.metadata.models import BookMetadata, ClassificationChange, TrustLevel
from shelfmark.metadata.openlibrary import OpenLibraryClient


NULL_SENTINELS = frozenset({"", "null", "none", "undefined", "n/a"})

# Canonical field for each spelling the model may use, compared with
# case, underscores and hyphens removed
_RESPONSE_KEYS = {
    "ddc": "ddc",
    "deweydecimal": "ddc",
    "lcc": "lcc",
    "callnumber": "call_number",
    "subjects": "subjects",
    "classificationtrust": "classification_trust",
    "ailog": "ai_log",
}


def author_surname(author: Optional[str]) -> str:
    """``"Newport, Cal"`` -> ``"Newport"``; ``"Cal Newport"`` -> ``"Newport"``."""
    if not author or not author.strip():
        return ""
    author = author.strip()
    if "," in author:
        return author.split(",", 1)[0].strip()
    return author.split()[-1]


def build_call_number(ddc: Optional[str], author: Optional[str]) -> Optional[str]:
    """DDC plus the first three letters of the author's surname, upper-cased."""
    if not ddc:
        return None
    cutter = author_surname(author)[:3].upper()
    return f"{ddc} {cutter}" if cutter else ddc


def _clean_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return None if value.lower() in NULL_SENTINELS else value
    return value


def normalize_classification(payload: dict) -> dict:
    """
    Map a model response onto canonical classification fields.

    Keys are matched case-insensitively across camel and snake case;
    null-like strings become None; list subjects are joined with "; ".
    """
    result: dict[str, Any] = {}

    for key, value in payload.items():
        canonical = _RESPONSE_KEYS.get(str(key).replace("_", "").replace("-", "").lower())
        if canonical is None or canonical in result:
            continue

        if canonical == "ai_log":
            if isinstance(value, str):
                value = [value]
            result[canonical] = [str(v) for v in value or [] if _clean_value(v) is not None] if isinstance(value, list) else []
            continue

        if canonical == "subjects" and isinstance(value, list):
            value = "; ".join(str(v).strip() for v in value if _clean_value(v) is not None)

        value = _clean_value(value)
        if value is not None and not isinstance(value, str):
            value = str(value)
        result[canonical] = value

    return result


class ClassificationCascade:
    """
    Three-layer classifier.

    Usage:
        cascade = ClassificationCascade(cache, OpenLibraryClient(), create_llm_client())
        classified = await cascade.classify(record)
    """

    def __init__(
        self,
        cache: ClassificationCacheRepository,
        openlibrary: OpenLibraryClient,
        llm_client: Optional[BaseLLMClient] = None,
        example_limit: int = 3,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.cache = cache
        self.openlibrary = openlibrary
        self.llm_client = llm_client
        self.example_limit = example_limit
        self.clock = clock

    async def classify(self, record: BookMetadata) -> BookMetadata:
        """
        Classify a record.

        Returns:
            Copy of ``record`` with classification fields set

        Raises:
            ClassificationRateLimitedError: LLM provider is rate limiting
            ClassificationServiceError: LLM failed or returned invalid JSON
        """
        isbn = record.isbn
        logger.info(f"Classifying ISBN {isbn} ({record.title!r})")

        cached = self._cache_get(isbn)
        if cached and cached.verified:
            logger.info(f"[cascade] Verified cache hit for {isbn}")
            return record.copy(
                ddc=cached.ddc,
                lcc=cached.lcc,
                call_number=cached.call_number,
                subjects=cached.subjects,
                classification_trust=TrustLevel.HIGH,
                source=ClassificationSource.LOCAL_CACHE.value,
                is_ai_enhanced=False,
            )

        classified = await self._from_openlibrary(record)
        if classified is not None:
            return classified

        if self.llm_client is None:
            logger.info(f"[cascade] No LLM configured; {isbn} left unclassified")
            return record.copy(classification_trust=TrustLevel.LOW)

        return await self._from_llm(record)

    async def _from_openlibrary(self, record: BookMetadata) -> Optional[BookMetadata]:
        data = await self.openlibrary.fetch_classification(record.isbn)
        if data is None or not data.ddc:
            logger.info(f"[cascade] Open Library miss for {record.isbn}")
            return None

        call_number = build_call_number(data.ddc, record.primary_author)
        subjects = "; ".join(data.subjects) or record.subjects

        self._cache_insert(ClassificationCacheEntry(
            isbn=record.isbn,
            title=record.title or data.title or "",
            authors="; ".join(record.authors) or None,
            ddc=data.ddc,
            lcc=data.lcc,
            call_number=call_number,
            subjects="; ".join(data.subjects) or None,
            source=ClassificationSource.OPENLIBRARY,
            verified=False,
        ))

        logger.info(f"[cascade] Open Library hit for {record.isbn}: DDC={data.ddc}, call number={call_number}")
        return record.copy(
            ddc=data.ddc,
            lcc=data.lcc,
            call_number=call_number,
            subjects=subjects,
            classification_trust=TrustLevel.MEDIUM,
            source=ClassificationSource.OPENLIBRARY.value,
            is_ai_enhanced=False,
        )

    async def _from_llm(self, record: BookMetadata) -> BookMetadata:
        examples = self._find_examples(record)
        system_prompt = build_system_prompt(examples)
        user_prompt = build_user_prompt(record)

        logger.info(f"[cascade] Calling LLM for {record.isbn} with {len(examples)} reference example(s)")

        try:
            response = await self.llm_client.generate(system_prompt, user_prompt, temperature=0.1)
        except LLMRateLimitError as e:
            raise ClassificationRateLimitedError(retry_after=e.retry_after, detail=str(e)) from e
        except LLMError as e:
            raise ClassificationServiceError(str(e)) from e

        try:
            payload = json.loads(response.content)
        except (TypeError, ValueError) as e:
            raise ClassificationServiceError(f"LLM returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ClassificationServiceError("LLM response is not a JSON object")

        fields = normalize_classification(payload)
        ddc = fields.get("ddc")
        lcc = fields.get("lcc")
        call_number = fields.get("call_number") or build_call_number(ddc, record.primary_author)
        subjects = fields.get("subjects")

        try:
            trust = TrustLevel(str(fields.get("classification_trust") or "").lower())
        except ValueError:
            trust = TrustLevel.LOW
        if trust == TrustLevel.HIGH:
            # Only a verified cache row earns high trust
            trust = TrustLevel.MEDIUM

        now = self.clock()
        change = ClassificationChange(
            timestamp=now,
            model=getattr(self.llm_client, "model", "") or "unknown",
            changes=fields.get("ai_log") or ["AI classification applied"],
        )

        if any(v is not None for v in (ddc, lcc, call_number, subjects)):
            self._cache_insert(ClassificationCacheEntry(
                isbn=record.isbn,
                title=record.title or "",
                authors="; ".join(record.authors) or None,
                ddc=ddc,
                lcc=lcc,
                call_number=call_number,
                subjects=subjects,
                source=ClassificationSource.AI,
                verified=False,
            ))

        logger.info(f"[cascade] LLM classified {record.isbn}: DDC={ddc}, LCC={lcc}")
        classified = record.copy(
            ddc=ddc,
            lcc=lcc,
            call_number=call_number,
            subjects=subjects or record.subjects,
            classification_trust=trust,
            source=ClassificationSource.AI.value,
            is_ai_enhanced=True,
            enhanced_at=now,
        )
        classified.ai_log.append(change)
        return classified

    def _find_examples(self, record: BookMetadata) -> list[ClassificationCacheEntry]:
        try:
            return self.cache.find_similar(record.title, limit=self.example_limit, exclude_isbn=record.isbn)
        except SQLAlchemyError as e:
            logger.warning(f"[cascade] Example lookup failed: {e}")
            return []

    def _cache_get(self, isbn: str) -> Optional[ClassificationCacheEntry]:
        try:
            return self.cache.get(isbn)
        except SQLAlchemyError as e:
            logger.warning(f"[cascade] Cache read failed for {isbn}: {e}")
            return None

    def _cache_insert(self, entry: ClassificationCacheEntry) -> bool:
        try:
            return self.cache.insert_if_absent(entry)
        except SQLAlchemyError as e:
            logger.warning(f"[cascade] Cache write failed for {entry.isbn}: {e}")
            return False

    async def close(self):
        await self.openlibrary.close()
        if self.llm_client is not None:
            await self.llm_client.close()
