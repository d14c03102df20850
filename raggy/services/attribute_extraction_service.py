"""
Attribute Extraction Service

Learns a user's required attributes (name, city, ...) from the messages
they write.

Two entry points:
- run(user_id): full pass over every user message newer than the
  checkpoint. Advances the checkpoint to the run's start time when the
  stored attributes changed.
- process_message(user_id, message_id): the per-message fast path
  triggered after a user message is created. Never touches the
  checkpoint.

Merge law: last write wins per key, and the stored map only ever holds
keys from required_attributes with non-empty string values.

Runs for the same user are serialized in this process.

The checkpoint compares against created_at, which the chat service
stamps before the insert commits. A message stamped before a run's start
time but committed after that run read the table falls behind the
checkpoint and no later full run selects it; its own process_message job
is what extracts from it.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from raggy.ai.llm.langchain_client import GenerationGateway, get_generation_gateway
from raggy.ai.prompts.extraction_prompts import build_extraction_prompt
from raggy.core.concurrency import KeyedLock
from raggy.core.exceptions import NotFoundError
from raggy.models.user import User
from raggy.repositories.message_repo import MessageRepository
from raggy.repositories.user_repo import UserRepository
from raggy.utils.json_utils import extract_json_object
from raggy.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# One lock per user id, shared by every service instance in the process
_user_locks = KeyedLock()


class ExtractionState(str, Enum):
    NEVER_RUN = "never_run"
    RUNNING = "running"
    IDLE = "idle"


class ExtractionStatus(str, Enum):
    UPDATED = "updated"      # Stored attributes changed
    UNCHANGED = "unchanged"  # Model ran, nothing new
    SKIPPED = "skipped"      # No required attributes or no candidate messages


@dataclass
class ExtractionOutcome:
    user_id: str
    status: ExtractionStatus
    attributes: Dict[str, str] = field(default_factory=dict)
    processed_messages: int = 0
    last_extraction_date: Optional[datetime] = None


# ============================================================
# PARSING AND MERGING
# ============================================================

def _coerce_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def filter_attributes(
    values: Optional[Mapping[str, Any]],
    required_attributes: List[str],
) -> Dict[str, str]:
    """
    Keep only required keys with non-empty values, as strings.

    None, empty strings and empty containers count as empty.
    """
    if not values:
        return {}

    required = set(required_attributes)
    filtered = {}

    for key, value in values.items():
        if key not in required:
            continue
        if value is None or value == "" or value == [] or value == {}:
            continue
        text = _coerce_value(value)
        if text:
            filtered[key] = text

    return filtered


def parse_extraction_response(
    response: Optional[str],
    required_attributes: List[str],
) -> Dict[str, str]:
    """Permissive parse of the model's answer; anything undecodable yields {}."""
    data = extract_json_object(response)
    if data is None:
        if response:
            logger.warning(f"Extraction response held no JSON object: {response[:200]!r}")
        return {}
    return filter_attributes(data, required_attributes)


def merge_attributes(
    existing: Optional[Mapping[str, Any]],
    extracted: Optional[Mapping[str, Any]],
    required_attributes: List[str],
) -> Dict[str, str]:
    """
    Last-write-wins merge restricted to the required keys.

    merge(existing, {}) keeps every existing required key, and a key
    present in ``extracted`` always ends up with the extracted value.
    """
    merged = filter_attributes(existing, required_attributes)
    merged.update(filter_attributes(extracted, required_attributes))
    return merged


def get_extraction_state(user: User) -> ExtractionState:
    if _user_locks.locked(user.id):
        return ExtractionState.RUNNING
    if user.last_extraction_date is None:
        return ExtractionState.NEVER_RUN
    return ExtractionState.IDLE


# ============================================================
# SERVICE
# ============================================================

class AttributeExtractionService:
    """
    Usage:
        service = AttributeExtractionService(db)
        outcome = await service.run("user-1")
        print(outcome.status, outcome.attributes)
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[GenerationGateway] = None,
    ):
        self.db = db
        self.user_repo = UserRepository(db)
        self.message_repo = MessageRepository(db)
        self._gateway = gateway

    @property
    def gateway(self) -> GenerationGateway:
        if self._gateway is None:
            self._gateway = get_generation_gateway()
        return self._gateway

    async def run(self, user_id: str) -> ExtractionOutcome:
        """
        Full extraction over messages newer than the checkpoint.

        Raises:
            NotFoundError: No such user
            ExternalServiceError: Generation failed (nothing is written)
        """
        async with _user_locks.acquire(user_id):
            user = await self._get_user(user_id)
            required = list(user.required_attributes or [])

            if not required:
                return self._outcome(user, ExtractionStatus.SKIPPED)

            run_start_time = utcnow()
            messages = await self.message_repo.get_user_messages_since(
                user_id,
                since=ensure_utc(user.last_extraction_date),
            )

            if not messages:
                logger.debug(f"No new messages for user {user_id}, checkpoint kept")
                return self._outcome(user, ExtractionStatus.SKIPPED)

            logger.info(f"Extracting attributes for user {user_id} from {len(messages)} messages")
            text = "\n\n".join(m.content for m in messages)
            extracted = await self._extract(text, required)

            return await self._merge_and_save(
                user,
                required,
                extracted,
                checkpoint=run_start_time,
                processed_messages=len(messages),
            )

    async def process_message(self, user_id: str, message_id: UUID) -> ExtractionOutcome:
        """
        Extract from a single user message and merge.

        Raises:
            NotFoundError: No such user, or the message is not one of the
                user's own user-role messages
            ExternalServiceError: Generation failed
        """
        async with _user_locks.acquire(user_id):
            user = await self._get_user(user_id)
            required = list(user.required_attributes or [])

            if not required:
                return self._outcome(user, ExtractionStatus.SKIPPED)

            message = await self.message_repo.get_user_message(message_id, user_id)
            if message is None:
                raise NotFoundError(f"Message {message_id} not found for user {user_id}")

            extracted = await self._extract(message.content, required)

            return await self._merge_and_save(
                user,
                required,
                extracted,
                checkpoint=None,
                processed_messages=1,
            )

    def get_state(self, user: User) -> ExtractionState:
        return get_extraction_state(user)

    # ============================================================
    # HELPERS
    # ============================================================

    async def _get_user(self, user_id: str) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _extract(self, text: str, required: List[str]) -> Dict[str, str]:
        response = await self.gateway.generate(build_extraction_prompt(text, required))
        return parse_extraction_response(response, required)

    async def _merge_and_save(
        self,
        user: User,
        required: List[str],
        extracted: Dict[str, str],
        checkpoint: Optional[datetime],
        processed_messages: int,
    ) -> ExtractionOutcome:
        previous = dict(user.extracted_attributes or {})
        merged = merge_attributes(previous, extracted, required)

        if merged == previous:
            logger.info(f"Attributes of user {user.id} unchanged")
            return self._outcome(user, ExtractionStatus.UNCHANGED, processed_messages)

        await self.user_repo.save_extraction_result(user.id, merged, checkpoint=checkpoint)
        await self.db.refresh(user)

        logger.info(f"Attributes of user {user.id} updated: {sorted(merged)}")
        return self._outcome(user, ExtractionStatus.UPDATED, processed_messages)

    @staticmethod
    def _outcome(
        user: User,
        status: ExtractionStatus,
        processed_messages: int = 0,
    ) -> ExtractionOutcome:
        return ExtractionOutcome(
            user_id=user.id,
            status=status,
            attributes=dict(user.extracted_attributes or {}),
            processed_messages=processed_messages,
            last_extraction_date=ensure_utc(user.last_extraction_date),
        )
