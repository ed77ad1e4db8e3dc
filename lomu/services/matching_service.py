from __future__ import annotations

import logging
import time
from typing import Any, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from ..config import get_settings
from ..db import get_client, get_db
from ..errors import DuplicateActionError, NotFoundError, SelfActionError, ServerError
from ..models.identifiers import parse_object_id
from ..models.matching import MatchOutcome
from ..models.user import PublicUser, UserDocument
from ..repositories.user import UserRepository
from .profile_service import public_profile

LOGGER = logging.getLogger("uvicorn.error")

MATCH_WRITE_ATTEMPTS = 3
OPPOSITE_GENDER = {"male": "female", "female": "male"}


def _now_ms() -> int:
    return int(time.time() * 1000)


class MatchingEngine:
    """Like/pass transitions over pairs of users and the symmetric ``matches`` relation.

    ``like`` appends to the actor's ``likes`` before reading the target's, so of two
    concurrent opposite likes at least one observes the mutual condition. Match writes
    use ``$addToSet`` and are safe to repeat.
    """

    def __init__(
        self,
        users: UserRepository,
        *,
        page_size: int,
        max_distance_m: int,
        client: Optional[AsyncIOMotorClient] = None,
        use_transactions: bool = False,
    ) -> None:
        self._users = users
        self._page_size = page_size
        self._max_distance_m = max_distance_m
        self._client = client
        self._use_transactions = use_transactions and client is not None

    async def _resolve_pair(self, actor: UserDocument, target_id: Any, self_message: str) -> ObjectId:
        target = parse_object_id(target_id, "user id")
        if target == actor.id:
            raise SelfActionError(self_message)
        if not await self._users.exists(target):
            raise NotFoundError("User not found")
        return target

    async def like(self, actor: UserDocument, target_id: Any) -> MatchOutcome:
        target = await self._resolve_pair(actor, target_id, "You can't like yourself")
        if not await self._users.push_unique(actor.id, "likes", target, updated_at=_now_ms()):
            raise DuplicateActionError("You already liked this user")
        if not await self._users.contains(target, "likes", actor.id):
            return MatchOutcome.LIKED
        try:
            await self._record_match(actor.id, target)
        except (NotFoundError, ServerError, PyMongoError):
            # Drop the like as well so a retry replays the mutual check
            await self._users.pull(actor.id, "likes", target)
            raise
        LOGGER.info("Match recorded between %s and %s", actor.id, target)
        return MatchOutcome.MATCHED

    async def pass_(self, actor: UserDocument, target_id: Any) -> MatchOutcome:
        target = await self._resolve_pair(actor, target_id, "You can't pass yourself")
        if await self._users.contains(actor.id, "matches", target):
            raise DuplicateActionError("You are already matched with this user")
        if not await self._users.push_unique(actor.id, "passes", target, updated_at=_now_ms()):
            raise DuplicateActionError("You already passed this user")
        return MatchOutcome.PASSED

    async def _record_match(self, actor_id: ObjectId, target_id: ObjectId) -> None:
        if self._use_transactions:
            await self._record_match_in_transaction(actor_id, target_id)
            return

        now_ms = _now_ms()
        last_error: Optional[Exception] = None
        for attempt in range(1, MATCH_WRITE_ATTEMPTS + 1):
            try:
                await self._users.add_to_set(actor_id, "matches", target_id, updated_at=now_ms)
                if await self._users.add_to_set(target_id, "matches", actor_id, updated_at=now_ms):
                    return
                # Target deleted between the like and the match write
                await self._users.pull(actor_id, "matches", target_id)
                raise NotFoundError("User not found")
            except PyMongoError as exc:
                last_error = exc
                LOGGER.warning(
                    "Match write %d/%d for %s failed: %s", attempt, MATCH_WRITE_ATTEMPTS, target_id, exc
                )

        await self._users.pull(actor_id, "matches", target_id)
        LOGGER.error("Rolled back one-sided match %s -> %s: %s", actor_id, target_id, last_error)
        raise ServerError("Could not record match")

    async def _record_match_in_transaction(self, actor_id: ObjectId, target_id: ObjectId) -> None:
        now_ms = _now_ms()
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                await self._users.add_to_set(actor_id, "matches", target_id, updated_at=now_ms, session=session)
                if not await self._users.add_to_set(
                    target_id, "matches", actor_id, updated_at=now_ms, session=session
                ):
                    await session.abort_transaction()
                    raise NotFoundError("User not found")

    async def explore(self, actor: UserDocument, gender: Optional[str] = None) -> List[PublicUser]:
        """Candidate cards for ``actor``: never the actor, nor anyone already liked or passed."""
        current = await self._users.get_by_id(actor.id) or actor
        if gender:
            # Explicit filter is used as given; an unknown value simply matches nobody
            wanted: Optional[str] = gender.strip().lower()
        else:
            wanted = OPPOSITE_GENDER.get(current.gender or "")

        exclude = [current.id, *current.likes, *current.passes]
        if current.location is not None:
            docs = await self._users.find_candidates_near(
                coordinates=current.location.coordinates,
                exclude_ids=exclude,
                gender=wanted,
                limit=self._page_size,
                max_distance_m=self._max_distance_m,
            )
        else:
            docs = await self._users.find_candidates(
                exclude_ids=exclude,
                gender=wanted,
                limit=self._page_size,
            )
        return [public_profile(doc) for doc in docs]

    async def list_matches(self, actor: UserDocument) -> List[PublicUser]:
        current = await self._users.get_by_id(actor.id)
        if not current:
            raise NotFoundError("User not found")
        docs = await self._users.list_public_by_ids(current.matches)
        return [public_profile(doc) for doc in docs]

    async def get_match_profile(self, user_id: Any) -> PublicUser:
        oid = parse_object_id(user_id, "user id")
        docs = await self._users.list_public_by_ids([oid])
        if not docs:
            raise NotFoundError("User not found")
        return public_profile(docs[0])


def get_matching_engine() -> MatchingEngine:
    settings = get_settings()
    return MatchingEngine(
        UserRepository(get_db()),
        page_size=settings.explore_page_size,
        max_distance_m=settings.explore_max_distance_m,
        client=get_client() if settings.match_transactions else None,
        use_transactions=settings.match_transactions,
    )


__all__ = ["MATCH_WRITE_ATTEMPTS", "MatchingEngine", "get_matching_engine"]
