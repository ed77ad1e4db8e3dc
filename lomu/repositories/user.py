"""Repository helpers for the ``users`` collection (the user directory)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import USERS_COLLECTION
from ..models.user import UserDocument
from .exceptions import DuplicateKeyRepositoryError, NotFoundRepositoryError

LOGGER = logging.getLogger("uvicorn.error")

# Never leave the repository in documents meant for other users
SECRET_PROJECTION: Dict[str, int] = {
    "passwordHash": 0,
    "resetPasswordToken": 0,
    "resetPasswordExpires": 0,
}

RELATION_FIELDS = ("likes", "passes", "matches")


def _session_kwargs(session: Optional[AsyncIOMotorClientSession]) -> Dict[str, Any]:
    return {"session": session} if session is not None else {}


class UserRepository:
    """Thin abstraction over the users MongoDB collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[USERS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        created_at: int,
        updated_at: int,
        role: str = "user",
    ) -> UserDocument:
        """Insert a new user document with empty profile and relation arrays."""

        doc = {
            "_id": ObjectId(),
            "username": username,
            "usernameLower": username.lower(),
            "email": email,
            "emailLower": email.lower(),
            "passwordHash": password_hash,
            "role": role,
            "profileImage": "",
            "bio": "",
            "interests": [],
            "photos": [],
            "likes": [],
            "passes": [],
            "matches": [],
            "createdAt": created_at,
            "updatedAt": updated_at,
        }
        try:
            await self._collection.insert_one(doc)
        except DuplicateKeyError as exc:
            error = DuplicateKeyRepositoryError.from_driver(exc, ("email", "username"), label="user")
            LOGGER.debug("Duplicate user insertion for %s", error.field or "unknown key")
            raise error from exc
        return UserDocument(**doc)

    async def get_by_id(self, user_id: ObjectId) -> Optional[UserDocument]:
        doc = await self._collection.find_one({"_id": user_id})
        return UserDocument(**doc) if doc else None

    async def get_by_username(self, username: str) -> Optional[UserDocument]:
        doc = await self._collection.find_one({"usernameLower": username.lower()})
        return UserDocument(**doc) if doc else None

    async def get_by_email(self, email: str) -> Optional[UserDocument]:
        doc = await self._collection.find_one({"emailLower": email.lower()})
        return UserDocument(**doc) if doc else None

    async def get_by_reset_token(self, token_hash: str, *, now_ms: int) -> Optional[UserDocument]:
        doc = await self._collection.find_one(
            {"resetPasswordToken": token_hash, "resetPasswordExpires": {"$gt": now_ms}}
        )
        return UserDocument(**doc) if doc else None

    async def exists(self, user_id: ObjectId) -> bool:
        doc = await self._collection.find_one({"_id": user_id}, projection={"_id": 1})
        return doc is not None

    async def username_exists(self, username: str) -> bool:
        doc = await self._collection.find_one({"usernameLower": username.lower()}, projection={"_id": 1})
        return doc is not None

    async def email_exists(self, email: str) -> bool:
        doc = await self._collection.find_one({"emailLower": email.lower()}, projection={"_id": 1})
        return doc is not None

    async def list_public_by_ids(self, user_ids: Sequence[ObjectId]) -> List[Dict[str, Any]]:
        """Fetch documents for ``user_ids`` without secrets, preserving the input order."""

        if not user_ids:
            return []
        cursor = self._collection.find({"_id": {"$in": list(user_ids)}}, projection=SECRET_PROJECTION)
        by_id = {doc["_id"]: doc async for doc in cursor}
        return [by_id[uid] for uid in user_ids if uid in by_id]

    async def usernames_for(self, user_ids: Iterable[ObjectId]) -> Dict[ObjectId, str]:
        ids = list({uid for uid in user_ids if uid is not None})
        if not ids:
            return {}
        cursor = self._collection.find({"_id": {"$in": ids}}, projection={"_id": 1, "username": 1})
        return {doc["_id"]: doc.get("username") async for doc in cursor}

    async def update_fields(
        self,
        user_id: ObjectId,
        updates: Dict[str, Any],
        *,
        unset: Optional[Iterable[str]] = None,
    ) -> UserDocument:
        """Apply a field-level ``$set`` (and optional ``$unset``) and return the new document."""

        operation: Dict[str, Any] = {"$set": updates}
        unset_fields = list(unset or [])
        if unset_fields:
            operation["$unset"] = {field: "" for field in unset_fields}
        result = await self._collection.find_one_and_update(
            {"_id": user_id},
            operation,
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            raise NotFoundRepositoryError("user not found")
        return UserDocument(**result)

    async def set_once(self, user_id: ObjectId, field: str, value: Any, *, updated_at: int) -> bool:
        """Set ``field`` only while it is still unset. Returns False if it already had a value."""

        result = await self._collection.update_one(
            {"_id": user_id, field: None},
            {"$set": {field: value, "updatedAt": updated_at}},
        )
        return result.matched_count == 1

    async def push_unique(
        self,
        user_id: ObjectId,
        field: str,
        value: ObjectId,
        *,
        updated_at: int,
    ) -> bool:
        """Append ``value`` to the array ``field`` unless it is already present.

        The membership check and the append happen in one single-document update.
        """

        result = await self._collection.update_one(
            {"_id": user_id, field: {"$ne": value}},
            {"$push": {field: value}, "$set": {"updatedAt": updated_at}},
        )
        return result.matched_count == 1

    async def contains(
        self,
        user_id: ObjectId,
        field: str,
        value: ObjectId,
        *,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> bool:
        doc = await self._collection.find_one(
            {"_id": user_id, field: value},
            projection={"_id": 1},
            **_session_kwargs(session),
        )
        return doc is not None

    async def add_to_set(
        self,
        user_id: ObjectId,
        field: str,
        value: ObjectId,
        *,
        updated_at: int,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> bool:
        result = await self._collection.update_one(
            {"_id": user_id},
            {"$addToSet": {field: value}, "$set": {"updatedAt": updated_at}},
            **_session_kwargs(session),
        )
        return result.matched_count == 1

    async def pull(
        self,
        user_id: ObjectId,
        field: str,
        value: Any,
        *,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> bool:
        result = await self._collection.update_one(
            {"_id": user_id},
            {"$pull": {field: value}},
            **_session_kwargs(session),
        )
        return bool(result.modified_count)

    async def find_candidates(
        self,
        *,
        exclude_ids: Sequence[ObjectId],
        gender: Optional[str],
        limit: int,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"_id": {"$nin": list(exclude_ids)}}
        if gender:
            query["gender"] = gender
        cursor = (
            self._collection.find(query, projection=SECRET_PROJECTION)
            .sort("_id", ASCENDING)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def find_candidates_near(
        self,
        *,
        coordinates: Sequence[float],
        exclude_ids: Sequence[ObjectId],
        gender: Optional[str],
        limit: int,
        max_distance_m: int,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"_id": {"$nin": list(exclude_ids)}}
        if gender:
            query["gender"] = gender
        pipeline = [
            {
                "$geoNear": {
                    "near": {"type": "Point", "coordinates": list(coordinates)},
                    "distanceField": "distance",
                    "spherical": True,
                    "maxDistance": max_distance_m,
                    "query": query,
                }
            },
            {"$limit": limit},
            {"$project": SECRET_PROJECTION},
        ]
        return await self._collection.aggregate(pipeline).to_list(length=limit)

    async def push_photos(
        self,
        user_id: ObjectId,
        photos: Sequence[Dict[str, Any]],
        *,
        limit: int,
        updated_at: int,
    ) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        """Append ``photos`` keeping only the newest ``limit`` entries.

        Returns ``{"photos": [...], "evicted": [...]}`` computed from the pre-image of the
        same update, or None when the user does not exist.
        """

        before = await self._collection.find_one_and_update(
            {"_id": user_id},
            {
                "$push": {"photos": {"$each": list(photos), "$slice": -limit}},
                "$set": {"updatedAt": updated_at},
            },
            projection={"photos": 1},
            return_document=ReturnDocument.BEFORE,
        )
        if before is None:
            return None
        combined = list(before.get("photos") or []) + list(photos)
        overflow = max(0, len(combined) - limit)
        return {"photos": combined[overflow:], "evicted": combined[:overflow]}

    async def replace_profile_image(
        self,
        user_id: ObjectId,
        *,
        url: str,
        public_id: str,
        updated_at: int,
    ) -> Optional[Dict[str, Any]]:
        """Swap the profile image and return the previous ``{profileImage, profileImageId}``."""

        before = await self._collection.find_one_and_update(
            {"_id": user_id},
            {"$set": {"profileImage": url, "profileImageId": public_id, "updatedAt": updated_at}},
            projection={"profileImage": 1, "profileImageId": 1},
            return_document=ReturnDocument.BEFORE,
        )
        return before

    async def pull_photo(self, user_id: ObjectId, photo_id: str, *, updated_at: int) -> Optional[Dict[str, Any]]:
        """Atomically remove a gallery photo by its stable id and return the removed entry."""

        before = await self._collection.find_one_and_update(
            {"_id": user_id, "photos.photoId": photo_id},
            {"$pull": {"photos": {"photoId": photo_id}}, "$set": {"updatedAt": updated_at}},
            return_document=ReturnDocument.BEFORE,
        )
        if not before:
            return None
        return next(
            (photo for photo in before.get("photos") or [] if photo.get("photoId") == photo_id),
            None,
        )

    async def delete_user(self, user_id: ObjectId) -> bool:
        result = await self._collection.delete_one({"_id": user_id})
        return bool(result.deleted_count)

    async def prune_references(self, user_id: ObjectId) -> int:
        """Remove ``user_id`` from every other user's likes, passes and matches."""

        result = await self._collection.update_many(
            {"$or": [{field: user_id} for field in RELATION_FIELDS]},
            {"$pull": {field: user_id for field in RELATION_FIELDS}},
        )
        return result.modified_count

    async def promote_admins(self, usernames: Iterable[str]) -> int:
        lowered = [name.lower() for name in usernames if name]
        if not lowered:
            return 0
        result = await self._collection.update_many(
            {"usernameLower": {"$in": lowered}, "role": {"$ne": "admin"}},
            {"$set": {"role": "admin"}},
        )
        return result.modified_count


__all__ = ["RELATION_FIELDS", "SECRET_PROJECTION", "UserRepository"]
