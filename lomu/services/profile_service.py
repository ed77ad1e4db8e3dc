from __future__ import annotations

import logging
import time
import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from bson import ObjectId

from ..config import get_settings
from ..db import get_db
from ..errors import NotFoundError, ValidationError
from ..integrations import cloudinary as media
from ..integrations import geocoding
from ..models.identifiers import parse_object_id
from ..models.user import OwnProfile, Photo, PublicUser, UserDocument
from ..repositories.chat import ChatThreadRepository
from ..repositories.exceptions import NotFoundRepositoryError
from ..repositories.user import UserRepository

LOGGER = logging.getLogger("uvicorn.error")

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif", "image/heic"})
VALID_GENDERS = ("male", "female")
MAX_INTERESTS = 20
MAX_BIO_LENGTH = 500


class ImageUpload(NamedTuple):
    data: bytes
    mime: str
    filename: str = ""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def calculate_age(date_of_birth: Any, today: Optional[date] = None) -> Optional[int]:
    """Whole years since ``date_of_birth``, adjusted for whether the birthday has passed."""
    born = _as_date(date_of_birth)
    if born is None:
        return None
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def _document_dict(doc: Any) -> Dict[str, Any]:
    if isinstance(doc, UserDocument):
        return doc.model_dump(by_alias=True)
    return dict(doc)


def public_profile(doc: Any) -> PublicUser:
    data = _document_dict(doc)
    distance = data.get("distance")
    return PublicUser(
        _id=data["_id"],
        username=data.get("username", ""),
        bio=data.get("bio") or "",
        gender=data.get("gender"),
        dateOfBirth=_as_date(data.get("dateOfBirth")),
        age=calculate_age(data.get("dateOfBirth")),
        interests=list(data.get("interests") or []),
        locationName=data.get("locationName"),
        profileImage=data.get("profileImage") or "",
        photos=list(data.get("photos") or []),
        # $geoNear reports metres
        distance=round(distance / 1000.0, 1) if isinstance(distance, (int, float)) else None,
    )


def own_profile(user: UserDocument) -> OwnProfile:
    card = public_profile(user)
    return OwnProfile(
        **card.model_dump(by_alias=True),
        email=user.email,
        role=user.role,
        location=user.location,
        likes=list(user.likes),
        likesCount=len(user.likes),
        matchesCount=len(user.matches),
    )


def clean_interests(raw: Iterable[Any]) -> List[str]:
    seen: Dict[str, str] = {}
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError("Interests must be a list of strings")
        text = item.strip()
        if text and text.lower() not in seen:
            seen[text.lower()] = text
    if len(seen) > MAX_INTERESTS:
        raise ValidationError(f"At most {MAX_INTERESTS} interests are allowed")
    return list(seen.values())


def normalize_gender(raw: Any) -> str:
    text = str(raw or "").strip().lower()
    if text not in VALID_GENDERS:
        raise ValidationError("Gender must be male or female")
    return text


def _validate_image(upload: ImageUpload, max_bytes: int) -> None:
    if (upload.mime or "").lower() not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only image uploads are allowed")
    if not upload.data:
        raise ValidationError("Uploaded file is empty")
    if len(upload.data) > max_bytes:
        raise ValidationError(f"Image exceeds {max_bytes // (1024 * 1024)} MB limit")


class ProfileService:
    """Profile reads and writes for the authenticated user."""

    def __init__(
        self,
        users: UserRepository,
        chats: ChatThreadRepository,
        *,
        photo_limit: int,
        photos_per_upload: int,
        max_photo_bytes: int,
        profile_folder: str,
        photos_folder: str,
    ) -> None:
        self._users = users
        self._chats = chats
        self._photo_limit = photo_limit
        self._photos_per_upload = photos_per_upload
        self._max_photo_bytes = max_photo_bytes
        self._profile_folder = profile_folder
        self._photos_folder = photos_folder

    async def _reload(self, user_id: ObjectId) -> UserDocument:
        user = await self._users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def view_profile(self, user: UserDocument) -> OwnProfile:
        return own_profile(await self._reload(user.id))

    async def _set_once(self, user: UserDocument, field: str, value: Any, message: str) -> None:
        if not await self._users.set_once(user.id, field, value, updated_at=_now_ms()):
            raise ValidationError(message)

    async def update_profile(
        self,
        user: UserDocument,
        *,
        bio: Optional[str] = None,
        gender: Optional[str] = None,
        date_of_birth: Optional[str] = None,
        interests: Optional[List[str]] = None,
    ) -> OwnProfile:
        updates: Dict[str, Any] = {}
        if bio is not None:
            text = bio.strip()
            if len(text) > MAX_BIO_LENGTH:
                raise ValidationError(f"Bio must be {MAX_BIO_LENGTH} characters or fewer")
            updates["bio"] = text
        if interests is not None:
            updates["interests"] = clean_interests(interests)

        gender_value = normalize_gender(gender) if gender is not None else None
        born: Optional[date] = None
        if date_of_birth is not None:
            born = _as_date(date_of_birth)
            if born is None or born >= date.today():
                raise ValidationError("Invalid date of birth")

        # Reject write-once fields before touching anything else
        if gender_value is not None and user.gender:
            raise ValidationError("Gender can only be set once")
        if born is not None and user.date_of_birth:
            raise ValidationError("Date of birth can only be set once")

        if gender_value is not None:
            await self._set_once(user, "gender", gender_value, "Gender can only be set once")
        if born is not None:
            await self._set_once(user, "dateOfBirth", born.isoformat(), "Date of birth can only be set once")
        if updates:
            updates["updatedAt"] = _now_ms()
            try:
                await self._users.update_fields(user.id, updates)
            except NotFoundRepositoryError:
                raise NotFoundError("User not found") from None
        return own_profile(await self._reload(user.id))

    async def set_gender(self, user: UserDocument, gender: str) -> OwnProfile:
        value = normalize_gender(gender)
        if user.gender:
            raise ValidationError("Gender can only be set once")
        await self._set_once(user, "gender", value, "Gender can only be set once")
        return own_profile(await self._reload(user.id))

    async def upload_profile_image(self, user: UserDocument, upload: Optional[ImageUpload]) -> str:
        if upload is None:
            raise ValidationError("No file uploaded")
        _validate_image(upload, self._max_photo_bytes)
        stored = await media.upload_bytes(upload.data, mime=upload.mime, folder=self._profile_folder)
        previous = await self._users.replace_profile_image(
            user.id,
            url=stored["url"],
            public_id=stored["publicId"],
            updated_at=_now_ms(),
        )
        if previous is None:
            await media.destroy(stored["publicId"])
            raise NotFoundError("User not found")
        old_handle = previous.get("profileImageId")
        if old_handle and old_handle != stored["publicId"]:
            if not await media.destroy(old_handle):
                LOGGER.warning("Old profile image %s was not removed from storage", old_handle)
        return stored["url"]

    async def upload_photos(self, user: UserDocument, uploads: List[ImageUpload]) -> Dict[str, Any]:
        """Add gallery photos, evicting the oldest ones past the gallery limit.

        Returns ``{"photos", "remainingSlots", "replacedCount"}``. A failed upload removes the
        files stored so far and raises ``UpstreamError``.
        """
        if not uploads:
            raise ValidationError("No files uploaded")
        if len(uploads) > self._photos_per_upload:
            raise ValidationError(f"You can upload at most {self._photos_per_upload} photos at a time")
        for upload in uploads:
            _validate_image(upload, self._max_photo_bytes)

        stored: List[Dict[str, Any]] = []
        try:
            for upload in uploads:
                result = await media.upload_bytes(
                    upload.data,
                    mime=upload.mime,
                    folder=self._photos_folder,
                    transformation={"width": 1080, "crop": "limit"},
                )
                stored.append(
                    {
                        "photoId": uuid.uuid4().hex,
                        "url": result["url"],
                        "publicId": result["publicId"],
                        "createdAt": _now_ms(),
                    }
                )
        except Exception:
            for photo in stored:
                await media.destroy(photo["publicId"])
            raise

        outcome = await self._users.push_photos(
            user.id,
            stored,
            limit=self._photo_limit,
            updated_at=_now_ms(),
        )
        if outcome is None:
            for photo in stored:
                await media.destroy(photo["publicId"])
            raise NotFoundError("User not found")

        for photo in outcome["evicted"]:
            if not await media.destroy(photo.get("publicId")):
                LOGGER.warning("Evicted photo %s was not removed from storage", photo.get("publicId"))

        photos = [Photo(**photo) for photo in outcome["photos"]]
        return {
            "photos": photos,
            "remainingSlots": max(0, self._photo_limit - len(photos)),
            "replacedCount": len(outcome["evicted"]),
        }

    async def delete_photo(self, user: UserDocument, photo_id: str) -> List[Photo]:
        removed = await self._users.pull_photo(user.id, photo_id, updated_at=_now_ms())
        if removed is None:
            raise NotFoundError("Photo not found")
        if not await media.destroy(removed.get("publicId")):
            LOGGER.warning("Deleted photo %s was not removed from storage", removed.get("publicId"))
        refreshed = await self._reload(user.id)
        return list(refreshed.photos)

    async def update_location(self, user: UserDocument, latitude: float, longitude: float) -> str:
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValidationError("Invalid coordinates")
        label = await geocoding.reverse_geocode(latitude, longitude)
        try:
            await self._users.update_fields(
                user.id,
                {
                    # GeoJSON order is [longitude, latitude]
                    "location": {"type": "Point", "coordinates": [longitude, latitude]},
                    "locationName": label,
                    "updatedAt": _now_ms(),
                },
            )
        except NotFoundRepositoryError:
            raise NotFoundError("User not found") from None
        return label

    async def get_public_profile(self, user_id: Any) -> PublicUser:
        oid = parse_object_id(user_id, "user id")
        docs = await self._users.list_public_by_ids([oid])
        if not docs:
            raise NotFoundError("User not found")
        return public_profile(docs[0])

    async def delete_account(self, user: UserDocument) -> None:
        current = await self._reload(user.id)
        if not await self._users.delete_user(current.id):
            raise NotFoundError("User not found")
        pruned = await self._users.prune_references(current.id)
        await self._chats.delete_for_user(current.id)
        handles = [current.profile_image_id] + [photo.public_id for photo in current.photos]
        for handle in handles:
            if handle:
                await media.destroy(handle)
        LOGGER.info("Deleted account %s (pruned %d references)", current.id, pruned)


def get_profile_service() -> ProfileService:
    settings = get_settings()
    db = get_db()
    return ProfileService(
        UserRepository(db),
        ChatThreadRepository(db),
        photo_limit=settings.photo_limit,
        photos_per_upload=settings.photos_per_upload,
        max_photo_bytes=settings.max_photo_bytes,
        profile_folder=settings.cloudinary_profile_folder,
        photos_folder=settings.cloudinary_photos_folder,
    )


__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "ImageUpload",
    "ProfileService",
    "calculate_age",
    "clean_interests",
    "get_profile_service",
    "normalize_gender",
    "own_profile",
    "public_profile",
]
