from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import ObjectIdList, PyObjectId

Gender = Literal["male", "female"]
Role = Literal["user", "admin"]


class Photo(BaseModel):
    """Gallery photo with a stable identifier and its storage handle."""

    model_config = ConfigDict(populate_by_name=True)

    photo_id: str = Field(alias="photoId")
    url: str
    public_id: str = Field(alias="publicId")
    created_at: int = Field(alias="createdAt")


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)


class UserDocument(BaseModel):
    """Canonical representation of a user document stored in MongoDB."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    username: str
    username_lower: str = Field(alias="usernameLower")
    email: str
    email_lower: str = Field(alias="emailLower")
    password_hash: str = Field(alias="passwordHash")
    role: Role = "user"
    profile_image: str = Field(default="", alias="profileImage")
    profile_image_id: Optional[str] = Field(default=None, alias="profileImageId")
    bio: str = ""
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = Field(default=None, alias="dateOfBirth")
    location: Optional[GeoPoint] = None
    location_name: Optional[str] = Field(default=None, alias="locationName")
    interests: List[str] = Field(default_factory=list)
    photos: List[Photo] = Field(default_factory=list)
    likes: ObjectIdList = Field(default_factory=list)
    passes: ObjectIdList = Field(default_factory=list)
    matches: ObjectIdList = Field(default_factory=list)
    reset_password_token: Optional[str] = Field(default=None, alias="resetPasswordToken")
    reset_password_expires: Optional[int] = Field(default=None, alias="resetPasswordExpires")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class PublicUser(BaseModel):
    """Profile card shown to other users."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: PyObjectId = Field(alias="_id")
    username: str
    bio: str = ""
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = Field(default=None, alias="dateOfBirth")
    age: Optional[int] = None
    interests: List[str] = Field(default_factory=list)
    location_name: Optional[str] = Field(default=None, alias="locationName")
    profile_image: str = Field(default="", alias="profileImage")
    photos: List[Photo] = Field(default_factory=list)
    distance: Optional[float] = None


class OwnProfile(PublicUser):
    """The authenticated user's own profile."""

    email: str
    role: Role = "user"
    location: Optional[GeoPoint] = None
    likes: ObjectIdList = Field(default_factory=list)
    likes_count: int = Field(default=0, alias="likesCount")
    matches_count: int = Field(default=0, alias="matchesCount")


class UserRegisterRequest(BaseModel):
    """Payload for creating a new account."""

    username: str = ""
    email: str = ""
    password: str = ""


class UserLoginRequest(BaseModel):
    """Credentials provided during login; either email or username identifies the account."""

    email: Optional[str] = None
    username: Optional[str] = None
    password: str = ""


class AuthTokenResponse(BaseModel):
    """Response envelope for authentication endpoints."""

    token: str
    user: OwnProfile


class ProfileUpdateRequest(BaseModel):
    """Mutable profile fields; gender and date of birth are write-once."""

    model_config = ConfigDict(populate_by_name=True)

    bio: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
    interests: Optional[List[str]] = None


class SetGenderRequest(BaseModel):
    gender: str


class LocationUpdateRequest(BaseModel):
    latitude: float
    longitude: float


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class ResetPasswordRequest(BaseModel):
    password: str = ""


class MessageResponse(BaseModel):
    message: str


class ProfileUpdateResponse(BaseModel):
    message: str
    user: OwnProfile


class ProfileImageResponse(BaseModel):
    message: str
    url: str


class PhotosResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    photos: List[Photo]
    remaining_slots: Optional[int] = Field(default=None, alias="remainingSlots")
    replaced_count: Optional[int] = Field(default=None, alias="replacedCount")


class LocationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    readable_location: str = Field(alias="readableLocation")


__all__ = [
    "AuthTokenResponse",
    "ForgotPasswordRequest",
    "Gender",
    "GeoPoint",
    "LocationResponse",
    "LocationUpdateRequest",
    "MessageResponse",
    "OwnProfile",
    "Photo",
    "PhotosResponse",
    "ProfileImageResponse",
    "ProfileUpdateRequest",
    "ProfileUpdateResponse",
    "PublicUser",
    "ResetPasswordRequest",
    "Role",
    "SetGenderRequest",
    "UserDocument",
    "UserLoginRequest",
    "UserRegisterRequest",
]
