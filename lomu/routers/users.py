from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..dependencies import get_current_user
from ..models.matching import LikeResponse, MatchOutcome, PassResponse
from ..models.user import (
    LocationResponse,
    LocationUpdateRequest,
    MessageResponse,
    OwnProfile,
    PhotosResponse,
    ProfileImageResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    PublicUser,
    SetGenderRequest,
    UserDocument,
)
from ..services.auth_service import get_location_rate_limiter
from ..services.matching_service import MatchingEngine, get_matching_engine
from ..services.profile_service import ImageUpload, ProfileService, get_profile_service

router = APIRouter(prefix="/users")


async def _read_upload(file: UploadFile) -> ImageUpload:
    data = await file.read()
    return ImageUpload(data=data, mime=file.content_type or "", filename=file.filename or "")


# Profile

@router.get("/view-profile", response_model=OwnProfile)
async def view_profile(
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    return await service.view_profile(current_user)


@router.put("/update-profile", response_model=ProfileUpdateResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    profile = await service.update_profile(
        current_user,
        bio=body.bio,
        gender=body.gender,
        date_of_birth=body.date_of_birth,
        interests=body.interests,
    )
    return ProfileUpdateResponse(message="Profile updated successfully", user=profile)


@router.put("/set-gender", response_model=ProfileUpdateResponse)
async def set_gender(
    body: SetGenderRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    profile = await service.set_gender(current_user, body.gender)
    return ProfileUpdateResponse(message="Gender set successfully", user=profile)


@router.post("/upload-profile", response_model=ProfileImageResponse)
async def upload_profile(
    image: Optional[UploadFile] = File(None),
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    upload = await _read_upload(image) if image is not None else None
    url = await service.upload_profile_image(current_user, upload)
    return ProfileImageResponse(message="Profile image updated successfully", url=url)


@router.post("/upload-photos", response_model=PhotosResponse)
async def upload_photos(
    images: Optional[List[UploadFile]] = File(None),
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    uploads = [await _read_upload(image) for image in images or []]
    result = await service.upload_photos(current_user, uploads)
    message = "Photos uploaded successfully"
    if result["replacedCount"]:
        message = f"Photos uploaded; {result['replacedCount']} oldest photo(s) replaced"
    return PhotosResponse(message=message, **result)


@router.delete("/photos/{photo_id}", response_model=PhotosResponse)
async def delete_photo(
    photo_id: str,
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    photos = await service.delete_photo(current_user, photo_id)
    return PhotosResponse(message="Photo deleted successfully", photos=photos)


@router.put("/location", response_model=LocationResponse)
async def update_location(
    body: LocationUpdateRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    if not get_location_rate_limiter().increment(str(current_user.id)):
        raise HTTPException(status_code=429, detail="Too many location updates, please wait a minute")
    label = await service.update_location(current_user, body.latitude, body.longitude)
    return LocationResponse(message="Location updated", readableLocation=label)


@router.delete("/delete-account", response_model=MessageResponse)
async def delete_account(
    current_user: UserDocument = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
):
    await service.delete_account(current_user)
    return MessageResponse(message="Account deleted successfully")


# Matching

@router.post("/like/{target_id}", response_model=LikeResponse)
async def like_user(
    target_id: str,
    current_user: UserDocument = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    outcome = await engine.like(current_user, target_id)
    if outcome is MatchOutcome.MATCHED:
        return LikeResponse(message="It's a match!", match=True)
    return LikeResponse(message="User liked", match=False)


@router.post("/pass/{target_id}", response_model=PassResponse)
async def pass_user(
    target_id: str,
    current_user: UserDocument = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    await engine.pass_(current_user, target_id)
    return PassResponse(message="User passed")


@router.get("/explore", response_model=List[PublicUser])
async def explore(
    gender: Optional[str] = None,
    current_user: UserDocument = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    return await engine.explore(current_user, gender)


@router.get("/matches", response_model=List[PublicUser])
async def list_matches(
    current_user: UserDocument = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    return await engine.list_matches(current_user)


@router.get("/match/{user_id}", response_model=PublicUser)
async def get_match(
    user_id: str,
    current_user: UserDocument = Depends(get_current_user),
    engine: MatchingEngine = Depends(get_matching_engine),
):
    return await engine.get_match_profile(user_id)
