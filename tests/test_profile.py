from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

import pytest
from bson import ObjectId

from lomu.db import get_db
from lomu.errors import UpstreamError, ValidationError
from lomu.repositories.chat import ChatThreadRepository
from lomu.repositories.user import UserRepository
from lomu.services.profile_service import ImageUpload, ProfileService, calculate_age


class FakeStorage:
    def __init__(self) -> None:
        self.uploaded: List[str] = []
        self.destroyed: List[str] = []
        self.fail_after: int = -1

    async def upload_bytes(self, data: bytes, *, mime: str, folder: str, **extra: Any) -> Dict[str, str]:
        if self.fail_after >= 0 and len(self.uploaded) >= self.fail_after:
            raise UpstreamError("Photo upload failed")
        public_id = f"{folder}/img{len(self.uploaded)}"
        self.uploaded.append(public_id)
        return {"url": f"https://cdn.test/{public_id}.jpg", "publicId": public_id}

    async def destroy(self, public_id) -> bool:
        self.destroyed.append(public_id)
        return True


@pytest.fixture
def storage(monkeypatch: pytest.MonkeyPatch) -> FakeStorage:
    fake = FakeStorage()
    monkeypatch.setattr("lomu.integrations.cloudinary.upload_bytes", fake.upload_bytes)
    monkeypatch.setattr("lomu.integrations.cloudinary.destroy", fake.destroy)
    return fake


def _service(photo_limit: int = 3) -> ProfileService:
    db = get_db()
    return ProfileService(
        UserRepository(db),
        ChatThreadRepository(db),
        photo_limit=photo_limit,
        photos_per_upload=5,
        max_photo_bytes=1024,
        profile_folder="profiles",
        photos_folder="gallery",
    )


def _image(name: str = "a.jpg") -> ImageUpload:
    return ImageUpload(data=b"\xff\xd8fake", mime="image/jpeg", filename=name)


def test_calculate_age_respects_birthday() -> None:
    today = date(2024, 6, 15)
    assert calculate_age("2000-06-15", today) == 24
    assert calculate_age("2000-06-16", today) == 23
    assert calculate_age(date(1990, 1, 1), today) == 34
    assert calculate_age(None, today) is None
    assert calculate_age("garbage", today) is None


@pytest.mark.asyncio
async def test_gender_and_birth_date_are_write_once(api_client, make_user) -> None:
    alice = await make_user("alice")
    first = await api_client.put(
        "/api/users/update-profile",
        json={"bio": " hi ", "gender": "Female", "dateOfBirth": "1995-04-02", "interests": ["Music", "music ", "art"]},
        headers=alice["headers"],
    )
    assert first.status_code == 200
    user = first.json()["user"]
    assert user["bio"] == "hi"
    assert user["gender"] == "female"
    assert user["dateOfBirth"] == "1995-04-02"
    assert user["age"] == calculate_age("1995-04-02")
    assert user["interests"] == ["Music", "art"]

    gender_again = await api_client.put(
        "/api/users/update-profile", json={"gender": "male"}, headers=alice["headers"]
    )
    assert gender_again.status_code == 400
    assert gender_again.json()["message"] == "Gender can only be set once"

    dob_again = await api_client.put(
        "/api/users/update-profile", json={"dateOfBirth": "1990-01-01"}, headers=alice["headers"]
    )
    assert dob_again.status_code == 400
    assert dob_again.json()["message"] == "Date of birth can only be set once"

    bio_only = await api_client.put("/api/users/update-profile", json={"bio": "new"}, headers=alice["headers"])
    assert bio_only.status_code == 200
    assert bio_only.json()["user"]["gender"] == "female"


@pytest.mark.asyncio
async def test_set_gender_validates_and_is_write_once(api_client, make_user) -> None:
    alice = await make_user("alice")
    bad = await api_client.put("/api/users/set-gender", json={"gender": "other"}, headers=alice["headers"])
    assert bad.status_code == 400

    ok = await api_client.put("/api/users/set-gender", json={"gender": "female"}, headers=alice["headers"])
    assert ok.status_code == 200
    assert ok.json()["user"]["gender"] == "female"

    again = await api_client.put("/api/users/set-gender", json={"gender": "male"}, headers=alice["headers"])
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_view_profile_reports_counts(api_client, make_user) -> None:
    alice = await make_user("alice")
    bob = await make_user("bob")
    await api_client.post(f"/api/users/like/{bob['id']}", headers=alice["headers"])

    resp = await api_client.get("/api/users/view-profile", headers=alice["headers"])
    body = resp.json()
    assert body["email"] == "alice@x.com"
    assert body["likesCount"] == 1
    assert body["likes"] == [bob["id"]]
    assert body["matchesCount"] == 0
    assert "passwordHash" not in body


@pytest.mark.asyncio
async def test_upload_photos_evicts_oldest_past_limit(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    service = _service(photo_limit=3)
    user = await UserRepository(get_db()).get_by_id(ObjectId(alice["id"]))

    first = await service.upload_photos(user, [_image(), _image()])
    assert first["remainingSlots"] == 1
    assert first["replacedCount"] == 0

    second = await service.upload_photos(user, [_image(), _image()])
    assert second["replacedCount"] == 1
    assert second["remainingSlots"] == 0
    kept = [photo.public_id for photo in second["photos"]]
    assert kept == ["gallery/img1", "gallery/img2", "gallery/img3"]
    assert storage.destroyed == ["gallery/img0"]

    doc = await get_db()["users"].find_one({"_id": ObjectId(alice["id"])})
    assert [p["publicId"] for p in doc["photos"]] == kept


@pytest.mark.asyncio
async def test_failed_upload_removes_already_stored_files(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    service = _service()
    user = await UserRepository(get_db()).get_by_id(ObjectId(alice["id"]))
    storage.fail_after = 1

    with pytest.raises(UpstreamError):
        await service.upload_photos(user, [_image(), _image()])
    assert storage.destroyed == ["gallery/img0"]
    doc = await get_db()["users"].find_one({"_id": ObjectId(alice["id"])})
    assert doc["photos"] == []


@pytest.mark.asyncio
async def test_upload_validation(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    service = _service()
    user = await UserRepository(get_db()).get_by_id(ObjectId(alice["id"]))

    with pytest.raises(ValidationError):
        await service.upload_photos(user, [])
    with pytest.raises(ValidationError):
        await service.upload_photos(user, [_image() for _ in range(6)])
    with pytest.raises(ValidationError):
        await service.upload_photos(user, [ImageUpload(data=b"x", mime="application/pdf")])
    with pytest.raises(ValidationError):
        await service.upload_photos(user, [ImageUpload(data=b"x" * 2048, mime="image/png")])
    assert storage.uploaded == []


@pytest.mark.asyncio
async def test_photo_routes_upload_and_delete_by_id(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    files = [
        ("images", ("one.jpg", b"\xff\xd8one", "image/jpeg")),
        ("images", ("two.png", b"\x89PNGtwo", "image/png")),
    ]
    uploaded = await api_client.post("/api/users/upload-photos", files=files, headers=alice["headers"])
    assert uploaded.status_code == 200, uploaded.text
    photos = uploaded.json()["photos"]
    assert len(photos) == 2
    assert uploaded.json()["remainingSlots"] == 16

    target = photos[0]["photoId"]
    deleted = await api_client.delete(f"/api/users/photos/{target}", headers=alice["headers"])
    assert deleted.status_code == 200
    assert [p["photoId"] for p in deleted.json()["photos"]] == [photos[1]["photoId"]]
    assert storage.destroyed == [photos[0]["publicId"]]

    again = await api_client.delete(f"/api/users/photos/{target}", headers=alice["headers"])
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_profile_image_replaces_previous(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    first = await api_client.post(
        "/api/users/upload-profile",
        files={"image": ("me.jpg", b"\xff\xd8me", "image/jpeg")},
        headers=alice["headers"],
    )
    assert first.status_code == 200
    assert first.json()["url"] == "https://cdn.test/profiles/img0.jpg"
    assert storage.destroyed == []

    second = await api_client.post(
        "/api/users/upload-profile",
        files={"image": ("me2.jpg", b"\xff\xd8me2", "image/jpeg")},
        headers=alice["headers"],
    )
    assert second.status_code == 200
    assert storage.destroyed == ["profiles/img0"]

    missing = await api_client.post("/api/users/upload-profile", headers=alice["headers"])
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_update_location_uses_geocoder_label(api_client, make_user, monkeypatch) -> None:
    calls: List[tuple] = []

    async def _fake_reverse(lat: float, lon: float) -> str:
        calls.append((lat, lon))
        return "Nairobi"

    monkeypatch.setattr("lomu.integrations.geocoding.reverse_geocode", _fake_reverse)
    alice = await make_user("alice")

    resp = await api_client.put(
        "/api/users/location", json={"latitude": -1.2921, "longitude": 36.8219}, headers=alice["headers"]
    )
    assert resp.status_code == 200
    assert resp.json() == {"message": "Location updated", "readableLocation": "Nairobi"}
    doc = await get_db()["users"].find_one({"_id": ObjectId(alice["id"])})
    assert doc["location"] == {"type": "Point", "coordinates": [36.8219, -1.2921]}
    assert doc["locationName"] == "Nairobi"

    bad = await api_client.put("/api/users/location", json={"latitude": 91, "longitude": 0}, headers=alice["headers"])
    assert bad.status_code == 400
    assert calls == [(-1.2921, 36.8219)]


@pytest.mark.asyncio
async def test_location_updates_are_rate_limited(api_client, make_user, monkeypatch) -> None:
    async def _fake_reverse(lat: float, lon: float) -> str:
        return "Somewhere"

    monkeypatch.setattr("lomu.integrations.geocoding.reverse_geocode", _fake_reverse)
    alice = await make_user("alice")
    statuses = []
    for _ in range(4):
        resp = await api_client.put(
            "/api/users/location", json={"latitude": 1.0, "longitude": 1.0}, headers=alice["headers"]
        )
        statuses.append(resp.status_code)
    assert statuses == [200, 200, 200, 429]


@pytest.mark.asyncio
async def test_delete_account_prunes_every_reference(api_client, make_user, storage) -> None:
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    dave = await make_user("dave")

    await api_client.post(f"/api/users/like/{alice['id']}", headers=bob["headers"])
    await api_client.post(f"/api/users/pass/{alice['id']}", headers=carol["headers"])
    await api_client.post(f"/api/users/like/{dave['id']}", headers=alice["headers"])
    await api_client.post(f"/api/users/like/{alice['id']}", headers=dave["headers"])
    await api_client.post("/api/chatAdmin/send", json={"message": "hello"}, headers=alice["headers"])

    resp = await api_client.delete("/api/users/delete-account", headers=alice["headers"])
    assert resp.status_code == 200

    alice_oid = ObjectId(alice["id"])
    users = get_db()["users"]
    assert await users.find_one({"_id": alice_oid}) is None
    for field in ("likes", "passes", "matches"):
        assert await users.count_documents({field: alice_oid}) == 0
    assert await get_db()["userchats"].count_documents({"userId": alice_oid}) == 0

    gone = await api_client.get("/api/users/view-profile", headers=alice["headers"])
    assert gone.status_code == 401
