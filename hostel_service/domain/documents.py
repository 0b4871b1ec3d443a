"""
Coercion between raw store documents and domain records

Documents coming back from the store are untyped. Everything downstream
works with the typed records built here; a document that cannot be coerced
raises MalformedRecordError.
"""
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import MalformedRecordError
from .models import (
    Amenity, Availability, ContactInfo, Gender, GeoPoint, Hostel, HostelImage,
    PaymentPeriod, PriceRange, Review, RoomType, StayDuration, UserProfile, UserRole,
)


def _document_id(document: Dict[str, Any]) -> Optional[str]:
    raw = document.get("_id", document.get("id"))
    return str(raw) if raw is not None else None


def _required(document: Dict[str, Any], name: str, doc_id: Optional[str]) -> Any:
    value = document.get(name)
    if value is None:
        raise MalformedRecordError(doc_id, f"missing field '{name}'")
    return value


def _number(value: Any, name: str, doc_id: Optional[str], default: Any = None):
    if value is None:
        if default is None:
            raise MalformedRecordError(doc_id, f"missing field '{name}'")
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(doc_id, f"field '{name}' is not numeric")
    return value


def _enum(enum_cls, value: Any, name: str, doc_id: Optional[str], default=None):
    if value is None and default is not None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        raise MalformedRecordError(doc_id, f"field '{name}' has unknown value {value!r}")


def _mapping(value: Any, name: str, doc_id: Optional[str]) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedRecordError(doc_id, f"field '{name}' is not an object")
    return value


def _sequence(value: Any, name: str, doc_id: Optional[str]) -> list:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise MalformedRecordError(doc_id, f"field '{name}' is not a list")
    return list(value)


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def hostel_from_document(document: Dict[str, Any]) -> Hostel:
    """Validate and coerce a hostel document"""
    if not isinstance(document, dict):
        raise MalformedRecordError(None, "document is not a mapping")
    doc_id = _document_id(document)
    if doc_id is None:
        raise MalformedRecordError(None, "missing id")

    coordinates = _required(document, "coordinates", doc_id)
    price = _required(document, "price_range", doc_id)
    if not isinstance(coordinates, dict) or not isinstance(price, dict):
        raise MalformedRecordError(doc_id, "coordinates and price_range must be objects")

    price_min = _number(price.get("min"), "price_range.min", doc_id)
    price_max = _number(price.get("max"), "price_range.max", doc_id)
    if price_min > price_max:
        raise MalformedRecordError(doc_id, "price_range.min exceeds price_range.max")

    contact = _mapping(document.get("contact_info"), "contact_info", doc_id)
    phones = _sequence(contact.get("phone"), "contact_info.phone", doc_id)
    images = []
    for image in _sequence(document.get("images"), "images", doc_id):
        if not isinstance(image, dict) or not image.get("url"):
            continue
        images.append(HostelImage(
            url=image["url"],
            public_id=image.get("public_id", ""),
            caption=image.get("caption"),
            is_primary=bool(image.get("is_primary", False)),
            uploaded_at=_timestamp(image.get("uploaded_at")),
        ))

    amenities = []
    for tag in _sequence(document.get("amenities"), "amenities", doc_id):
        try:
            amenities.append(Amenity(tag))
        except ValueError:
            continue

    return Hostel(
        id=doc_id,
        name=str(_required(document, "name", doc_id)),
        location=str(_required(document, "location", doc_id)),
        coordinates=GeoPoint(
            latitude=float(_number(coordinates.get("latitude"), "coordinates.latitude", doc_id)),
            longitude=float(_number(coordinates.get("longitude"), "coordinates.longitude", doc_id)),
        ),
        gender=_enum(Gender, document.get("gender"), "gender", doc_id),
        price_range=PriceRange(
            min=int(price_min),
            max=int(price_max),
            currency=price.get("currency", "GHS"),
        ),
        description=document.get("description", ""),
        address=document.get("address", ""),
        room_type=_enum(RoomType, document.get("room_type"), "room_type", doc_id, RoomType.SHARED),
        rooms=int(_number(document.get("rooms"), "rooms", doc_id, 0)),
        occupants_per_room=int(_number(document.get("occupants_per_room"), "occupants_per_room", doc_id, 1)),
        payment_period=_enum(
            PaymentPeriod, document.get("payment_period"), "payment_period", doc_id, PaymentPeriod.SEMESTER
        ),
        deposit=document.get("deposit"),
        amenities=tuple(amenities),
        contact_info=ContactInfo(
            phone=tuple(str(p) for p in phones),
            email=contact.get("email"),
            whatsapp=contact.get("whatsapp"),
            website=contact.get("website"),
        ),
        images=tuple(images),
        average_rating=float(_number(document.get("average_rating"), "average_rating", doc_id, 0.0)),
        review_count=int(_number(document.get("review_count"), "review_count", doc_id, 0)),
        favorite_count=int(_number(document.get("favorite_count"), "favorite_count", doc_id, 0)),
        views=int(_number(document.get("views"), "views", doc_id, 0)),
        availability=_enum(
            Availability, document.get("availability"), "availability", doc_id, Availability.AVAILABLE
        ),
        featured=bool(document.get("featured", False)),
        verified=bool(document.get("verified", False)),
        created_at=_timestamp(document.get("created_at")),
        updated_at=_timestamp(document.get("updated_at")),
        created_by=document.get("created_by"),
    )


def hostel_to_document(hostel: Hostel) -> Dict[str, Any]:
    """Inverse of hostel_from_document; the computed distance is not stored"""
    data = asdict(hostel)
    data.pop("distance", None)
    data["_id"] = data.pop("id")
    data["gender"] = hostel.gender.value
    data["room_type"] = hostel.room_type.value
    data["payment_period"] = hostel.payment_period.value
    data["availability"] = hostel.availability.value
    data["amenities"] = [a.value for a in hostel.amenities]
    data["contact_info"]["phone"] = list(hostel.contact_info.phone)
    data["images"] = [dict(image) for image in data["images"]]
    return data


def review_from_document(document: Dict[str, Any]) -> Review:
    """Validate and coerce a review document"""
    doc_id = _document_id(document)
    if doc_id is None:
        raise MalformedRecordError(None, "missing id")
    rating = _number(document.get("rating"), "rating", doc_id)
    if not 1 <= rating <= 5:
        raise MalformedRecordError(doc_id, "rating out of range")
    return Review(
        id=doc_id,
        hostel_id=str(_required(document, "hostel_id", doc_id)),
        user_id=str(_required(document, "user_id", doc_id)),
        user_name=document.get("user_name") or "Anonymous",
        rating=int(rating),
        comment=document.get("comment", ""),
        user_avatar=document.get("user_avatar"),
        date_stayed=_timestamp(document.get("date_stayed")),
        duration=_enum(StayDuration, document.get("duration"), "duration", doc_id, StayDuration.SEMESTER),
        room_type=document.get("room_type"),
        verified=bool(document.get("verified", False)),
        helpful=int(_number(document.get("helpful"), "helpful", doc_id, 0)),
        reported=bool(document.get("reported", False)),
        created_at=_timestamp(document.get("created_at")),
        updated_at=_timestamp(document.get("updated_at")),
    )


def review_to_document(review: Review) -> Dict[str, Any]:
    data = asdict(review)
    data["_id"] = data.pop("id")
    data["duration"] = review.duration.value
    return data


def user_from_document(document: Dict[str, Any]) -> UserProfile:
    """Validate and coerce a user profile document"""
    doc_id = _document_id(document)
    if doc_id is None:
        raise MalformedRecordError(None, "missing id")
    return UserProfile(
        id=doc_id,
        email=str(_required(document, "email", doc_id)),
        name=document.get("name", ""),
        role=_enum(UserRole, document.get("role"), "role", doc_id, UserRole.USER),
        student_id=document.get("student_id"),
        phone=document.get("phone"),
        avatar=document.get("avatar"),
        favorite_count=int(_number(document.get("favorite_count"), "favorite_count", doc_id, 0)),
        review_count=int(_number(document.get("review_count"), "review_count", doc_id, 0)),
        created_at=_timestamp(document.get("created_at")),
        last_login=_timestamp(document.get("last_login")),
    )


def user_to_document(user: UserProfile) -> Dict[str, Any]:
    data = asdict(user)
    data["_id"] = data.pop("id")
    data["role"] = user.role.value
    return data
