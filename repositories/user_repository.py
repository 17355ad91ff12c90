"""
UserRepository: all MongoDB access for the `users` collection.

Every mutation the auth flows depend on is a single database operation so
that concurrent requests cannot interleave between a read and a write:

- login success        → one update_one ($set + $unset + $push/$slice)
- refresh rotation     → one find_one_and_update with an aggregation pipeline
- failed-login counter → one find_one_and_update ($inc, returns new value)
- password reset       → one conditional update_one (filter repeats the
                         reset token digest and expiry)

Methods return UserDoc models (or None) for reads and plain bool/int results
for writes. DuplicateKeyError from insert() is left to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.user import AuthProvider, RefreshTokenRecord, UserDoc
from shared.logging import get_logger

log = get_logger(__name__)

USERS_COLLECTION = "users"

_TEMPORARY_PASSWORD_FIELDS = {
    "temporary_password_hash": "",
    "temporary_password_expires_at": "",
}
_RESET_TOKEN_FIELDS = {"reset_token_hash": "", "reset_token_expires_at": ""}


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Return *value* as an ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _record_to_mongo(record: RefreshTokenRecord) -> dict:
    return record.model_dump()


def _active_refresh_token(token_hash: str, now: datetime) -> dict:
    return {"$elemMatch": {"token_hash": token_hash, "expires_at": {"$gt": now}}}


class UserRepository:
    """Async data access for user documents."""

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)
        # Local users carry google_id=None; only real ids take part in uniqueness
        await self._col.create_index(
            [("google_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"google_id": {"$type": "string"}},
        )
        await self._col.create_index([("refresh_tokens.token_hash", ASCENDING)])
        await self._col.create_index([("reset_token_hash", ASCENDING)], sparse=True)
        await self._col.create_index(
            [("temporary_password_expires_at", ASCENDING)], sparse=True
        )
        log.info("user_indexes_ensured", collection=USERS_COLLECTION)

    # ── Reads ────────────────────────────────────────────────────────────────

    async def find_by_id(self, user_id: ObjectId) -> Optional[UserDoc]:
        doc = await self._col.find_one({"_id": user_id})
        return UserDoc.from_mongo(doc)

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({"email": normalize_email(email)})
        return UserDoc.from_mongo(doc)

    async def find_by_email_or_google_id(
        self, email: str, google_id: str
    ) -> Optional[UserDoc]:
        doc = await self._col.find_one(
            {"$or": [{"email": normalize_email(email)}, {"google_id": google_id}]}
        )
        return UserDoc.from_mongo(doc)

    async def find_by_refresh_token(
        self, token_hash: str, now: datetime
    ) -> Optional[UserDoc]:
        """Find the user holding an unexpired refresh record with this digest."""
        doc = await self._col.find_one(
            {"refresh_tokens": _active_refresh_token(token_hash, now)}
        )
        return UserDoc.from_mongo(doc)

    async def find_by_reset_token(
        self, token_hash: str, now: datetime
    ) -> Optional[UserDoc]:
        doc = await self._col.find_one(
            {"reset_token_hash": token_hash, "reset_token_expires_at": {"$gt": now}}
        )
        return UserDoc.from_mongo(doc)

    async def list_users(
        self, *, role: Optional[str] = None, limit: int = 500
    ) -> list[UserDoc]:
        query: dict = {}
        if role:
            query["role"] = role
        cursor = self._col.find(query).sort("created_at", -1).limit(limit)
        docs = await cursor.to_list(length=None)
        return [UserDoc.from_mongo(doc) for doc in docs]

    # ── Writes ───────────────────────────────────────────────────────────────

    async def insert(self, user: UserDoc) -> ObjectId:
        """Insert a new user document and return its _id.

        Raises:
            pymongo.errors.DuplicateKeyError: email or google_id already taken.
        """
        result = await self._col.insert_one(user.to_mongo())
        return result.inserted_id

    async def record_login_success(
        self,
        user_id: ObjectId,
        record: RefreshTokenRecord,
        now: datetime,
        max_records: int,
    ) -> None:
        """Reset lockout state, stamp last_login and append one refresh record."""
        await self._col.update_one(
            {"_id": user_id},
            {
                "$set": {
                    "failed_login_attempts": 0,
                    "last_login": now,
                    "updated_at": now,
                },
                "$unset": {"locked_until": ""},
                "$push": {
                    "refresh_tokens": {
                        "$each": [_record_to_mongo(record)],
                        "$slice": -max_records,
                    }
                },
            },
        )

    async def rotate_refresh_token(
        self,
        user_id: ObjectId,
        old_hash: str,
        new_record: RefreshTokenRecord,
        now: datetime,
        max_records: int,
    ) -> bool:
        """Swap one refresh record for another in a single atomic update.

        The filter still requires the old record to be present and unexpired,
        so of two concurrent rotations of the same token only one matches.

        Returns:
            True if the record was rotated, False if it was already gone.
        """
        replacement = {
            "$slice": [
                {
                    "$concatArrays": [
                        {
                            "$filter": {
                                "input": {"$ifNull": ["$refresh_tokens", []]},
                                "as": "rt",
                                "cond": {"$ne": ["$$rt.token_hash", old_hash]},
                            }
                        },
                        # $literal keeps client-supplied strings (user agent)
                        # from being read as field paths
                        [{"$literal": _record_to_mongo(new_record)}],
                    ]
                },
                -max_records,
            ]
        }
        result = await self._col.find_one_and_update(
            {"_id": user_id, "refresh_tokens": _active_refresh_token(old_hash, now)},
            [{"$set": {"refresh_tokens": replacement, "updated_at": now}}],
            projection={"_id": 1},
        )
        return result is not None

    async def remove_refresh_token(
        self, user_id: ObjectId, token_hash: str, now: datetime
    ) -> bool:
        result = await self._col.update_one(
            {"_id": user_id},
            {
                "$pull": {"refresh_tokens": {"token_hash": token_hash}},
                "$set": {"updated_at": now},
            },
        )
        return result.modified_count > 0

    async def clear_refresh_tokens(self, user_id: ObjectId, now: datetime) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {"$set": {"refresh_tokens": [], "updated_at": now}},
        )

    async def increment_failed_logins(self, user_id: ObjectId, now: datetime) -> int:
        """Atomically bump the failed-login counter and return its new value."""
        doc = await self._col.find_one_and_update(
            {"_id": user_id},
            {"$inc": {"failed_login_attempts": 1}, "$set": {"updated_at": now}},
            projection={"failed_login_attempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return 0
        return int(doc.get("failed_login_attempts", 0))

    async def restart_failed_logins(self, user_id: ObjectId, now: datetime) -> None:
        """Start a fresh count after an expired lock: counter=1, lock removed."""
        await self._col.update_one(
            {"_id": user_id},
            {
                "$set": {"failed_login_attempts": 1, "updated_at": now},
                "$unset": {"locked_until": ""},
            },
        )

    async def lock_account(
        self, user_id: ObjectId, until: datetime, now: datetime
    ) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {"$set": {"locked_until": until, "updated_at": now}},
        )

    async def clear_expired_temporary_password(
        self, user_id: ObjectId, now: datetime
    ) -> bool:
        """Purge this user's temporary password if it has expired.

        Returns False when nothing matched (already purged by the sweeper).
        """
        result = await self._col.update_one(
            {"_id": user_id, "temporary_password_expires_at": {"$lte": now}},
            {"$unset": _TEMPORARY_PASSWORD_FIELDS, "$set": {"updated_at": now}},
        )
        return result.modified_count > 0

    async def set_reset_token(
        self,
        user_id: ObjectId,
        token_hash: str,
        expires_at: datetime,
        now: datetime,
    ) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {
                "$set": {
                    "reset_token_hash": token_hash,
                    "reset_token_expires_at": expires_at,
                    "updated_at": now,
                }
            },
        )

    async def complete_password_reset(
        self, token_hash: str, password_hash: str, now: datetime
    ) -> bool:
        """Consume a reset token: new password, no temp password, no sessions.

        Returns:
            True if the token was still valid and has now been consumed.
        """
        result = await self._col.update_one(
            {"reset_token_hash": token_hash, "reset_token_expires_at": {"$gt": now}},
            {
                "$set": {
                    "password_hash": password_hash,
                    "refresh_tokens": [],
                    "updated_at": now,
                },
                "$unset": {**_TEMPORARY_PASSWORD_FIELDS, **_RESET_TOKEN_FIELDS},
            },
        )
        return result.matched_count == 1

    async def change_password(
        self, user_id: ObjectId, password_hash: str, now: datetime
    ) -> None:
        await self._col.update_one(
            {"_id": user_id},
            {
                "$set": {
                    "password_hash": password_hash,
                    "refresh_tokens": [],
                    "updated_at": now,
                },
                "$unset": _TEMPORARY_PASSWORD_FIELDS,
            },
        )

    async def record_oauth_login(
        self,
        user_id: ObjectId,
        record: RefreshTokenRecord,
        now: datetime,
        max_records: int,
        *,
        link_google_id: Optional[str] = None,
        picture: Optional[str] = None,
    ) -> None:
        """Mark a Google sign-in on an existing user.

        Args:
            link_google_id: Set when the account is not yet linked to Google.
            picture: Set when the account has no images yet.
        """
        fields: dict[str, Any] = {
            "email_verified": True,
            "is_verified": True,
            "last_login": now,
            "updated_at": now,
        }
        if link_google_id:
            fields["google_id"] = link_google_id
            fields["auth_provider"] = AuthProvider.GOOGLE.value
        if picture:
            fields["images"] = [picture]

        await self._col.update_one(
            {"_id": user_id},
            {
                "$set": fields,
                "$push": {
                    "refresh_tokens": {
                        "$each": [_record_to_mongo(record)],
                        "$slice": -max_records,
                    }
                },
            },
        )

    async def update_profile(
        self, user_id: ObjectId, fields: dict, now: datetime
    ) -> Optional[UserDoc]:
        doc = await self._col.find_one_and_update(
            {"_id": user_id},
            {"$set": {**fields, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def update_status(
        self,
        user_id: ObjectId,
        now: datetime,
        *,
        is_active: Optional[bool] = None,
        role: Optional[str] = None,
    ) -> Optional[UserDoc]:
        """Admin status change. Deactivation also revokes every session."""
        fields: dict[str, Any] = {"updated_at": now}
        if is_active is not None:
            fields["is_active"] = is_active
            if not is_active:
                fields["refresh_tokens"] = []
        if role is not None:
            fields["role"] = role

        doc = await self._col.find_one_and_update(
            {"_id": user_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def delete(self, user_id: ObjectId) -> bool:
        result = await self._col.delete_one({"_id": user_id})
        return result.deleted_count > 0

    # ── Expiry sweeps ────────────────────────────────────────────────────────

    async def purge_expired_temporary_passwords(self, now: datetime) -> int:
        result = await self._col.update_many(
            {"temporary_password_expires_at": {"$lte": now}},
            {"$unset": _TEMPORARY_PASSWORD_FIELDS, "$set": {"updated_at": now}},
        )
        return result.modified_count

    async def purge_expired_reset_tokens(self, now: datetime) -> int:
        result = await self._col.update_many(
            {"reset_token_expires_at": {"$lte": now}},
            {"$unset": _RESET_TOKEN_FIELDS, "$set": {"updated_at": now}},
        )
        return result.modified_count
