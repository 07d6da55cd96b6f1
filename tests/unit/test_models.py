"""
Unit tests for the upload domain models.

These tests verify the core value types without touching external
services (no S3, no database, no HTTP).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
"""

from datetime import datetime, timedelta, timezone

import pytest

from megamax.core.uploads import (
    FileRecord,
    Plan,
    UploadGrant,
    UploadPolicy,
    UploadState,
    User,
    Visibility,
)


def _record(**overrides) -> FileRecord:
    values = dict(
        id=1,
        owner_id="demo-user",
        storage_key="uploads/demo-user/1700000000000_abcd1234_a.txt",
        display_name="a.txt",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return FileRecord(**values)


# ---------------------------------------------------------------------------
# FileRecord Tests
# ---------------------------------------------------------------------------

class TestFileRecord:
    """Tests for the FileRecord entity."""

    def test_new_record_defaults(self):
        """A fresh record is private, sizeless and unconfirmed."""
        record = _record()

        assert record.size_bytes == 0
        assert record.visibility is Visibility.PRIVATE
        assert record.content_type is None
        assert not record.is_confirmed

    def test_unconfirmed_record_is_registered(self):
        """Without a confirmation timestamp the upload is still REGISTERED."""
        assert _record().state is UploadState.REGISTERED

    def test_confirmed_record_is_confirmed(self):
        """A confirmation timestamp moves the record to CONFIRMED."""
        record = _record(
            size_bytes=100,
            confirmed_at=datetime(2026, 1, 1, 0, 1, tzinfo=timezone.utc),
        )

        assert record.state is UploadState.CONFIRMED
        assert record.is_confirmed

    def test_confirmed_record_may_have_zero_bytes(self):
        """Size is whatever the client reported, including 0."""
        record = _record(confirmed_at=datetime.now(timezone.utc))

        assert record.state is UploadState.CONFIRMED
        assert record.size_bytes == 0

    def test_rejects_negative_size(self):
        """Sizes are byte counts and can't go below zero."""
        with pytest.raises(ValueError, match="cannot be negative"):
            _record(size_bytes=-1)


# ---------------------------------------------------------------------------
# UploadGrant Tests
# ---------------------------------------------------------------------------

class TestUploadGrant:
    """Tests for the UploadGrant value object."""

    def test_grant_is_valid_before_expiry(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        grant = UploadGrant(
            storage_key="uploads/u/k",
            max_size_bytes=10,
            expires_at=now + timedelta(seconds=600),
            url="mock://storage/bucket",
        )

        assert not grant.is_expired(now)
        assert not grant.is_expired(now + timedelta(seconds=599))

    def test_grant_expires_at_ttl(self):
        """The grant is unusable from expires_at onwards."""
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        grant = UploadGrant(
            storage_key="uploads/u/k",
            max_size_bytes=10,
            expires_at=now + timedelta(seconds=600),
            url="mock://storage/bucket",
        )

        assert grant.is_expired(now + timedelta(seconds=600))

    def test_grant_fields_default_empty(self):
        grant = UploadGrant(
            storage_key="k",
            max_size_bytes=1,
            expires_at=datetime.now(timezone.utc),
            url="mock://x",
        )

        assert grant.fields == {}


# ---------------------------------------------------------------------------
# User and Policy Tests
# ---------------------------------------------------------------------------

class TestUser:

    def test_users_start_on_free_plan(self):
        assert User(id="alice").plan is Plan.FREE


class TestUploadPolicy:
    """Tests for upload policy validation rules."""

    def test_defaults_match_deployed_service(self):
        """600-second grants, a 50 GiB ceiling and the demo-user fallback."""
        policy = UploadPolicy()

        assert policy.ttl_seconds == 600
        assert policy.max_size_bytes == 50 * 1024 ** 3
        assert policy.anonymous_user_id == "demo-user"
        assert policy.key_prefix == "uploads"
        assert policy.record_declared_size is False

    def test_rejects_unbounded_size(self):
        """The size ceiling must be a real positive number."""
        with pytest.raises(ValueError, match="max_size_bytes"):
            UploadPolicy(max_size_bytes=0)

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError, match="ttl_seconds"):
            UploadPolicy(ttl_seconds=0)
