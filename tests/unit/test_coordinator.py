"""
Unit tests for the upload coordinator and file gateway.

The coordinator runs against the in-memory credential issuer and the
mock PostgreSQL pool, so the whole lifecycle is exercised without S3 or
a database.
"""

import asyncio

import pytest

from megamax.core.uploads import (
    BackendUnavailable,
    FileGateway,
    NotFound,
    UploadCoordinator,
    UploadPolicy,
    UploadState,
    ValidationError,
)
from megamax.infrastructure.postgres import FileRepository, MockPostgresPool
from megamax.infrastructure.storage import MockCredentialIssuer


@pytest.fixture
def issuer() -> MockCredentialIssuer:
    return MockCredentialIssuer()


@pytest.fixture
def repository() -> FileRepository:
    return FileRepository(MockPostgresPool())


@pytest.fixture
def coordinator(issuer, repository) -> UploadCoordinator:
    return UploadCoordinator(issuer, repository)


@pytest.fixture
def gateway(repository) -> FileGateway:
    return FileGateway(repository)


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# begin_upload
# ---------------------------------------------------------------------------

class TestBeginUpload:
    """Tests for registering an upload and issuing its grant."""

    def test_returns_id_key_and_grant(self, coordinator, issuer):
        """The intent carries the new record id and a grant for its key."""
        intent = run(coordinator.begin_upload("alice", "a.txt", "text/plain", 100))

        assert intent.file_id > 0
        assert intent.grant.storage_key == intent.storage_key
        assert intent.grant.fields["key"] == intent.storage_key
        assert intent.grant.fields["Content-Type"] == "text/plain"
        assert intent.declared_size == 100
        assert issuer.issued == [intent.grant]

    def test_storage_key_layout(self, issuer, repository):
        """Keys look like <prefix>/<owner>/<ms>_<token>_<filename>."""
        coordinator = UploadCoordinator(
            issuer,
            repository,
            clock=lambda: 1700000000.5,
            token_factory=lambda: "abcd1234",
        )

        intent = run(coordinator.begin_upload("alice", "report.pdf"))

        assert intent.storage_key == "uploads/alice/1700000000500_abcd1234_report.pdf"

    def test_grant_uses_policy_ceiling_and_ttl(self, issuer, repository):
        coordinator = UploadCoordinator(
            issuer, repository, UploadPolicy(max_size_bytes=1024, ttl_seconds=60)
        )

        intent = run(coordinator.begin_upload("alice", "a.txt", declared_size=10))

        assert intent.grant.max_size_bytes == 1024

    def test_missing_owner_falls_back_to_anonymous(self, coordinator, gateway):
        """Callers that don't say who they are are recorded as demo-user."""
        intent = run(coordinator.begin_upload(None, "a.txt"))

        assert intent.storage_key.startswith("uploads/demo-user/")
        assert run(gateway.list())[0].owner_id == "demo-user"

    def test_path_separators_stay_inside_the_key_segment(self, coordinator):
        intent = run(coordinator.begin_upload("team/alice", "dir/../a.txt"))

        prefix, owner, name = intent.storage_key.split("/")
        assert prefix == "uploads"
        assert owner == "team_alice"
        assert name.endswith("_dir_.._a.txt")

    @pytest.mark.parametrize("filename", ["", None, "   "])
    def test_empty_filename_fails_without_issuing(self, coordinator, issuer, gateway, filename):
        """Validation happens before any credential is requested."""
        with pytest.raises(ValidationError, match="filename required"):
            run(coordinator.begin_upload("alice", filename))

        assert issuer.issued == []
        assert run(gateway.list()) == []

    def test_negative_declared_size_is_rejected(self, coordinator, issuer):
        with pytest.raises(ValidationError):
            run(coordinator.begin_upload("alice", "a.txt", declared_size=-5))

        assert issuer.issued == []

    def test_issuer_failure_registers_nothing(self, coordinator, issuer, gateway):
        """The grant comes first; if it fails no record is written."""
        issuer.unavailable = True

        with pytest.raises(BackendUnavailable):
            run(coordinator.begin_upload("alice", "a.txt"))

        assert run(gateway.list()) == []

    def test_registered_record_starts_at_zero_bytes(self, coordinator, gateway):
        """Declared size isn't stored by default; the listing shows 0 until confirmed."""
        intent = run(coordinator.begin_upload("alice", "a.txt", declared_size=100))

        record = run(gateway.list())[0]
        assert record.id == intent.file_id
        assert record.size_bytes == 0
        assert record.state is UploadState.REGISTERED

    def test_declared_size_recorded_when_policy_enabled(self, issuer, repository, gateway):
        coordinator = UploadCoordinator(
            issuer, repository, UploadPolicy(record_declared_size=True)
        )

        run(coordinator.begin_upload("alice", "a.txt", declared_size=100))

        assert run(gateway.list())[0].size_bytes == 100


# ---------------------------------------------------------------------------
# Storage key uniqueness
# ---------------------------------------------------------------------------

class TestStorageKeyUniqueness:
    """Keys are never reused, even under a frozen clock."""

    def test_keys_unique_over_many_uploads(self, coordinator):
        keys = {
            run(coordinator.begin_upload("alice", "same.txt")).storage_key
            for _ in range(300)
        }

        assert len(keys) == 300

    def test_concurrent_same_owner_same_name_same_millisecond(self, issuer, repository):
        """Two simultaneous requests still get distinct keys and ids."""
        coordinator = UploadCoordinator(
            issuer,
            repository,
            clock=lambda: 1700000000.0,
            token_factory=lambda: "deadbeef",
        )

        async def both():
            return await asyncio.gather(
                coordinator.begin_upload("alice", "same.txt"),
                coordinator.begin_upload("alice", "same.txt"),
            )

        first, second = run(both())

        assert first.storage_key != second.storage_key
        assert first.file_id != second.file_id

    def test_stamp_advances_when_clock_goes_backwards(self, issuer, repository):
        times = iter([1700000000.500, 1700000000.100])
        coordinator = UploadCoordinator(
            issuer, repository, clock=lambda: next(times), token_factory=lambda: "t"
        )

        first = coordinator.build_storage_key("alice", "a.txt")
        second = coordinator.build_storage_key("alice", "a.txt")

        assert first == "uploads/alice/1700000000500_t_a.txt"
        assert second == "uploads/alice/1700000000501_t_a.txt"


# ---------------------------------------------------------------------------
# confirm_upload
# ---------------------------------------------------------------------------

class TestConfirmUpload:
    """Tests for reconciling a confirmation into the record."""

    def test_register_then_confirm_scenario(self, coordinator, gateway):
        """a.txt lists with size 0, then with size 100 after confirmation."""
        intent = run(coordinator.begin_upload("alice", "a.txt", declared_size=100))
        assert run(gateway.list())[0].size_bytes == 0

        run(coordinator.confirm_upload(intent.file_id, 100))

        record = run(gateway.list())[0]
        assert record.size_bytes == 100
        assert record.state is UploadState.CONFIRMED

    def test_confirm_is_last_write_wins(self, coordinator, gateway):
        """Confirming twice overwrites; sizes are never summed."""
        intent = run(coordinator.begin_upload("alice", "a.txt"))

        run(coordinator.confirm_upload(intent.file_id, 100))
        run(coordinator.confirm_upload(intent.file_id, 250))

        assert run(gateway.list())[0].size_bytes == 250

    def test_confirm_same_size_twice(self, coordinator, gateway):
        intent = run(coordinator.begin_upload("alice", "a.txt"))

        run(coordinator.confirm_upload(intent.file_id, 100))
        run(coordinator.confirm_upload(intent.file_id, 100))

        assert run(gateway.list())[0].size_bytes == 100

    def test_missing_size_is_stored_as_zero(self, coordinator, gateway):
        intent = run(coordinator.begin_upload("alice", "a.txt"))

        run(coordinator.confirm_upload(intent.file_id, None))

        record = run(gateway.list())[0]
        assert record.size_bytes == 0
        assert record.is_confirmed

    def test_unknown_id_raises_not_found(self, coordinator):
        with pytest.raises(NotFound) as excinfo:
            run(coordinator.confirm_upload(9999, 10))

        assert excinfo.value.file_id == 9999

    def test_missing_id_is_a_validation_error(self, coordinator):
        with pytest.raises(ValidationError, match="uploadId required"):
            run(coordinator.confirm_upload(None, 10))

    def test_negative_size_is_rejected(self, coordinator):
        intent = run(coordinator.begin_upload("alice", "a.txt"))

        with pytest.raises(ValidationError):
            run(coordinator.confirm_upload(intent.file_id, -1))


# ---------------------------------------------------------------------------
# FileGateway
# ---------------------------------------------------------------------------

class TestFileGateway:
    """Tests for listing and deleting file records."""

    def test_delete_twice_succeeds_and_hides_record(self, coordinator, gateway):
        intent = run(coordinator.begin_upload("alice", "a.txt"))

        run(gateway.delete(intent.file_id))
        run(gateway.delete(intent.file_id))

        assert intent.file_id not in [record.id for record in run(gateway.list())]

    def test_delete_unknown_id_is_not_an_error(self, gateway):
        run(gateway.delete(424242))

    def test_delete_leaves_other_records(self, coordinator, gateway):
        keep = run(coordinator.begin_upload("alice", "keep.txt"))
        drop = run(coordinator.begin_upload("alice", "drop.txt"))

        run(gateway.delete(drop.file_id))

        assert [record.id for record in run(gateway.list())] == [keep.file_id]

    def test_list_is_capped_and_newest_first(self, coordinator, gateway):
        """500 records exist; the listing returns 200, newest first."""
        for i in range(500):
            run(coordinator.begin_upload("alice", f"file-{i}.txt"))

        records = run(gateway.list())

        assert len(records) == 200
        assert records[0].display_name == "file-499.txt"
        for newer, older in zip(records, records[1:]):
            assert newer.created_at >= older.created_at
            assert newer.id > older.id

    def test_requested_limit_is_clamped(self, coordinator, repository):
        for i in range(5):
            run(coordinator.begin_upload("alice", f"file-{i}.txt"))
        gateway = FileGateway(repository, max_limit=3)

        assert len(run(gateway.list(1000))) == 3
        assert len(run(gateway.list(0))) == 1
        assert len(run(gateway.list(2))) == 2
