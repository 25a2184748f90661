import pytest

from plantscan.services.detection import DetectionError, DetectionResult
from plantscan.services.entitlements import DebitStatus, FundingSource
from plantscan.services.scans import (
    DetectionFailedError,
    Identity,
    MissingImageError,
    ProfileError,
    QuotaExceededError,
    ScanImage,
    ScanPersistError,
    ScanService,
)
from plantscan.services.storage import StorageError
from plantscan.services.usage_store import ProfileRecord, day_key
from tests.utils.memory_store import MemoryStore

IMAGE = ScanImage(b"\x89PNG fake", "image/png")
RESULT = DetectionResult(name="Leaf Spot", confidence=0.92, remedies=["Remove leaves"])


class FakeClassifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def classify(self, image: bytes) -> DetectionResult:
        self.calls += 1
        if self.fail:
            raise DetectionError("inference timeout")
        return RESULT


class FakeUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[str, bytes, str | None]] = []

    async def __call__(self, user_id, data, content_type):
        if self.fail:
            raise StorageError("S3 upload failed")
        self.uploads.append((user_id, data, content_type))
        return f"scans/{user_id}/img.png"


@pytest.fixture
def store():
    return MemoryStore()


def _service(store, classifier=None, uploader=None):
    return ScanService(
        store, classifier or FakeClassifier(), uploader or FakeUploader(), daily_limit=5
    )


def _used_today(store, user_id):
    return store.daily.get((user_id, day_key()), 0)


@pytest.mark.parametrize(
    "identity, expected",
    [
        (Identity("u", "jo@example.com", "Jo Grower"), "Jo Grower"),
        (Identity("u", "jo@example.com", "  "), "jo"),
        (Identity("u", "jo@example.com"), "jo"),
        (Identity("u", None, None), "User"),
        (Identity("u", "@example.com", None), "User"),
    ],
)
def test_display_name_fallback(identity, expected):
    assert identity.display_name() == expected


@pytest.mark.asyncio
async def test_first_scan_bootstraps_profile_and_charges_daily(store):
    service = _service(store)
    outcome = await service.run(Identity("u1", "grower@example.com"), IMAGE)

    assert store.profiles["u1"].full_name == "grower"
    assert ("u1", "profile_created") in store.events
    assert outcome.scan.disease_name == "Leaf Spot"
    assert outcome.scan.image_url == "scans/u1/img.png"
    assert outcome.decision.source is FundingSource.DAILY_QUOTA
    assert outcome.debit.status is DebitStatus.DAILY_QUOTA
    assert _used_today(store, "u1") == 1


@pytest.mark.asyncio
async def test_profile_bootstrap_is_idempotent(store):
    service = _service(store)
    await service.run(Identity("u1", full_name="Jo"), IMAGE)
    await service.run(Identity("u1", full_name="Someone Else"), IMAGE)
    assert len(store.profiles) == 1
    assert store.profiles["u1"].full_name == "Jo"
    assert store.events.count(("u1", "profile_created")) == 1


@pytest.mark.asyncio
async def test_sixth_scan_is_denied_without_record(store):
    service = _service(store)
    for _ in range(5):
        await service.run(Identity("u1"), IMAGE)
    with pytest.raises(QuotaExceededError) as exc:
        await service.run(Identity("u1"), IMAGE)
    assert exc.value.status_code == 403
    assert "Daily scan limit reached" in exc.value.message
    assert len(store.scans) == 5
    assert _used_today(store, "u1") == 5
    assert ("u1", "quota_denied") in store.events


@pytest.mark.asyncio
async def test_subscription_pays_instead_of_daily(store):
    sub = store.add_subscription("u1", scans_remaining=2)
    store.daily[("u1", day_key())] = 5
    outcome = await _service(store).run(Identity("u1"), IMAGE)
    assert outcome.debit.status is DebitStatus.SUBSCRIPTION
    assert store.remaining(sub.id) == 1
    assert _used_today(store, "u1") == 5


@pytest.mark.asyncio
async def test_admin_never_metered(store):
    store.profiles["boss"] = ProfileRecord("boss", "Boss", None, is_admin=True)
    service = _service(store)
    for _ in range(7):
        outcome = await service.run(Identity("boss"), IMAGE)
    assert outcome.debit.status is DebitStatus.SKIPPED
    assert store.daily == {}
    assert len(store.scans) == 7


@pytest.mark.asyncio
@pytest.mark.parametrize("image", [None, ScanImage(b"", "image/jpeg")])
async def test_missing_image(store, image):
    classifier = FakeClassifier()
    with pytest.raises(MissingImageError) as exc:
        await _service(store, classifier).run(Identity("u1"), image)
    assert exc.value.status_code == 400
    assert exc.value.message == "No image file provided"
    assert classifier.calls == 0
    assert store.scans == []
    assert store.daily == {}


@pytest.mark.asyncio
async def test_quota_checked_before_image(store):
    store.daily[("u1", day_key())] = 5
    with pytest.raises(QuotaExceededError):
        await _service(store).run(Identity("u1"), None)


@pytest.mark.asyncio
async def test_profile_lookup_failure(store):
    store.fail_on.add("get_profile")
    with pytest.raises(ProfileError) as exc:
        await _service(store).run(Identity("u1"), IMAGE)
    assert exc.value.status_code == 500
    assert exc.value.message == "Error fetching user profile"


@pytest.mark.asyncio
async def test_profile_create_failure(store):
    store.fail_on.add("create_profile")
    with pytest.raises(ProfileError) as exc:
        await _service(store).run(Identity("u1"), IMAGE)
    assert exc.value.message == "Error creating user profile"


@pytest.mark.asyncio
async def test_detection_failure_does_not_charge(store):
    with pytest.raises(DetectionFailedError) as exc:
        await _service(store, FakeClassifier(fail=True)).run(Identity("u1"), IMAGE)
    assert exc.value.status_code == 502
    assert store.scans == []
    assert store.daily == {}


@pytest.mark.asyncio
async def test_upload_failure(store):
    with pytest.raises(ScanPersistError) as exc:
        await _service(store, uploader=FakeUploader(fail=True)).run(Identity("u1"), IMAGE)
    assert exc.value.message == "Error saving scan image"
    assert store.daily == {}


@pytest.mark.asyncio
async def test_persist_failure_does_not_charge(store):
    store.fail_on.add("add_scan")
    with pytest.raises(ScanPersistError) as exc:
        await _service(store).run(Identity("u1"), IMAGE)
    assert exc.value.status_code == 500
    assert exc.value.message == "Error saving scan results"
    assert store.daily == {}


@pytest.mark.asyncio
async def test_debit_failure_keeps_scan(store, caplog):
    store.fail_on.add("increment_daily_usage")
    outcome = await _service(store).run(Identity("u1"), IMAGE)
    assert outcome.debit.status is DebitStatus.FAILED
    assert len(store.scans) == 1
    assert "usage debit failed" in caplog.text


@pytest.mark.asyncio
async def test_event_failure_is_not_fatal(store):
    store.fail_on.add("record_event")
    outcome = await _service(store).run(Identity("u1"), IMAGE)
    assert outcome.scan.id == 1
