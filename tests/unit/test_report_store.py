from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from listing_audit.models.schemas import (
    AccessType,
    AuditMode,
    ClientMeta,
    Lead,
    Report,
    User,
)
from listing_audit.utils.errors import StoreError


def make_lead(email="sam@example.com", **kwargs):
    return Lead(audit_type=AuditMode.EXISTING, asin="B08N5WRWNW", email=email, name="Sam", **kwargs)


def make_report(lead, score=70, **kwargs):
    return Report(lead_id=lead.id, mode=AuditMode.EXISTING, score=score, asin=lead.asin, **kwargs)


@pytest.mark.asyncio
async def test_lead_round_trip(store):
    lead = await store.create_lead(make_lead())
    assert await store.get_lead(lead.id) == lead
    assert await store.get_lead(uuid4()) is None


@pytest.mark.asyncio
async def test_duplicate_lead_rejected(store):
    lead = await store.create_lead(make_lead())
    with pytest.raises(StoreError) as exc:
        await store.create_lead(lead)
    assert exc.value.code == "DUPLICATE_LEAD"


@pytest.mark.asyncio
async def test_update_lead_contact(store):
    lead = await store.create_lead(make_lead(email=None))

    updated = await store.update_lead_contact(lead.id, "new@example.com", "Newname")

    assert updated.email == "new@example.com"
    assert updated.name == "Newname"
    assert updated.updated_at is not None
    assert (await store.get_lead(lead.id)).email == "new@example.com"
    assert await store.update_lead_contact(uuid4(), "x@example.com", "X") is None


@pytest.mark.asyncio
async def test_report_requires_existing_lead(store):
    orphan = make_lead()
    with pytest.raises(StoreError) as exc:
        await store.create_report(make_report(orphan))
    assert exc.value.code == "LEAD_NOT_FOUND"


@pytest.mark.asyncio
async def test_latest_report_for_email(store):
    first_lead = await store.create_lead(make_lead())
    second_lead = await store.create_lead(make_lead(email="SAM@example.com"))
    now = datetime.now(timezone.utc)
    older = await store.create_report(make_report(first_lead, score=40, created_at=now - timedelta(days=1)))
    newer = await store.create_report(make_report(second_lead, score=90, created_at=now))

    latest = await store.get_latest_report_for_email(" sam@example.com ")

    assert latest.id == newer.id
    assert await store.get_latest_report_for_email("nobody@example.com") is None


@pytest.mark.asyncio
async def test_list_reports_for_lead_newest_first(store):
    lead = await store.create_lead(make_lead())
    now = datetime.now(timezone.utc)
    a = await store.create_report(make_report(lead, score=10, created_at=now - timedelta(hours=1)))
    b = await store.create_report(make_report(lead, score=20, created_at=now))

    reports = await store.list_reports_for_lead(lead.id)

    assert [r.id for r in reports] == [b.id, a.id]


@pytest.mark.asyncio
async def test_users_unique_by_email(store):
    user = await store.create_user(User(email="sam@example.com", password_hash="h", name="Sam"))
    assert await store.get_user(user.id) == user
    assert await store.get_user_by_email(" SAM@example.com") == user

    with pytest.raises(StoreError) as exc:
        await store.create_user(User(email="sam@example.com", password_hash="h2", name="Other"))
    assert exc.value.code == "EMAIL_EXISTS"


@pytest.mark.asyncio
async def test_link_guest_leads_upgrades_reports(store):
    user = User(email="sam@example.com", password_hash="h", name="Sam")
    guest = await store.create_lead(make_lead())
    other = await store.create_lead(make_lead(email="other@example.com"))
    report = await store.create_report(make_report(guest))
    untouched = await store.create_report(make_report(other))

    linked = await store.link_guest_leads("Sam@Example.com", user.id)

    assert linked == [guest.id]
    assert (await store.get_lead(guest.id)).user_id == user.id
    upgraded = await store.get_report(report.id)
    assert upgraded.user_id == user.id
    assert upgraded.access_type is AccessType.ACCOUNT
    assert report.access_type is AccessType.GUEST
    assert (await store.get_report(untouched.id)).access_type is AccessType.GUEST


@pytest.mark.asyncio
async def test_link_skips_leads_owned_by_another_user(store):
    owner = uuid4()
    await store.create_lead(make_lead(user_id=owner))
    assert await store.link_guest_leads("sam@example.com", uuid4()) == []


@pytest.mark.asyncio
async def test_touch_last_login(store):
    user = await store.create_user(User(email="sam@example.com", password_hash="h", name="Sam"))
    touched = await store.touch_last_login(user.id)
    assert touched.last_login is not None
    assert await store.touch_last_login(uuid4()) is None


@pytest.mark.asyncio
async def test_stats(store, existing_input):
    lead = await store.create_lead(Lead.from_input(existing_input, ClientMeta()))
    await store.create_report(make_report(lead))
    assert store.stats() == {"leads": 1, "reports": 1, "users": 0}
