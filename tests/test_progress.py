import pytest
from sqlalchemy import select

from caretrack.core.errors import InvalidInputError, NotFoundError, NotLinkedError
from caretrack.models.audit import AuditLog
from caretrack.models.progress import TaskProgress
from caretrack.services.assignment import link_carer_to_package
from caretrack.services.progress import (
    MAX_COMPLETION_COUNT,
    completion_percentage,
    load_progress,
    reset_progress,
    update_progress,
)


async def counts(db, carer_id, task_id):
    records = await load_progress(db, carer_id, task_id)
    return {r.package_id: (r.completion_count, r.completion_percentage) for r in records}


@pytest.mark.parametrize(
    "count,target,expected",
    [
        (0, 10, 0),
        (7, 10, 70),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds up
        (10, 10, 100),
        (25, 10, 100),
    ],
)
def test_completion_percentage(count, target, expected):
    assert completion_percentage(count, target) == expected


def test_completion_percentage_rejects_non_positive_target():
    with pytest.raises(InvalidInputError):
        completion_percentage(3, 0)


@pytest.fixture
async def carer_in_two_packages(factory):
    carer = await factory.carer()
    task = await factory.task(target_count=10)
    pkg_a = await factory.package("Package A")
    pkg_b = await factory.package("Package B")
    for pkg in (pkg_a, pkg_b):
        await factory.carer_link(carer, pkg)
        await factory.task_link(task, pkg)
    return carer, task, pkg_a, pkg_b


async def test_update_synchronizes_every_linked_package(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, pkg_b = carer_in_two_packages

    records = await update_progress(db, carer, pkg_a, task, 4, admin, audit)

    assert sorted(r.package_id for r in records) == [pkg_a, pkg_b]
    assert await counts(db, carer, task) == {pkg_a: (4, 40), pkg_b: (4, 40)}


async def test_update_skips_packages_with_inactive_links(db, factory, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, pkg_b = carer_in_two_packages
    dropped = await factory.package("Dropped carer")
    await factory.carer_link(carer, dropped, is_active=False)
    await factory.task_link(task, dropped)
    task_dropped = await factory.package("Dropped task")
    await factory.carer_link(carer, task_dropped)
    await factory.task_link(task, task_dropped, is_active=False)

    await update_progress(db, carer, pkg_b, task, 6, admin, audit)

    assert await counts(db, carer, task) == {pkg_a: (6, 60), pkg_b: (6, 60)}


async def test_update_on_unlinked_package_is_rejected(db, factory, audit, admin, carer_in_two_packages):
    carer, task, _, _ = carer_in_two_packages
    elsewhere = await factory.package("Elsewhere")

    with pytest.raises(NotLinkedError):
        await update_progress(db, carer, elsewhere, task, 3, admin, audit)
    assert await counts(db, carer, task) == {}


async def test_update_rejects_negative_count(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, _ = carer_in_two_packages

    with pytest.raises(InvalidInputError):
        await update_progress(db, carer, pkg_a, task, -1, admin, audit)
    assert await counts(db, carer, task) == {}


async def test_update_for_inactive_carer_or_task_is_not_found(db, factory, audit, admin):
    inactive_carer = await factory.carer(is_active=False)
    retired_task = await factory.task(is_active=False)
    task = await factory.task()
    carer = await factory.carer()
    pkg = await factory.package()

    with pytest.raises(NotFoundError):
        await update_progress(db, inactive_carer, pkg, task, 1, admin, audit)
    with pytest.raises(NotFoundError):
        await update_progress(db, carer, pkg, retired_task, 1, admin, audit)


async def test_update_writes_audit_row_with_previous_values(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, pkg_b = carer_in_two_packages

    await update_progress(db, carer, pkg_a, task, 4, admin, audit)
    await update_progress(db, carer, pkg_a, task, 5, admin, audit)

    result = await db.execute(
        select(AuditLog).where(AuditLog.action == "UPDATE_TASK_PROGRESS").order_by(AuditLog.id)
    )
    first, second = result.scalars().all()
    assert first.old_values is None
    assert second.old_values == {"completionCount": 4, "completionPercentage": 40}
    assert second.new_values["synchronizedPackageIds"] == sorted([pkg_a, pkg_b])
    assert second.performed_by_id == admin.id
    assert second.ip_address == "127.0.0.1"


async def test_events_go_to_the_injected_sink(db, recorder, admin, carer_in_two_packages):
    carer, task, pkg_a, _ = carer_in_two_packages

    await update_progress(db, carer, pkg_a, task, 2, admin, recorder)

    assert [e.action for e in recorder.events] == ["UPDATE_TASK_PROGRESS"]
    assert recorder.events[0].actor == admin
    rows = await db.execute(select(AuditLog.id))
    assert rows.first() is None


async def test_reset_only_touches_the_named_package(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, pkg_b = carer_in_two_packages
    await update_progress(db, carer, pkg_a, task, 6, admin, audit)

    record = await reset_progress(db, carer, pkg_a, task, admin, audit)

    assert (record.package_id, record.completion_count, record.completion_percentage) == (pkg_a, 0, 0)
    assert await counts(db, carer, task) == {pkg_a: (0, 0), pkg_b: (6, 60)}


async def test_reset_creates_missing_record(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, _ = carer_in_two_packages

    await reset_progress(db, carer, pkg_a, task, admin, audit)

    assert await counts(db, carer, task) == {pkg_a: (0, 0)}


async def test_progress_follows_the_carer_across_packages(db, factory, audit, admin):
    carer = await factory.carer()
    task = await factory.task(target_count=10)
    pkg_a = await factory.package("Package A")
    pkg_b = await factory.package("Package B")
    await factory.carer_link(carer, pkg_a)
    await factory.task_link(task, pkg_a)
    await factory.task_link(task, pkg_b)

    await update_progress(db, carer, pkg_a, task, 7, admin, audit)
    assert await counts(db, carer, task) == {pkg_a: (7, 70)}

    _, seeded = await link_carer_to_package(db, carer, pkg_b, admin, audit)
    assert [(r.package_id, r.completion_count, r.completion_percentage) for r in seeded] == [(pkg_b, 7, 70)]

    await update_progress(db, carer, pkg_b, task, 10, admin, audit)
    assert await counts(db, carer, task) == {pkg_a: (10, 100), pkg_b: (10, 100)}

    rows = await db.execute(select(TaskProgress.id).where(TaskProgress.carer_id == carer))
    assert len(rows.all()) == 2


async def test_link_is_checked_before_the_count(db, factory, audit, admin, carer_in_two_packages):
    carer, task, _, _ = carer_in_two_packages
    elsewhere = await factory.package("Elsewhere")

    with pytest.raises(NotLinkedError):
        await update_progress(db, carer, elsewhere, task, -5, admin, audit)


async def test_count_beyond_storage_range_is_invalid(db, audit, admin, carer_in_two_packages):
    carer, task, pkg_a, pkg_b = carer_in_two_packages

    with pytest.raises(InvalidInputError):
        await update_progress(db, carer, pkg_a, task, MAX_COMPLETION_COUNT + 1, admin, audit)
    assert await counts(db, carer, task) == {}

    await update_progress(db, carer, pkg_a, task, MAX_COMPLETION_COUNT, admin, audit)
    assert await counts(db, carer, task) == {
        pkg_a: (MAX_COMPLETION_COUNT, 100),
        pkg_b: (MAX_COMPLETION_COUNT, 100),
    }
