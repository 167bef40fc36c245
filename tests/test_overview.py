import pytest

from caretrack.core.errors import NotFoundError
from caretrack.services.assignment import unlink_carer_from_package
from caretrack.services.competency import set_rating
from caretrack.services.overview import (
    average_percentage,
    carer_progress_detail,
    carer_progress_summaries,
    carers_ready_for_assessment,
)
from caretrack.services.progress import update_progress


def test_average_percentage():
    assert average_percentage([]) == 0
    assert average_percentage([70, 100, 0]) == 57
    assert average_percentage([50, 51]) == 51


@pytest.fixture
async def rota(factory):
    carer = await factory.carer("Carl Carer")
    meds = await factory.task("Medication round", target_count=10)
    hoist = await factory.task("Hoist transfer", target_count=4)
    pkg = await factory.package("Package A", postcode="LS1 4AP")
    await factory.carer_link(carer, pkg)
    await factory.task_link(meds, pkg)
    await factory.task_link(hoist, pkg)
    assessment = await factory.assessment([meds])
    return carer, meds, hoist, pkg, assessment


async def test_carer_detail_lists_packages_tasks_and_ratings(db, audit, admin, rota):
    carer, meds, hoist, pkg, assessment = rota
    await update_progress(db, carer, pkg, meds, 10, admin, audit)
    await update_progress(db, carer, pkg, hoist, 1, admin, audit)

    detail = await carer_progress_detail(db, carer)

    assert detail.carer.id == carer
    (package,) = detail.packages
    assert (package.package_id, package.package_postcode) == (pkg, "LS1 4AP")
    tasks = {t.task_id: t for t in package.tasks}
    assert (tasks[meds].completion_percentage, tasks[hoist].completion_percentage) == (100, 25)
    assert package.average_progress == 63
    assert tasks[meds].competency_level == "NOT_ASSESSED"
    assert tasks[meds].can_take_assessment
    assert tasks[meds].assessment_id == assessment
    assert not tasks[hoist].can_take_assessment
    assert detail.competency_ratings == []


async def test_rated_task_is_no_longer_offered_for_assessment(db, audit, admin, rota):
    carer, meds, _, pkg, _ = rota
    await update_progress(db, carer, pkg, meds, 10, admin, audit)
    await set_rating(db, carer, meds, "COMPETENT", "MANUAL", admin, audit, skip_confirmation=True)

    detail = await carer_progress_detail(db, carer)

    task = next(t for t in detail.packages[0].tasks if t.task_id == meds)
    assert (task.competency_level, task.competency_source) == ("COMPETENT", "MANUAL")
    assert not task.can_take_assessment
    assert [r.task_name for r in detail.competency_ratings] == ["Medication round"]
    assert await carers_ready_for_assessment(db) == []


async def test_ready_for_assessment_respects_threshold(db, factory, audit, admin, rota):
    carer, meds, hoist, pkg, _ = rota
    await update_progress(db, carer, pkg, meds, 10, admin, audit)
    await update_progress(db, carer, pkg, hoist, 2, admin, audit)
    idle = await factory.carer("Idle Carer")
    await factory.carer_link(idle, pkg)

    ready = await carers_ready_for_assessment(db)
    assert [(c.id, [t.task_id for t in c.ready_tasks]) for c in ready] == [(carer, [meds])]

    ready = await carers_ready_for_assessment(db, threshold=50)
    assert [t.task_name for t in ready[0].ready_tasks] == ["Hoist transfer", "Medication round"]


async def test_detail_for_unknown_carer_is_not_found(db, admin):
    with pytest.raises(NotFoundError):
        await carer_progress_detail(db, admin.id)


async def test_ready_list_ignores_dropped_links_and_names_each_task_once(db, factory, audit, admin, rota):
    carer, meds, _, pkg, _ = rota
    pkg_b = await factory.package("Package B")
    await factory.carer_link(carer, pkg_b)
    await factory.task_link(meds, pkg_b)
    await update_progress(db, carer, pkg, meds, 10, admin, audit)

    ready = await carers_ready_for_assessment(db)
    assert [(c.id, [t.task_id for t in c.ready_tasks]) for c in ready] == [(carer, [meds])]

    await unlink_carer_from_package(db, carer, pkg, admin, audit)
    await unlink_carer_from_package(db, carer, pkg_b, admin, audit)

    assert await carers_ready_for_assessment(db) == []


async def test_progress_summaries(db, factory, audit, admin, rota):
    carer, meds, hoist, pkg, _ = rota
    idle = await factory.carer("Idle Carer")
    await factory.carer("Gone Carer", is_active=False)
    await update_progress(db, carer, pkg, meds, 9, admin, audit)
    await update_progress(db, carer, pkg, hoist, 1, admin, audit)

    summaries = await carer_progress_summaries(db)

    assert [s.id for s in summaries] == [carer, idle]
    busy, quiet = summaries
    assert (busy.package_count, busy.overall_progress, busy.needs_assessment) == (1, 58, True)
    assert busy.last_activity is not None
    assert (quiet.package_count, quiet.overall_progress, quiet.needs_assessment) == (0, 0, False)
    assert quiet.last_activity is None

    assert [s.id for s in await carer_progress_summaries(db, search="idle")] == [idle]

    await set_rating(db, carer, meds, "COMPETENT", "MANUAL", admin, audit, skip_confirmation=True)
    busy = (await carer_progress_summaries(db, search="Carl"))[0]
    assert not busy.needs_assessment
