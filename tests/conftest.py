"""Pytest configuration for the competency engine.

Each test gets a fresh in-memory SQLite database. Service tests use the
``db`` session directly; HTTP tests go through ``client``, which runs the
FastAPI app with ``get_db`` pointed at the same database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from caretrack.core.security import create_access_token
from caretrack.database import Base, get_db
from caretrack.main import app
from caretrack.models.assessment import Assessment, AssessmentTaskCoverage
from caretrack.models.package import CarePackage, CarerPackageAssignment, PackageTaskAssignment
from caretrack.models.task import Task
from caretrack.models.user import User
from caretrack.services.audit import Actor, DatabaseAuditSink, RecordingAuditSink
from caretrack.utils.clock import utcnow


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit(db):
    return DatabaseAuditSink(db, ip_address="127.0.0.1", user_agent="pytest")


@pytest.fixture
def recorder():
    return RecordingAuditSink()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


class Factory:
    """Creates master records and returns their ids.

    Ids rather than ORM objects: a failed engine call rolls the session
    back, which expires every loaded instance.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._seq = 0

    async def _add(self, obj) -> int:
        self.db.add(obj)
        await self.db.commit()
        return obj.id

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def admin(self, name: str = "Alice Admin") -> int:
        return await self._add(User(email=f"admin{self._next()}@caretrack.org", name=name, role="admin"))

    async def carer(self, name: str = "Carl Carer", is_active: bool = True) -> int:
        return await self._add(
            User(email=f"carer{self._next()}@caretrack.org", name=name, role="carer", is_active=is_active)
        )

    async def task(self, name: str = "Medication round", target_count: int = 10, is_active: bool = True) -> int:
        return await self._add(Task(name=name, target_count=target_count, is_active=is_active))

    async def package(self, name: str = "Package", postcode: str = "AB1 2CD") -> int:
        return await self._add(CarePackage(name=name, postcode=postcode))

    async def carer_link(self, carer_id: int, package_id: int, is_active: bool = True) -> int:
        return await self._add(
            CarerPackageAssignment(
                carer_id=carer_id, package_id=package_id, is_active=is_active, assigned_at=utcnow()
            )
        )

    async def task_link(self, task_id: int, package_id: int, is_active: bool = True) -> int:
        return await self._add(
            PackageTaskAssignment(
                task_id=task_id, package_id=package_id, is_active=is_active, assigned_at=utcnow()
            )
        )

    async def assessment(self, task_ids, name: str = "Practical observation", is_active: bool = True) -> int:
        assessment_id = await self._add(Assessment(name=name, is_active=is_active))
        for task_id in task_ids:
            self.db.add(AssessmentTaskCoverage(assessment_id=assessment_id, task_id=task_id))
        await self.db.commit()
        return assessment_id


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
async def admin(factory):
    admin_id = await factory.admin()
    return Actor(id=admin_id, name="Alice Admin")


@pytest.fixture
def headers():
    return auth_headers
