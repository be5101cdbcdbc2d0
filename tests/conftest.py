"""
Shared fixtures: a fresh SQLite file database per test, an httpx client
bound to the app, user/organization/project/tour factories and a mail outbox.
"""
import os

os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-bytes-for-hs256"
os.environ["ALLOW_SIGNUP"] = "1"
os.environ["LOG_LEVEL"] = "WARNING"

from dataclasses import dataclass  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from panodesk.core import mail  # noqa: E402
from panodesk.core.database.engine import enable_sqlite_foreign_keys, get_db, init_db  # noqa: E402
from panodesk.features.organizations.models import Organization, organization_members  # noqa: E402
from panodesk.features.projects.models import Project, project_reviewers  # noqa: E402
from panodesk.features.tours.models import Tour  # noqa: E402
from panodesk.features.users.auth import create_session_token, hash_password  # noqa: E402
from panodesk.features.users.models import Role, User  # noqa: E402
from panodesk.main import app  # noqa: E402


PASSWORD = "secret123"


@dataclass
class SentMail:
    to: str
    subject: str
    body: str


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(test_engine)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fetch(session_factory):
    """Load a row in a fresh session, so it reflects what the app committed."""
    async def _fetch(model, **filters):
        async with session_factory() as session:
            return await session.scalar(select(model).filter_by(**filters))
    return _fetch


@pytest.fixture
def count(session_factory):
    async def _count(model, **filters):
        async with session_factory() as session:
            result = await session.scalars(select(model).filter_by(**filters))
            return len(result.all())
    return _count


@pytest.fixture(autouse=True)
def outbox():
    sent: list[SentMail] = []
    mail.set_transport(lambda to, subject, body: sent.append(SentMail(to, subject, body)))
    yield sent
    mail.set_transport(None)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user.id)}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make_user(role: Role = Role.REVIEWER, email: str | None = None, password: str = PASSWORD,
                         **fields) -> User:
        counter["n"] += 1
        fields.setdefault("email_verified", True)
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@example.com",
            first_name=fields.pop("first_name", role.value.title()),
            last_name=fields.pop("last_name", str(counter["n"])),
            password_hash=hash_password(password),
            role=role,
            **fields,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest.fixture
async def super_admin(make_user):
    return await make_user(Role.SUPER_ADMIN)


@pytest.fixture
async def system_user(make_user):
    return await make_user(Role.SYSTEM_USER)


@pytest.fixture
async def manager(make_user):
    return await make_user(Role.ORGANIZATION_MANAGER)


@pytest.fixture
async def reviewer(make_user):
    return await make_user(Role.REVIEWER)


@pytest.fixture
def make_organization(db):
    async def _make_organization(manager: User, name: str = "Acme Realty", members: list[User] = ()) -> Organization:
        organization = Organization(name=name, manager_id=manager.id)
        db.add(organization)
        await db.flush()
        for member in members:
            await db.execute(organization_members.insert().values(user_id=member.id, organization_id=organization.id))
        await db.commit()
        await db.refresh(organization)
        return organization

    return _make_organization


@pytest.fixture
def make_project(db):
    async def _make_project(organization: Organization, name: str = "Harbor Loft",
                            reviewers: list[User] = ()) -> Project:
        project = Project(name=name, organization_id=organization.id)
        db.add(project)
        await db.flush()
        for user in reviewers:
            await db.execute(project_reviewers.insert().values(user_id=user.id, project_id=project.id))
        await db.commit()
        await db.refresh(project)
        return project

    return _make_project


@pytest.fixture
def make_tour(db):
    async def _make_tour(project: Project, name: str = "Main tour", version: str = "1.0") -> Tour:
        tour = Tour(name=name, version=version, project_id=project.id, data={"scenes": []})
        db.add(tour)
        await db.commit()
        await db.refresh(tour)
        return tour

    return _make_tour


@pytest.fixture
async def organization(make_organization, manager):
    return await make_organization(manager)


@pytest.fixture
async def project(make_project, organization):
    return await make_project(organization)


@pytest.fixture
async def tour(make_tour, project):
    return await make_tour(project)
