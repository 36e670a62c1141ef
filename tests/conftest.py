import pytest
import pytest_asyncio
import uuid
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from lending_tracker.main import app
from lending_tracker.dependencies import get_db
from lending_tracker.database import Base
from lending_tracker import auth


# テスト用データベースURL（SQLiteのメモリデータベースを使用）
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    # テストごとに空のデータベースを用意する
    test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()

@pytest_asyncio.fixture
async def db_session(engine):
    # 非同期セッションを生成
    TestingSessionLocal = sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session

@pytest_asyncio.fixture
def override_get_db(db_session):
    # 依存関係をオーバーライド
    async def _override_get_db():
        yield db_session
    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.pop(get_db, None)

@pytest_asyncio.fixture
async def client(override_get_db):
    # AsyncClientを使用してテストクライアントを作成
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

@pytest.fixture
def unique_username():
    """ユニークなユーザー名を生成するフィクスチャ"""
    return f"user_{uuid.uuid4()}"

@pytest_asyncio.fixture
async def admin_headers(db_session):
    """最初に登録された管理者ユーザーの認証ヘッダー"""
    user = await auth.register_user(db_session, "admin_user", "adminpass")
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}

@pytest_asyncio.fixture
async def user_headers(db_session, admin_headers):
    """管理者の後に登録された一般ユーザーの認証ヘッダー"""
    user = await auth.register_user(db_session, "regular_user", "userpass")
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}
