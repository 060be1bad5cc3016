"""
資料庫連線與 Session（Async SQLAlchemy）
- PostgreSQL 強制使用 asyncpg driver（postgresql+asyncpg://）
- 正式環境不要在啟動時 create_all（交給 Alembic）
"""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from payroll_core.config import settings


def normalize_database_url(url: str) -> str:
    """Render / 其他環境常給 postgres:// 或 postgresql://，Async 必須改成 postgresql+asyncpg://"""
    db_url = str(url or "").strip()
    if db_url.startswith("postgres://"):
        return "postgresql+asyncpg://" + db_url[len("postgres://"):]
    if db_url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + db_url[len("postgresql://"):]
    if db_url.startswith("postgresql+psycopg2://"):
        return "postgresql+asyncpg://" + db_url[len("postgresql+psycopg2://"):]
    return db_url


engine = create_async_engine(
    normalize_database_url(settings.database_url),
    echo=settings.debug,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def dialect_insert(db: AsyncSession, model):
    """依目前連線的方言回傳支援 ON CONFLICT 的 insert（PostgreSQL / SQLite）"""
    name = (await db.connection()).dialect.name
    if name == "postgresql":
        return pg_insert(model)
    if name == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"不支援的資料庫方言：{name}")
