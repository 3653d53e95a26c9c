"""
資料庫連線與 Session（Async SQLAlchemy）
- PostgreSQL 一律改用 asyncpg driver（postgresql+asyncpg://）
- 正式環境不在啟動時 create_all（交給 Alembic）；開發可設 AUTO_CREATE_TABLES=true
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from app.config import settings

db_url = str(settings.database_url or "").strip()

# Render / 其他環境常給 postgres:// 或 postgresql://
if db_url.startswith("postgres://"):
    db_url = "postgresql+asyncpg://" + db_url[len("postgres://"):]
elif db_url.startswith("postgresql://"):
    db_url = "postgresql+asyncpg://" + db_url[len("postgresql://"):]
elif db_url.startswith("postgresql+psycopg2://"):
    db_url = "postgresql+asyncpg://" + db_url[len("postgresql+psycopg2://"):]

engine = create_async_engine(
    db_url,
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


async def init_db():
    if not settings.auto_create_tables:
        return
    # 匯入 models 以註冊所有資料表
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
