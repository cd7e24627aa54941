from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from apps.lectures.config import get_lectures_settings

# Import models so SQLAlchemy can discover them
from apps.lectures.models import DocumentRecord

settings = get_lectures_settings()


def build_engine(database_url: str):
    """Create the async engine, with Postgres-only options kept off SQLite"""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False}
        )
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=300,
        connect_args={
            "server_settings": {
                "application_name": "lecture_search"
            },
            "ssl": False
        }
    )


def build_session_factory(bind) -> sessionmaker:
    return sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)

async def init_lectures_db(bind=None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
