from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Базовый класс для моделей
Base = declarative_base()


def create_session_factory(database_url: str, echo: bool = False):
    """Создание асинхронного движка и фабрики сессий"""
    engine = create_async_engine(database_url, future=True, echo=echo)
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_factory
