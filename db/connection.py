from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import config

if config.DATABASE_URL.startswith("sqlite"):
    # Local runs and tests: one shared in-process connection.
    engine = create_engine(
        config.DATABASE_URL,
        echo=config.SQL_ECHO,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        config.DATABASE_URL,
        echo=config.SQL_ECHO,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
