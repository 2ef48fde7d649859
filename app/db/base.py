from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Database URL selection logic
if settings.POSTGRES_URL:
    # Direct PostgreSQL URL wins when provided
    DATABASE_URL = settings.POSTGRES_URL
    connect_args = {}
    logger.info("Using direct PostgreSQL URL")
else:
    DATABASE_URL = settings.DATABASE_URL
    connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
    logger.info(f"Using database: {DATABASE_URL.split('@')[-1]}")

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL, connect_args=connect_args, pool_pre_ping=True, pool_recycle=300
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
