# app/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv
import os
import logging

load_dotenv()

# SQL echo
if os.getenv("SQL_ECHO", "false").lower() in {"1", "true", "yes"}:
    logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./programhub.db")


def build_engine(url: str, **kwargs):
    """Create an engine, applying the SQLite options the app needs across threads."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return create_engine(url, connect_args=connect_args, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,  # Checks connection before using
        **kwargs
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
