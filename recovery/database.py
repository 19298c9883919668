from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from recovery.config import DATABASE_URL

# Postgres in deployment; the sqlite default keeps local runs dependency-free.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
	pass
