from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from app.config import load_settings

# Database URL comes from the environment-backed settings.
# Default is a lightweight local sqlite DB.
SQLALCHEMY_DATABASE_URL = load_settings().database_url

engine = create_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
	pass


def insert_for(session: Session, model):
	"""Return a dialect-specific INSERT construct supporting ON CONFLICT.

	Upserts must be a single statement so concurrent writers resolve on the
	natural key instead of racing a read-then-write.
	"""
	dialect = session.get_bind().dialect.name
	if dialect == "postgresql":
		return postgresql.insert(model)
	if dialect == "sqlite":
		return sqlite.insert(model)
	raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")
