# taskgraph/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from taskgraph.config.settings import settings

engine = create_engine(settings.DATABASE_URL, **settings.engine_options())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
