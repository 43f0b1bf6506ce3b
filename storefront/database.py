"""Database configuration and initialization."""
from contextlib import contextmanager

from sqlalchemy import create_engine, text, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Primary/foreign key type: BIGINT on PostgreSQL, INTEGER (rowid alias) on SQLite
IdType = BigInteger().with_variant(Integer(), 'sqlite')

# Global session and engine
engine = None
db_session = None
_session_factory = None


def init_db(app):
    """Initialize database connection."""
    global engine, db_session, _session_factory

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if not database_uri.startswith('sqlite'):
        engine_options.update(pool_size=10, max_overflow=20)

    engine = create_engine(database_uri, **engine_options)

    _session_factory = sessionmaker(autoflush=False, bind=engine)
    db_session = scoped_session(_session_factory)

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the SQLAlchemy engine."""
    return engine


@contextmanager
def transaction_scope(isolation_level='SERIALIZABLE', timeout_ms=None):
    """
    Run a unit of work in a dedicated session at the given isolation level.

    The session's connection is checked out with the requested isolation
    level, so every read and write inside the block sees one serialized
    view of the database. Commits when the block exits cleanly; any
    exception rolls back every write attempted inside the block and is
    re-raised unchanged.

    Args:
        isolation_level: SQLAlchemy isolation level name
        timeout_ms: Statement timeout for the transaction (PostgreSQL only)
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized.")

    bind = engine.execution_options(isolation_level=isolation_level)
    session = _session_factory(bind=bind)
    try:
        if timeout_ms and engine.dialect.name == 'postgresql':
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
