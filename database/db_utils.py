import logging
import os
import re
import time

from sqlalchemy import create_engine, text
from config import DB_HOST, DB_NAME, DB_USER, DB_PASSWORD, DB_PORT

logger = logging.getLogger(__name__)

MIGRATION_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "migrations")

# Memoization cache for database engines
_engine_cache = {}


def get_db_connection(dbname=DB_NAME):
    """
    Establishes and retrieves a database engine, caching the engine for reuse.
    Returns None when the connection cannot be established.
    """
    if dbname in _engine_cache:
        logger.debug(f"Using cached connection for database: {dbname}")
        return _engine_cache[dbname]

    if not all([DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, dbname]):
        logger.error("❌ Missing required database connection parameters:")
        logger.error(f"   DB_USER: {'✅' if DB_USER else '❌ MISSING'}")
        logger.error(f"   DB_PASSWORD: {'✅' if DB_PASSWORD else '❌ MISSING'}")
        logger.error(f"   DB_HOST: {'✅' if DB_HOST else '❌ MISSING'}")
        logger.error(f"   DB_PORT: {'✅' if DB_PORT else '❌ MISSING'}")
        logger.error(f"   DB_NAME: {'✅' if dbname else '❌ MISSING'}")
        return None

    connection_string = f'postgresql+psycopg2://{DB_USER}:***@{DB_HOST}:{DB_PORT}/{dbname}'
    logger.info(f"🔄 Establishing new database connection to {dbname} at {DB_HOST}:{DB_PORT}")

    try:
        engine = create_engine(
            f'postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{dbname}',
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_size=10,
            max_overflow=20,
            connect_args={
                "connect_timeout": 30,
                "application_name": "pool_sync",
                "keepalives": 1,
                "keepalives_idle": 30,
                "keepalives_interval": 10,
                "keepalives_count": 5
            }
        )

        max_retries = 3
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                break
            except Exception as e:
                if attempt < max_retries - 1:
                    logger.warning(f"⚠️ Connection attempt {attempt + 1}/{max_retries} failed: {e}. Retrying in {retry_delay}s...")
                    time.sleep(retry_delay)
                else:
                    logger.error("❌ All connection attempts failed.")
                    raise

        _engine_cache[dbname] = engine
        logger.info(f"✅ Database connection to {dbname} established successfully.")
        logger.info(f"   Connection string: {connection_string}")
        return engine

    except Exception as e:
        logger.error(f"❌ Error connecting to database {dbname}: {e}")
        logger.error(f"   Connection string: {connection_string}")
        return None


def init_schema(engine):
    """Create every mapped table that does not exist yet."""
    from database.models import Base

    Base.metadata.create_all(engine)
    logger.info("✅ Schema ensured for all mapped tables")


def ping(engine) -> float:
    """Run a trivial query and return its latency in milliseconds."""
    started = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return (time.perf_counter() - started) * 1000.0


def apply_migrations(migration_dir=MIGRATION_DIR, engine=None):
    """
    Apply versioned SQL migrations (V<n>__<name>.sql) that are not yet
    recorded in applied_migrations.
    """
    logger.info("=== STARTING MIGRATION PROCESS ===")

    engine = engine or get_db_connection()
    if not engine:
        raise RuntimeError(f"Failed to connect to application database '{DB_NAME}'")

    migrations_applied = []
    migrations_skipped = []

    with engine.begin() as conn:
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS applied_migrations (
                version VARCHAR(255) PRIMARY KEY,
                applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
            );
        """))

        if not os.path.exists(migration_dir):
            raise FileNotFoundError(f"Migration directory not found: {migration_dir}")

        migration_files = [f for f in os.listdir(migration_dir) if re.match(r"V(\d+)__.*\.sql$", f)]
        migrations = sorted(migration_files, key=lambda f: int(re.match(r"V(\d+)__", f).group(1)))

        result = conn.execute(text("SELECT version FROM applied_migrations"))
        applied = {row[0] for row in result.fetchall()}

        for migration_file in migrations:
            version = re.match(r"V(\d+)__", migration_file).group(1)
            if version in applied:
                migrations_skipped.append(migration_file)
                continue

            logger.info(f"🔄 Applying migration: {migration_file}")
            with open(os.path.join(migration_dir, migration_file), 'r') as f:
                sql_script = f.read()

            if not sql_script.strip():
                logger.warning(f"⚠️ Migration {migration_file} is empty, skipping")
                continue

            try:
                conn.exec_driver_sql(sql_script)
                conn.execute(text("INSERT INTO applied_migrations (version) VALUES (:version)"), {"version": version})
                migrations_applied.append(migration_file)
                logger.info(f"✅ Successfully applied migration: {migration_file}")
            except Exception as migration_error:
                logger.error(f"❌ Failed to apply migration {migration_file}: {migration_error}")
                raise

    logger.info("=== MIGRATION SUMMARY ===")
    logger.info(f"✅ Applied migrations: {len(migrations_applied)} - {migrations_applied}")
    logger.info(f"⏭️ Skipped migrations: {len(migrations_skipped)} - {migrations_skipped}")
    return migrations_applied


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    apply_migrations()
