from __future__ import annotations

import logging
from typing import Optional

from src.backend.config import settings
from src.backend.infra.db.inmemory import set_account_repository
from src.backend.infra.db.models import Base
from src.backend.infra.db.session import create_engine_for_url, create_sqlalchemy_session_factory
from src.backend.infra.db.sql_accounts import SqlAccountRepository

logger = logging.getLogger(__name__)


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Switch the account store to the SQL-backed implementation.

    Called from application startup. Unless ``force`` is set, this is a no-op
    when USE_SQL_REPOS is not enabled or no DATABASE_URL is configured, and
    the in-memory store stays active. Returns True when the swap happened.
    """

    if not (settings.use_sql_repos or force):
        logger.warning("Account store is in-memory; accounts will not survive a restart")
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        # Misconfigured: requested SQL repos but no database URL.
        logger.error("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory account store")
        return False

    engine = create_engine_for_url(db_url)

    # Create tables if they do not exist. A managed Postgres deployment should
    # create the accounts table through its own migrations.
    Base.metadata.create_all(engine)

    set_account_repository(SqlAccountRepository(create_sqlalchemy_session_factory(engine)))
    logger.info("Account store switched to SQL backend (%s)", engine.url.render_as_string(hide_password=True))
    return True
