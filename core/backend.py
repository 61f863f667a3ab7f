"""Wire up the auth provider, data store, image storage and slip generator.

The hosted backend is used when ``[firebase]`` settings are present;
otherwise everything runs on the local database from ``init_db``.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from core.auth import AuthProvider, AuthUser, HostedAuthProvider, LocalAuthProvider
from core.config import ai_settings, firebase_settings, hosted_backend_enabled
from core.db_init import init_db
from core.gate_pass import HostedSlipGenerator, PlainTextSlipGenerator, SlipGenerator
from core.storage import CloudImageStorage, ImageStorage, LocalImageStorage
from core.store import DBConnection, RealtimeDatabaseStore, SqlTreeStore, TreeStore

logger = logging.getLogger(__name__)


@dataclass
class Backend:
    auth: AuthProvider
    slip_generator: SlipGenerator
    hosted: bool = False
    conn: Optional[DBConnection] = None
    settings: dict = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)

    def store_for(self, user: AuthUser) -> TreeStore:
        if self.hosted:
            return RealtimeDatabaseStore(self.settings["database_url"], user.id_token, session=self.session)
        return SqlTreeStore(self.conn)

    def storage_for(self, user: AuthUser) -> ImageStorage:
        if self.hosted and self.settings.get("storage_bucket"):
            return CloudImageStorage(self.settings["storage_bucket"], user.id_token, session=self.session)
        return LocalImageStorage()


def build_slip_generator(session: Optional[requests.Session] = None) -> SlipGenerator:
    ai = ai_settings()
    if ai["api_key"]:
        return HostedSlipGenerator(ai["api_key"], ai["model"], session=session)
    logger.info("No AI key configured; using plain-text gate pass slips")
    return PlainTextSlipGenerator()


def build_backend() -> Backend:
    """Create the backend for this server process (cached by app.py)."""
    session = requests.Session()
    if hosted_backend_enabled():
        settings = firebase_settings()
        logger.info("Using hosted backend at %s", settings["database_url"])
        return Backend(
            auth=HostedAuthProvider(settings["api_key"], session=session),
            slip_generator=build_slip_generator(session),
            hosted=True,
            settings=settings,
            session=session,
        )
    conn = init_db()
    logger.info("Using local database backend")
    return Backend(
        auth=LocalAuthProvider(conn),
        slip_generator=build_slip_generator(session),
        conn=conn,
        session=session,
    )


@dataclass
class AppContext:
    """What a page needs to talk to the backend for the signed-in user."""

    backend: Backend
    user: AuthUser

    def __post_init__(self):
        self.store = self.backend.store_for(self.user)
        self.storage = self.backend.storage_for(self.user)

    @property
    def uid(self) -> str:
        return self.user.uid

    @property
    def auth(self) -> AuthProvider:
        return self.backend.auth

    @property
    def slip_generator(self) -> SlipGenerator:
        return self.backend.slip_generator
