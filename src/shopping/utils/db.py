"""Database helpers.

``SHOPPING_DATABASE_URI`` selects the database. When it is set, carts are
persisted through the domain's default SQL provider and coupons through
the SQLAlchemy coupon store on the same database. When it is unset both
run in memory and no engine is created.
"""

import os
import threading

from protean.domain import Domain
from sqlalchemy import Engine, MetaData, create_engine

metadata = MetaData()

_engine: Engine | None = None
_engine_lock = threading.Lock()


def _load_tables() -> None:
    # Table definitions register themselves on ``metadata`` when imported.
    import shopping.coupon.store.sql_adapter  # noqa: F401


def database_uri() -> str | None:
    return os.getenv("SHOPPING_DATABASE_URI") or None


def configure_database(domain: Domain) -> None:
    """Point the domain's default provider at ``SHOPPING_DATABASE_URI``. Call before ``domain.init()``."""
    uri = database_uri()
    if uri is None:
        return
    provider = "postgresql" if uri.startswith("postgresql") else "sqlite"
    domain.config["databases"]["default"] = {"provider": provider, "database_uri": uri}


def get_engine() -> Engine | None:
    """Return the shared engine for ``SHOPPING_DATABASE_URI``, creating the coupon tables on first use."""
    global _engine
    if _engine is not None:
        return _engine

    with _engine_lock:
        if _engine is None:
            uri = database_uri()
            if uri is None:
                return None
            engine = create_engine(uri)
            _load_tables()
            metadata.create_all(engine)
            _engine = engine
    return _engine


def reset_engine() -> None:
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None


def setup_db(domain: Domain):
    """Setup database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])

                # Accessing ``_dao`` registers each entity's table with the provider's metadata.
                for _, aggregate_record in domain.registry.aggregates.items():
                    if aggregate_record.cls.meta_.provider == provider.name:
                        domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

                for _, entity_record in domain.registry.entities.items():
                    if entity_record.cls.meta_.provider == provider.name:
                        domain.repository_for(entity_record.cls)._dao  # noqa: B018

                provider._metadata.create_all(engine)

    get_engine()


def drop_db(domain: Domain):
    """Drop database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)

    engine = get_engine()
    if engine is not None:
        _load_tables()
        metadata.drop_all(engine)
