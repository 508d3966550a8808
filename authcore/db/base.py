# authcore/db/base.py
from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Nomes de constraints estáveis entre SQLite (testes) e Postgres
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base declarativa de todos os modelos ORM do núcleo."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
