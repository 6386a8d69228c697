from advanced_alchemy.base import UUIDAuditBase


class Base(UUIDAuditBase):
    """Base for all wikitree models: UUID primary key plus created/updated timestamps."""

    __abstract__ = True
