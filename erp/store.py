import logging
from contextlib import contextmanager

from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction

from .errors import StorageError

logger = logging.getLogger(__name__)


class Store:
    """
    Handle on the database used by the order, kitchen and billing services.

    A store is constructed explicitly and passed into each service. It owns
    one Django database alias; ``open()`` and ``close()`` bound its use, and
    it can be used as a context manager:

        with Store('default') as store:
            OrderService(store).create_order(...)
    """

    def __init__(self, alias=DEFAULT_DB_ALIAS):
        self.alias = alias
        self.is_open = False

    def __repr__(self):
        return f"<Store {self.alias} ({'open' if self.is_open else 'closed'})>"

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def connection(self):
        return connections[self.alias]

    def open(self):
        with self.guard():
            self.connection.ensure_connection()
        self.is_open = True
        return self

    def close(self):
        if not self.is_open:
            return
        self.is_open = False
        connection = self.connection
        # An enclosing atomic block owns the connection until it exits
        if connection.in_atomic_block:
            return
        connection.close_if_unusable_or_obsolete()

    @contextmanager
    def guard(self):
        """Translate database failures raised inside the block into StorageError."""
        try:
            yield
        except DatabaseError as exc:
            logger.error('Database error on %s: %s', self.alias, exc)
            raise StorageError(f'Storage failure: {exc}') from exc

    @contextmanager
    def atomic(self):
        """Run the block as a single database transaction."""
        with self.guard():
            with transaction.atomic(using=self.alias):
                yield
