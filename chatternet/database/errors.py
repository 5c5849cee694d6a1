from contextlib import contextmanager
from typing import Iterator

from pymongo.errors import ConnectionFailure, ExecutionTimeout

from chatternet.core.exceptions import TransientStoreError


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver connectivity failures as TransientStoreError."""
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout) as exc:
        raise TransientStoreError(f"{operation}: datastore unavailable") from exc
