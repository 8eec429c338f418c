"""In-process mutual exclusion per record.

Guarded actions are read-check-write sequences; holding the record's lock
for the whole sequence keeps two actions on the same change order from
interleaving inside one worker. Across workers the conditional update in
the repository is what catches races.
"""
import asyncio
from contextlib import asynccontextmanager
from weakref import WeakValueDictionary

from loguru import logger

_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()


def _lock_for(key: str) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


@asynccontextmanager
async def record_lock(kind: str, record_id):
    key = f"{kind}:{record_id}"
    lock = _lock_for(key)
    if lock.locked():
        logger.debug(f"Waiting for lock {key}")
    async with lock:
        yield
