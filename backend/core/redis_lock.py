import uuid
import logging
import redis
from django.conf import settings

logger = logging.getLogger(__name__)


def get_redis():
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


class LockNotAcquired(RuntimeError):
    pass


class SingleInstanceLock:
    """
    Redis lock that keeps maintenance jobs (credit reconciliation,
    commission payout) from running twice at the same time.

    - acquire: SET NX PX
    - release: compare-and-delete inside WATCH/MULTI
    """

    def __init__(self, key: str, ttl_seconds: int, client=None):
        self.key = key
        self.ttl_ms = int(ttl_seconds * 1000)
        self.token = uuid.uuid4().hex
        self.r = client or get_redis()

    def acquire(self) -> bool:
        return bool(self.r.set(self.key, self.token, nx=True, px=self.ttl_ms))

    def release(self) -> bool:
        pipe = self.r.pipeline()
        try:
            pipe.watch(self.key)
            if pipe.get(self.key) == self.token:
                pipe.multi()
                pipe.delete(self.key)
                pipe.execute()
                return True
            pipe.unwatch()
        except redis.WatchError:
            logger.warning("Lock %s changed while releasing", self.key)
        finally:
            pipe.reset()
        return False

    def __enter__(self):
        if not self.acquire():
            raise LockNotAcquired(f"{self.key} is held by another process")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
