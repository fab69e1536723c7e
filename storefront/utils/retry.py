# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import requests
import redis


def _retry_on(exc_type, attempts: int, multiplier: float, max_wait: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=multiplier, min=multiplier, max=max_wait),
        retry=retry_if_exception_type(exc_type),
    )


#payment processor calls, only transport errors are retried
def http_retry(attempts: int = 3):
    return _retry_on(requests.RequestException, attempts, 0.3, 3)


def redis_retry(attempts: int = 3):
    return _retry_on(redis.RedisError, attempts, 0.2, 2)
