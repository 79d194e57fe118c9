import functools
import time

from loguru import logger


def log_job(func):
    """
    A decorator for scheduled async jobs that logs entry, exit, and exceptions.

    Features:
    - Logs the job name before execution
    - Logs elapsed time after successful execution
    - Logs exceptions with traceback and returns None, so one failing job
      never stops the scheduler or a manual refresh
    - Preserves function metadata and return values
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        job_name = func.__name__
        logger.debug(f"Entering job {job_name}")
        started = time.monotonic()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.exception(f"Job {job_name} failed: {type(e).__name__}: {e}")
            return None

        logger.debug(f"Job {job_name} finished in {time.monotonic() - started:.2f}s")
        return result

    return wrapper
