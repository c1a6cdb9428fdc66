import logging
import math
import os
import socket
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

MAX_THREADS_SMALL_HOST = 8
LARGE_HOST_CORE_COUNT = 16
LARGE_HOST_CORE_FRACTION = 0.75
LIMITED_HOST_PREFIXES = ("Proto-", "PrismWeb")
WEB_SERVER_PREFIX = "PrismWeb3"


@dataclass(frozen=True)
class ThreadCountDecision:
    """Number of threads MS-GF+ should use, and how it was chosen."""

    thread_count: int
    message: str = ""


def get_core_count() -> int:
    """Return the number of cores on this computer."""
    return os.cpu_count() or 1


def parse_job_thread_count(text: Optional[str]) -> int:
    """
    Parse the job-level thread count setting.

    :param text: the setting, which may be empty or "all"
    :return: the thread count, or 0 if the setting does not hold a number
    """
    if text is None or not str(text).strip() or str(text).strip().lower() == "all":
        return 0
    try:
        return int(str(text).strip())
    except ValueError:
        return 0


def is_limited_host(host_name: str) -> bool:
    """Return True if the host is a shared server on which MS-GF+ must not use all the cores."""
    return host_name.lower().startswith(tuple(prefix.lower() for prefix in LIMITED_HOST_PREFIXES))


def determine_thread_count(
    param_file_threads: int,
    job_threads: int = 0,
    core_count: Optional[int] = None,
    host_name: Optional[str] = None,
) -> ThreadCountDecision:
    """
    Decide how many threads MS-GF+ should use.

    A positive job-level thread count overrides the parameter file. If neither defines one, or when running on a
    shared host, the count is derived from the number of cores: shared hosts use at most 75% of the cores (50% on the
    web server), other hosts use all cores but one when there are more than 4. More than 8 threads are only used on
    hosts with at least 16 cores, and then never more than 75% of the cores, since Java keeps the threads on a single
    NUMA node.

    :param param_file_threads: NumThreads from the parameter file; 0 if undefined or "All"
    :param job_threads: thread count defined for the job; 0 if undefined
    :param core_count: number of cores; determined from the system if not given
    :param host_name: name of this computer; determined from the system if not given
    :return: the thread count and the message describing it
    """
    thread_count = job_threads if job_threads > 0 else param_file_threads

    if host_name is None:
        host_name = socket.gethostname()
    limit_core_usage = is_limited_host(host_name)

    if thread_count > 0 and not limit_core_usage:
        return ThreadCountDecision(thread_count)

    if core_count is None:
        core_count = get_core_count()

    if limit_core_usage:
        if host_name.lower().startswith(WEB_SERVER_PREFIX.lower()):
            max_allowed_cores = math.floor(core_count * 0.5)
        else:
            max_allowed_cores = math.floor(core_count * LARGE_HOST_CORE_FRACTION)

        if not 0 < thread_count < max_allowed_cores:
            thread_count = max_allowed_cores
    elif core_count > 4:
        thread_count = core_count - 1
    else:
        thread_count = core_count

    if thread_count > MAX_THREADS_SMALL_HOST:
        if core_count >= LARGE_HOST_CORE_COUNT:
            max_allowed_cores = math.floor(core_count * LARGE_HOST_CORE_FRACTION)
            if thread_count > max_allowed_cores:
                message = (
                    f"The system has {core_count} cores; MS-GF+ will use {max_allowed_cores} cores "
                    f"(bumped down from {thread_count} to avoid overloading a single NUMA node)"
                )
                thread_count = max_allowed_cores
            else:
                message = f"The system has {core_count} cores; MS-GF+ will use {thread_count} cores"
        else:
            message = (
                f"The system has {core_count} cores; MS-GF+ will use {MAX_THREADS_SMALL_HOST} cores "
                f"(bumped down from {thread_count} to avoid overloading a single NUMA node)"
            )
            thread_count = MAX_THREADS_SMALL_HOST
    else:
        message = f"The system has {core_count} cores; MS-GF+ will use {thread_count} cores"

    logger.info(message)
    return ThreadCountDecision(thread_count, message)
