import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from sampling import SamplingJob
from tqdm import tqdm


def start_barrier(
    jobs: list[SamplingJob], worker_count: int
) -> threading.Barrier:
    if len(jobs) != worker_count:
        raise ValueError(
            f"expected one job per worker ({worker_count}), got {len(jobs)}"
        )
    return threading.Barrier(worker_count)


def process_job(job: SamplingJob, barrier: threading.Barrier) -> int:
    # no job starts sampling until every worker thread is running
    barrier.wait()
    return job.process()


def spawn_thread_jobs(
    jobs: list[SamplingJob], worker_count: int, progress: bool = False
) -> list[int]:
    barrier = start_barrier(jobs, worker_count)

    # map keeps job order; the join happens when the executor exits
    with ThreadPoolExecutor(
        max_workers=worker_count, thread_name_prefix="montecarlo"
    ) as executor:
        counts = list(
            tqdm(
                executor.map(partial(process_job, barrier=barrier), jobs),
                total=len(jobs),
                desc="Workers Completed",
                disable=not progress,
            )
        )

    return counts
