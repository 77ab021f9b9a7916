import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext

import dask
from dask.diagnostics import ProgressBar
from sampling import SamplingJob
from threads_app import start_barrier


@dask.delayed(pure=False)
def process_job(job: SamplingJob, barrier: threading.Barrier) -> int:
    barrier.wait()
    return job.process()


def spawn_dask_jobs(
    jobs: list[SamplingJob], worker_count: int, progress: bool = False
) -> list[int]:
    barrier = start_barrier(jobs, worker_count)
    tasks = [process_job(job, barrier) for job in jobs]

    # make sure we are using the threaded scheduler with exactly worker_count threads
    with ThreadPoolExecutor(worker_count, thread_name_prefix="montecarlo-dask") as pool:
        with dask.config.set(pool=pool, scheduler="threads"):
            with ProgressBar() if progress else nullcontext():
                counts = dask.compute(*tasks)

    return list(counts)
