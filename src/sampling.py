"""
All the sampling and estimation stuff goes here.
"""

import logging
import math
import os
from dataclasses import dataclass
from time import perf_counter
from typing import Callable

import numpy as np

logger = logging.getLogger("montecarlo.sampling")

# odd 64-bit golden ratio constant, scrambles the low bits of the worker index
SEED_SCRAMBLE = 0x9E3779B97F4A7C15
SEED_MASK = (1 << 64) - 1


def make_generator(seed: int | None) -> np.random.Generator:
    return np.random.Generator(np.random.MT19937(seed))


@dataclass(frozen=True)
class EstimatorConfig:
    worker_count: int = 4
    seed: int | None = None
    block_size: int = 1_000_000
    backend: str = "threads"
    progress: bool = False

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {self.block_size}")

    @property
    def cpu_count(self) -> int:
        # informational only; the worker count is never derived from it
        return os.cpu_count() or 1

    def make_generator(self) -> np.random.Generator:
        return make_generator(self.seed)


@dataclass(frozen=True)
class SampleResult:
    pi_estimate: float
    elapsed_seconds: float
    sample_count: int
    is_parallel: bool
    thread_count: int

    @property
    def elapsed_millis(self) -> float:
        return self.elapsed_seconds * 1e3

    @property
    def elapsed_micros(self) -> float:
        return self.elapsed_seconds * 1e6

    @property
    def method(self) -> str:
        return "Paralelo" if self.is_parallel else "Secuencial"

    @property
    def error(self) -> float:
        return abs(self.pi_estimate - math.pi)


@dataclass(frozen=True)
class TrialResult:
    sequential: SampleResult
    parallel: SampleResult

    @property
    def sample_count(self) -> int:
        return self.sequential.sample_count

    @property
    def difference(self) -> float:
        return abs(self.sequential.pi_estimate - self.parallel.pi_estimate)

    @property
    def speedup(self) -> float:
        if self.parallel.elapsed_seconds == 0:
            return math.inf
        return self.sequential.elapsed_seconds / self.parallel.elapsed_seconds


def _check_samples(samples: int) -> None:
    if samples < 1:
        raise ValueError(f"samples must be >= 1, got {samples}")


def count_in_circle(rng: np.random.Generator, samples: int, block_size: int) -> int:
    """Count how many of ``samples`` uniform points in [0, 1)^2 satisfy x^2 + y^2 <= 1.

    Points are drawn in blocks of at most ``block_size`` so memory stays bounded
    no matter how large ``samples`` gets.
    """
    count = 0
    remaining = samples
    while remaining > 0:
        n = min(remaining, block_size)
        xy = rng.random((n, 2))
        count += int(np.count_nonzero(np.einsum("ij,ij->i", xy, xy) <= 1.0))
        remaining -= n
    return count


@dataclass(frozen=True)
class SamplingJob:
    worker_index: int
    sample_count: int
    seed: int
    block_size: int

    def process(self) -> int:
        rng = make_generator(self.seed)
        tic = perf_counter()
        count = count_in_circle(rng, self.sample_count, self.block_size)
        logger.debug(
            "worker %d counted %d/%d in %.6f s",
            self.worker_index,
            count,
            self.sample_count,
            perf_counter() - tic,
        )
        return count


def derive_seeds(base: int, worker_count: int) -> list[int]:
    return [
        (base ^ ((index + 1) * SEED_SCRAMBLE)) & SEED_MASK
        for index in range(worker_count)
    ]


def partition(samples: int, worker_count: int) -> list[int]:
    size, extra = divmod(samples, worker_count)
    return [size + (1 if index < extra else 0) for index in range(worker_count)]


def generate_jobs(
    samples: int, config: EstimatorConfig, rng: np.random.Generator
) -> list[SamplingJob]:
    base = int(rng.integers(0, SEED_MASK, dtype=np.uint64, endpoint=True))
    seeds = derive_seeds(base, config.worker_count)
    sizes = partition(samples, config.worker_count)
    return [
        SamplingJob(
            worker_index=index,
            sample_count=size,
            seed=seed,
            block_size=config.block_size,
        )
        for index, (size, seed) in enumerate(zip(sizes, seeds))
    ]


def estimate_sequential(
    samples: int, rng: np.random.Generator, block_size: int = 1_000_000
) -> SampleResult:
    _check_samples(samples)

    tic = perf_counter()
    count = count_in_circle(rng, samples, block_size)
    elapsed = perf_counter() - tic

    return SampleResult(
        pi_estimate=4.0 * count / samples,
        elapsed_seconds=elapsed,
        sample_count=samples,
        is_parallel=False,
        thread_count=1,
    )


Spawner = Callable[..., list[int]]


def estimate_parallel(
    samples: int,
    config: EstimatorConfig,
    rng: np.random.Generator,
    spawn: Spawner,
) -> SampleResult:
    _check_samples(samples)

    # job and seed setup is not part of the timed region
    jobs = generate_jobs(samples, config, rng)

    tic = perf_counter()
    counts = spawn(jobs, config.worker_count, progress=config.progress)
    count = sum(counts)
    elapsed = perf_counter() - tic

    if len(counts) != len(jobs):
        raise RuntimeError(f"expected {len(jobs)} partial counts, got {len(counts)}")

    return SampleResult(
        pi_estimate=4.0 * count / samples,
        elapsed_seconds=elapsed,
        sample_count=samples,
        is_parallel=True,
        thread_count=config.worker_count,
    )


def run_trial(
    samples: int,
    config: EstimatorConfig,
    rng: np.random.Generator,
    spawn: Spawner,
) -> TrialResult:
    sequential = estimate_sequential(samples, rng, block_size=config.block_size)
    parallel = estimate_parallel(samples, config, rng, spawn)
    trial = TrialResult(sequential=sequential, parallel=parallel)
    logger.info(
        "samples=%d sequential=%.12f parallel=%.12f difference=%.12f",
        samples,
        sequential.pi_estimate,
        parallel.pi_estimate,
        trial.difference,
    )
    return trial
