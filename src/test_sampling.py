import math
import time
from unittest.mock import patch

import numpy as np
import pytest
from sampling import (
    EstimatorConfig,
    SampleResult,
    SamplingJob,
    TrialResult,
    count_in_circle,
    derive_seeds,
    estimate_parallel,
    estimate_sequential,
    generate_jobs,
    make_generator,
    partition,
    run_trial,
)
from threads_app import spawn_thread_jobs


def serial_spawn(jobs, worker_count, progress=False):
    return [job.process() for job in jobs]


def test_count_in_circle_blocks_do_not_change_the_count():
    a = count_in_circle(make_generator(7), 10_001, block_size=10_001)
    b = count_in_circle(make_generator(7), 10_001, block_size=1000)
    assert a == b
    assert 0 <= a <= 10_001


def test_count_in_circle_small_blocks():
    count = count_in_circle(make_generator(7), 1000, block_size=3)
    assert 0 <= count <= 1000


@pytest.mark.parametrize("samples", [1, 2, 17, 1000])
def test_estimates_are_in_range(samples):
    config = EstimatorConfig(worker_count=4, seed=1)
    rng = config.make_generator()
    seq = estimate_sequential(samples, rng)
    par = estimate_parallel(samples, config, rng, spawn_thread_jobs)
    for result in (seq, par):
        assert 0.0 <= result.pi_estimate <= 4.0
        assert result.sample_count == samples


def test_sequential_converges_with_fixed_seed():
    result = estimate_sequential(10_000_000, make_generator(12345))
    assert abs(result.pi_estimate - math.pi) < 0.01


def test_parallel_converges_with_fixed_seed():
    config = EstimatorConfig(worker_count=4, seed=12345)
    result = estimate_parallel(
        10_000_000, config, config.make_generator(), spawn_thread_jobs
    )
    assert abs(result.pi_estimate - math.pi) < 0.01


def test_sequential_is_deterministic_for_a_seed():
    a = estimate_sequential(50_000, make_generator(99))
    b = estimate_sequential(50_000, make_generator(99))
    assert a.pi_estimate == b.pi_estimate


def test_parallel_is_deterministic_for_a_seed():
    config = EstimatorConfig(worker_count=3, seed=99)
    a = estimate_parallel(50_000, config, config.make_generator(), spawn_thread_jobs)
    b = estimate_parallel(50_000, config, config.make_generator(), spawn_thread_jobs)
    assert a.pi_estimate == b.pi_estimate


def test_parallel_does_not_depend_on_scheduling():
    config = EstimatorConfig(worker_count=4, seed=5)
    threaded = estimate_parallel(
        100_000, config, config.make_generator(), spawn_thread_jobs
    )
    serial = estimate_parallel(100_000, config, config.make_generator(), serial_spawn)
    assert threaded.pi_estimate == serial.pi_estimate


def test_thread_counts():
    config = EstimatorConfig(worker_count=6, seed=3)
    rng = config.make_generator()
    assert estimate_sequential(1000, rng).thread_count == 1
    par = estimate_parallel(1000, config, rng, spawn_thread_jobs)
    assert par.thread_count == 6
    assert par.is_parallel


def test_sequential_and_parallel_agree_statistically():
    config = EstimatorConfig(worker_count=4, seed=2024)
    trial = run_trial(200_000, config, config.make_generator(), spawn_thread_jobs)
    assert math.isfinite(trial.difference)
    assert trial.difference < 0.1


def test_single_worker_matches_sequential_statistically():
    config = EstimatorConfig(worker_count=1, seed=11)
    trial = run_trial(200_000, config, config.make_generator(), spawn_thread_jobs)
    assert trial.parallel.thread_count == 1
    assert trial.difference < 0.1


def test_more_workers_than_samples():
    config = EstimatorConfig(worker_count=8, seed=0)
    result = estimate_parallel(3, config, config.make_generator(), spawn_thread_jobs)
    assert result.pi_estimate in {0.0, 4 / 3, 8 / 3, 4.0}


@pytest.mark.parametrize("samples", [0, -1])
def test_non_positive_samples_are_rejected(samples):
    config = EstimatorConfig(seed=0)
    with pytest.raises(ValueError):
        estimate_sequential(samples, config.make_generator())
    with pytest.raises(ValueError):
        estimate_parallel(samples, config, config.make_generator(), spawn_thread_jobs)


def test_invalid_config_is_rejected():
    with pytest.raises(ValueError):
        EstimatorConfig(worker_count=0)
    with pytest.raises(ValueError):
        EstimatorConfig(block_size=0)


@pytest.mark.parametrize(
    "samples, workers",
    [(10, 3), (3, 8), (1_000_000, 4), (7, 1)],
)
def test_partition_is_fair(samples, workers):
    sizes = partition(samples, workers)
    assert len(sizes) == workers
    assert sum(sizes) == samples
    assert max(sizes) - min(sizes) <= 1


def test_derive_seeds_are_distinct_64_bit():
    for base in (0, 1, 2**63, 2**64 - 1):
        seeds = derive_seeds(base, 64)
        assert len(set(seeds)) == 64
        assert all(0 <= s < 2**64 for s in seeds)


def test_generate_jobs():
    config = EstimatorConfig(worker_count=3, seed=1, block_size=500)
    jobs = generate_jobs(1000, config, config.make_generator())
    assert [j.worker_index for j in jobs] == [0, 1, 2]
    assert sum(j.sample_count for j in jobs) == 1000
    assert len({j.seed for j in jobs}) == 3
    assert all(j.block_size == 500 for j in jobs)


def test_job_with_no_samples_counts_nothing():
    job = SamplingJob(worker_index=0, sample_count=0, seed=1, block_size=10)
    assert job.process() == 0


def test_elapsed_units():
    rng = np.random.Generator(np.random.MT19937(0))
    result = estimate_sequential(1000, rng)
    assert result.elapsed_seconds >= 0
    assert result.elapsed_millis == pytest.approx(result.elapsed_seconds * 1e3)
    assert result.elapsed_micros == pytest.approx(result.elapsed_seconds * 1e6)
    assert result.method == "Secuencial"


def test_thread_start_failure_is_fatal():
    config = EstimatorConfig(worker_count=2, seed=0)
    with patch(
        "threading.Thread.start", side_effect=RuntimeError("can't start new thread")
    ):
        with pytest.raises(RuntimeError, match="can't start new thread"):
            estimate_parallel(1000, config, config.make_generator(), spawn_thread_jobs)


def test_missing_partial_counts_are_an_error():
    config = EstimatorConfig(worker_count=2, seed=0)
    with pytest.raises(RuntimeError):
        estimate_parallel(
            1000, config, config.make_generator(), lambda jobs, n, progress: [1]
        )


def test_trial_difference_and_speedup():
    seq = SampleResult(3.2, 2.0, 100, False, 1)
    par = SampleResult(3.0, 0.5, 100, True, 4)
    trial = TrialResult(sequential=seq, parallel=par)
    assert trial.difference == pytest.approx(0.2)
    assert trial.speedup == pytest.approx(4.0)
    assert trial.sample_count == 100
    assert seq.error == pytest.approx(abs(3.2 - math.pi))
    assert TrialResult(seq, SampleResult(3.0, 0.0, 100, True, 4)).speedup == math.inf


def test_parallel_clock_includes_pool_construction(monkeypatch):
    import threads_app

    real_executor = threads_app.ThreadPoolExecutor

    def slow_executor(*args, **kwargs):
        time.sleep(0.2)
        return real_executor(*args, **kwargs)

    monkeypatch.setattr(threads_app, "ThreadPoolExecutor", slow_executor)
    config = EstimatorConfig(worker_count=2, seed=0)
    result = estimate_parallel(1000, config, config.make_generator(), spawn_thread_jobs)
    assert result.elapsed_seconds >= 0.2


def test_parallel_clock_excludes_job_setup(monkeypatch):
    import sampling

    real_generate_jobs = sampling.generate_jobs

    def slow_generate_jobs(*args, **kwargs):
        time.sleep(0.5)
        return real_generate_jobs(*args, **kwargs)

    monkeypatch.setattr(sampling, "generate_jobs", slow_generate_jobs)
    config = EstimatorConfig(worker_count=2, seed=0)
    result = estimate_parallel(1000, config, config.make_generator(), serial_spawn)
    assert result.elapsed_seconds < 0.5
