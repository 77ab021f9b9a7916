import logging
import sys

import click
from dask_app import spawn_dask_jobs
from sampling import (
    EstimatorConfig,
    SampleResult,
    Spawner,
    TrialResult,
    run_trial,
)
from storage import DEFAULT_SCHEMA, AbstractStorage, DelimitedFileStorage
from threads_app import spawn_thread_jobs

DEFAULT_SAMPLE_SIZES = (3000, 300000, 3000000)
DEFAULT_OUTPUT = "resultados_montecarlo_todos.csv"

logger = logging.getLogger("montecarlo")


def configure_logging(debug: bool) -> None:
    if not debug:
        return
    logger.setLevel(logging.DEBUG)
    stderr_handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)


def get_spawner(backend: str) -> Spawner:
    if backend == "threads":
        return spawn_thread_jobs
    elif backend == "dask":
        return spawn_dask_jobs
    else:
        raise NotImplementedError(f"unknown backend: {backend}")


def echo_result(result: SampleResult) -> None:
    if result.is_parallel:
        title = "Monte Carlo Paralelizado"
    else:
        title = "Monte Carlo Sin Paralelizar"
    click.echo(f"---------------- {title} ----------------")
    if result.is_parallel:
        click.echo(f"Numero de Hilos utilizados: {result.thread_count}")
    click.echo(f"Numero de Samples = {result.sample_count}")
    click.echo(f"pi = {result.pi_estimate:.12f}")
    click.echo(f"Error absoluto = {result.error:.12f}")
    click.echo(f"Tiempo (segundos) => {result.elapsed_seconds:.12f} s")
    click.echo(f"Tiempo (milisegundos) => {result.elapsed_millis:.8f} ms")
    click.echo(f"Tiempo (microsegundos) => {result.elapsed_micros:.8f} us")
    click.echo("-" * 60 + "\n")


def echo_comparison(trial: TrialResult) -> None:
    click.echo("Comparacion de resultados:")
    click.echo(f"PI secuencial: {trial.sequential.pi_estimate:.12f}")
    click.echo(f"PI paralelo:   {trial.parallel.pi_estimate:.12f}")
    click.echo(f"Diferencia:    {trial.difference:.12f}")
    click.echo(f"Speedup:       {trial.speedup:.4f}x")


def run_trials(
    sizes: list[int],
    config: EstimatorConfig,
    storage: AbstractStorage,
    spawn: Spawner,
) -> list[TrialResult]:
    rng = config.make_generator()
    trials = []
    for i, samples in enumerate(sizes):
        click.echo(f"\n======= PRUEBA CON {samples} MUESTRAS =======\n")
        trial = run_trial(samples, config, rng, spawn)
        echo_result(trial.sequential)
        echo_result(trial.parallel)
        echo_comparison(trial)

        # first trial recreates the file, the rest append to it
        if i == 0:
            storage.initialize()
        storage.append([trial.sequential, trial.parallel])
        trials.append(trial)
    return trials


@click.command()
@click.argument("samples", type=click.IntRange(min=1), required=False)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=4,
    show_default=True,
    help="Number of worker threads for the parallel estimator.",
)
@click.option(
    "--seed",
    type=click.IntRange(min=0),
    default=None,
    help="Seed for the random generators. Fresh entropy if not given.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False),
    default=DEFAULT_OUTPUT,
    show_default=True,
    help="Semicolon-delimited file the results are written to.",
)
@click.option(
    "--backend",
    type=click.Choice(["threads", "dask"]),
    default="threads",
    show_default=True,
    help="How the parallel estimator fans out its workers.",
)
@click.option(
    "--block-size",
    type=click.IntRange(min=1),
    default=1_000_000,
    show_default=True,
    help="Maximum number of points drawn at once per worker.",
)
@click.option(
    "--columns",
    multiple=True,
    type=click.Choice(DEFAULT_SCHEMA.keys),
    help="Output columns, in order. Defaults to all of them.",
)
@click.option(
    "--progress",
    is_flag=True,
    default=False,
    help="Show a progress bar while the workers complete.",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
def main(
    samples: int | None,
    workers: int,
    seed: int | None,
    output: str,
    backend: str,
    block_size: int,
    columns: tuple[str, ...],
    progress: bool,
    debug: bool,
):
    """Estimate pi sequentially and in parallel, and save the timings to OUTPUT.

    If SAMPLES is given, only that sample size is run.
    """
    configure_logging(debug)

    config = EstimatorConfig(
        worker_count=workers,
        seed=seed,
        block_size=block_size,
        backend=backend,
        progress=progress,
    )
    sizes = [samples] if samples is not None else list(DEFAULT_SAMPLE_SIZES)
    schema = DEFAULT_SCHEMA.select(columns) if columns else DEFAULT_SCHEMA
    storage = DelimitedFileStorage(output, schema=schema)

    click.echo("\n====== INICIANDO PRUEBAS CON DIFERENTES TAMANYOS DE MUESTRA ======\n")
    click.echo(f"Numero de Procesadores: {config.cpu_count}")

    run_trials(sizes, config, storage, get_spawner(config.backend))

    click.echo(f"\nTodos los resultados guardados en: {storage.location}")
    click.echo("\n====== TODAS LAS PRUEBAS COMPLETADAS ======")


if __name__ == "__main__":
    main()
