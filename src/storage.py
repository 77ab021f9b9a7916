"""
Abstraction over where trial results get written, plus the schema of the output table.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import pandas as pd
from sampling import SampleResult

logger = logging.getLogger("montecarlo.storage")


@dataclass(frozen=True)
class Column:
    key: str
    header: str
    precision: int | None = None

    def format(self, value) -> str:
        if self.precision is None:
            return str(value)
        # spanish locale: comma as the decimal separator
        return f"{value:.{self.precision}f}".replace(".", ",")


@dataclass(frozen=True)
class OutputSchema:
    columns: tuple[Column, ...]

    @property
    def keys(self) -> list[str]:
        return [c.key for c in self.columns]

    @property
    def headers(self) -> list[str]:
        return [c.header for c in self.columns]

    def select(self, keys: list[str] | tuple[str, ...]) -> "OutputSchema":
        by_key = {c.key: c for c in self.columns}
        missing = [k for k in keys if k not in by_key]
        if missing:
            raise KeyError(f"unknown output columns: {missing}")
        return OutputSchema(columns=tuple(by_key[k] for k in keys))

    def format_row(self, result: SampleResult) -> list[str]:
        values = {
            "samples": result.sample_count,
            "method": result.method,
            "threads": result.thread_count,
            "pi": result.pi_estimate,
            "seconds": result.elapsed_seconds,
            "millis": result.elapsed_millis,
            "micros": result.elapsed_micros,
        }
        return [c.format(values[c.key]) for c in self.columns]

    def to_dataframe(self, results: list[SampleResult]) -> pd.DataFrame:
        return pd.DataFrame(
            [self.format_row(r) for r in results],
            columns=self.headers,
        )

    def header_line(self, sep: str = ";") -> str:
        return sep.join(self.headers)


DEFAULT_SCHEMA = OutputSchema(
    columns=(
        Column("samples", "Samples"),
        Column("method", "Método"),
        Column("threads", "Hilos"),
        Column("pi", "Valor Pi", precision=12),
        Column("seconds", "Tiempo (s)", precision=12),
        Column("millis", "Tiempo (ms)", precision=8),
        Column("micros", "Tiempo (us)", precision=8),
    )
)


class AbstractStorage(ABC):
    @property
    @abstractmethod
    def location(self) -> str:
        pass

    @abstractmethod
    def initialize(self) -> bool:
        pass

    @abstractmethod
    def append(self, results: list[SampleResult]) -> bool:
        pass


class DelimitedFileStorage(AbstractStorage):
    def __init__(
        self,
        path: str | Path,
        schema: OutputSchema = DEFAULT_SCHEMA,
        sep: str = ";",
    ):
        self.path = Path(path)
        self.schema = schema
        self.sep = sep

    @property
    def location(self) -> str:
        return str(self.path)

    def _write(self, df: pd.DataFrame, mode: str, header: bool) -> bool:
        try:
            df.to_csv(
                self.path,
                sep=self.sep,
                index=False,
                header=header,
                mode=mode,
                encoding="utf-8",
                lineterminator="\n",
            )
        except OSError as e:
            # the run carries on without persisting this write
            logger.error("could not open %s for writing: %s", self.path, e)
            return False
        return True

    def initialize(self) -> bool:
        """Create the file fresh, containing only the header row."""
        return self._write(self.schema.to_dataframe([]), mode="w", header=True)

    def append(self, results: list[SampleResult]) -> bool:
        df = self.schema.to_dataframe(results)
        ok = self._write(df, mode="a", header=False)
        if ok:
            logger.debug("appended %d rows to %s", len(df), self.path)
        return ok
