"""CSV directory candle feed for offline replay.

Reads ``<directory>/<INDEX>_<interval>.csv`` with columns
``timestamp,open,high,low,close,volume``.
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from indexsignal.strategy.models import Candle, CandleSeries

logger = logging.getLogger("indexsignal.feeds")

_PRICE_COLUMNS = ["open", "high", "low", "close"]


def clean_candles(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise a raw candle frame.

    1. Parse timestamps to UTC (epoch seconds or ISO strings).
    2. Drop rows with a missing timestamp or price.
    3. De-duplicate timestamps, keeping the last row.
    4. Sort ascending.
    """
    if df.empty:
        return df

    df = df.copy()
    if "time" in df.columns and "timestamp" not in df.columns:
        df = df.rename(columns={"time": "timestamp"})

    if pd.api.types.is_numeric_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
    else:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")

    for col in _PRICE_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    if "volume" not in df.columns:
        df["volume"] = 0.0
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0)

    df = df.dropna(subset=["timestamp", *_PRICE_COLUMNS])
    df = df.drop_duplicates(subset="timestamp", keep="last")
    return df.sort_values("timestamp").reset_index(drop=True)


class CsvCandleFeed:
    """Candle feed over a directory of per-index CSV files."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, index_key: str, interval: str) -> Path:
        return self._directory / f"{index_key.upper()}_{interval}.csv"

    async def fetch_candles(
        self, index_key: str, interval: str
    ) -> Optional[CandleSeries]:
        path = self.path_for(index_key, interval)
        if not path.is_file():
            logger.info("No candle file %s", path)
            return None

        df = clean_candles(pd.read_csv(path))
        if df.empty:
            return None

        candles = tuple(
            Candle(
                timestamp=row.timestamp.to_pydatetime(),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
            )
            for row in df.itertuples(index=False)
        )
        return CandleSeries(index_key=index_key, interval=interval, candles=candles)
