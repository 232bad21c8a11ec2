"""Candle feed contract and payload parsing shared by every feed."""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from indexsignal.strategy.models import Candle, CandleSeries


class FeedError(Exception):
    """Transport failure while fetching candles (never raised for "no data")."""


@runtime_checkable
class CandleFeed(Protocol):
    """Anything that can produce a candle series for an index and interval."""

    async def fetch_candles(
        self, index_key: str, interval: str
    ) -> Optional[CandleSeries]:
        """Return candles oldest-first, or ``None`` when nothing is available."""
        ...


_FIELDS = ("timestamp", "open", "high", "low", "close", "volume")


def parse_timestamp(value: Any) -> datetime:
    """Epoch seconds (int/float) or an ISO-8601 string → aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_candle(row: Any) -> Candle:
    if isinstance(row, dict):
        ts = row.get("timestamp", row.get("time"))
        return Candle(
            timestamp=parse_timestamp(ts),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume") or 0.0),
        )
    values = list(row)
    if len(values) < 5:
        raise ValueError(f"Candle row needs at least 5 values, got {len(values)}")
    volume = values[5] if len(values) > 5 else 0.0
    return Candle(
        timestamp=parse_timestamp(values[0]),
        open=float(values[1]),
        high=float(values[2]),
        low=float(values[3]),
        close=float(values[4]),
        volume=float(volume or 0.0),
    )


def _columns_to_rows(payload: dict) -> list[dict]:
    """Column-oriented ``{"timestamp": [...], "open": [...], ...}`` → row dicts."""
    timestamps = payload.get("timestamp") or []
    rows = []
    for i, ts in enumerate(timestamps):
        row = {"timestamp": ts}
        for key in _FIELDS[1:]:
            column = payload.get(key) or []
            row[key] = column[i] if i < len(column) else 0.0
        rows.append(row)
    return rows


def parse_candles(
    payload: Any, index_key: str, interval: str
) -> Optional[CandleSeries]:
    """Turn a feed payload into a ``CandleSeries``.

    Accepts ``{"candles": [...]}``, a bare list of rows (dicts or
    ``[ts, o, h, l, c, v]`` arrays) and the column-oriented broker format.
    Returns ``None`` for an empty payload.  Malformed rows raise
    ``ValueError``.
    """
    if payload is None:
        return None

    rows: Iterable[Any]
    if isinstance(payload, dict):
        if "candles" in payload:
            rows = payload.get("candles") or []
        elif isinstance(payload.get("timestamp"), list):
            rows = _columns_to_rows(payload)
        else:
            rows = []
    else:
        rows = payload

    candles = sorted((_row_to_candle(r) for r in rows), key=lambda c: c.timestamp)
    if not candles:
        return None
    return CandleSeries(index_key=index_key, interval=interval, candles=tuple(candles))
