# flow_monitor/storage/daily_store.py
import json
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from .models import FlowRecord

logger = logging.getLogger(__name__)


def utc_date(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


class DailyStore:
    """按天分区的 JSON 存储, 每个 (record_type, UTC 日期) 一个文件.

    Only one writer is expected: ``append`` rewrites the whole partition.
    """

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def partition_path(self, record_type: str, day: date) -> Path:
        return self.data_dir / f"{record_type}-{day.isoformat()}.json"

    def _read_day(self, record_type: str, day: date) -> list[FlowRecord]:
        """读取分区; 仅文件不存在时返回空列表, 其余错误向上抛出"""
        path = self.partition_path(record_type, day)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, list):
            raise ValueError(f"expected a list, got {type(raw).__name__}")
        return [FlowRecord.from_dict(item) for item in raw]

    def load_day(self, record_type: str, day: date) -> list[FlowRecord]:
        try:
            return self._read_day(record_type, day)
        except (OSError, ValueError, KeyError, TypeError) as e:
            name = self.partition_path(record_type, day).name
            logger.warning(f"Ignoring unreadable partition {name}: {e}")
            return []

    def _save_day(self, record_type: str, day: date, records: list[FlowRecord]) -> None:
        path = self.partition_path(record_type, day)
        with open(path, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in records], f, indent=2)

    def append(self, record: FlowRecord, record_type: str = "flow") -> None:
        day = utc_date(record.timestamp_ms)
        # 分区损坏时不覆盖, 由调用方处理
        records = self._read_day(record_type, day)
        records.append(record)
        self._save_day(record_type, day, records)

    def load_range(self, record_type: str, from_ts: int, to_ts: int) -> list[FlowRecord]:
        if from_ts > to_ts:
            return []

        result: list[FlowRecord] = []
        current = utc_date(from_ts)
        last = utc_date(to_ts)
        while current <= last:
            for record in self.load_day(record_type, current):
                if from_ts <= record.timestamp_ms <= to_ts:
                    result.append(record)
            current += timedelta(days=1)
        return result

    def latest(self, record_type: str = "flow", day: date | None = None) -> FlowRecord | None:
        if day is None:
            day = datetime.now(timezone.utc).date()
        records = self.load_day(record_type, day)
        return records[-1] if records else None
