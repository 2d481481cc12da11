from __future__ import annotations

import re
import time
from datetime import UTC, datetime


def now_millis() -> int:
    """
    Wall-clock epoch milliseconds, used for run start/stop stamps.
    """
    return int(time.time() * 1000)


def run_file_stamp(millis: int | None = None) -> str:
    """
    Local-time stamp for run file names: YYYYMMDD_HHMMSS
    """
    t = datetime.now() if millis is None else datetime.fromtimestamp(millis / 1000.0)
    return t.strftime("%Y%m%d_%H%M%S")


def make_run_name(source: str = "Singleplayer", millis: int | None = None) -> str:
    """
    <source>_<YYYYMMDD_HHMMSS>, with anything outside [A-Za-z0-9.-] replaced by '_'.
    """
    safe = re.sub(r"[^a-zA-Z0-9.-]", "_", source)
    return f"{safe}_{run_file_stamp(millis)}"


def utc_now_iso() -> str:
    """
    Return ISO-8601 UTC timestamp (with trailing Z).
    """
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _self_test() -> None:
    name = make_run_name("mc.example.org:25565", millis=0)
    assert name.startswith("mc.example.org_25565_")
    assert utc_now_iso().endswith("Z")
    print("time_id.py self-test: OK")


if __name__ == "__main__":
    _self_test()
