"""Process vitals for the health endpoint.

A Vitals instance owns a set of monitors (cpu, mem, tick, uptime) and a list
of "unhealthy when" constraints evaluated against each report:

    vitals = Vitals().monitor("cpu").monitor("tick")
    vitals.unhealthy_when("cpu", "usage").greater_than(80)
    report = await vitals.report()   # {"cpu": {...}, "tick": {...}, "healthy": True, "unhealthy": []}
"""

from __future__ import annotations

import asyncio
import contextlib
import operator
import os
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

import psutil

_MB = 1024 * 1024


class Monitor:
    name = ""

    def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def sample(self) -> Dict[str, Any]:
        raise NotImplementedError


class CpuMonitor(Monitor):
    name = "cpu"

    def __init__(self, process: Optional[psutil.Process] = None):
        self.process = process or psutil.Process(os.getpid())
        # first call primes psutil's interval counter and always returns 0.0
        self.process.cpu_percent(interval=None)

    async def sample(self) -> Dict[str, Any]:
        return {
            "usage": round(self.process.cpu_percent(interval=None), 2),
            "cores": psutil.cpu_count() or 1,
        }


class MemMonitor(Monitor):
    name = "mem"

    def __init__(self, units: str = "MB", process: Optional[psutil.Process] = None):
        if units not in ("B", "MB"):
            raise ValueError(f"Unsupported memory units: {units}")
        self.units = units
        self.process = process or psutil.Process(os.getpid())

    def _scale(self, n: int) -> float:
        return round(n / _MB, 2) if self.units == "MB" else n

    async def sample(self) -> Dict[str, Any]:
        info = self.process.memory_info()
        return {
            "rss": self._scale(info.rss),
            "vms": self._scale(info.vms),
            "percent": round(self.process.memory_percent(), 2),
            "units": self.units,
        }


class TickMonitor(Monitor):
    """
    Event-loop lag: how late a periodic asyncio.sleep(interval) wakes up.

    A background task records one lag sample per interval into a rolling
    window; sample() only reads that window. The task is started by start()
    (app startup) or lazily on the first sample(), and cancelled by stop().
    """

    name = "tick"

    def __init__(self, window: int = 20, interval: float = 0.1):
        if interval <= 0:
            raise ValueError("tick interval must be positive")
        self.interval = interval
        self.samples: Deque[float] = deque(maxlen=max(1, window))
        self._task: Optional[asyncio.Task] = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            start = loop.time()
            await asyncio.sleep(self.interval)
            lag = (loop.time() - start - self.interval) * 1000.0
            self.samples.append(max(0.0, lag))

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        task = self._task
        if task is None or task.done() or task.get_loop() is not loop:
            self._task = loop.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        # a sampler left over from an already closed loop cannot be awaited here
        if task is None or task.get_loop() is not asyncio.get_running_loop():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def sample(self) -> Dict[str, Any]:
        self.start()
        if not self.samples:
            return {"avg_ms": 0.0, "max_ms": 0.0, "samples": 0}
        return {
            "avg_ms": round(sum(self.samples) / len(self.samples), 3),
            "max_ms": round(max(self.samples), 3),
            "samples": len(self.samples),
        }


class UptimeMonitor(Monitor):
    name = "uptime"

    def __init__(self, process: Optional[psutil.Process] = None):
        self.process = process or psutil.Process(os.getpid())

    async def sample(self) -> Dict[str, Any]:
        now = time.time()
        return {
            "sys": round(now - psutil.boot_time(), 1),
            "proc": round(now - self.process.create_time(), 1),
        }


MONITORS: Dict[str, Callable[..., Monitor]] = {
    "cpu": CpuMonitor,
    "mem": MemMonitor,
    "tick": TickMonitor,
    "uptime": UptimeMonitor,
}

_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "greater_than": operator.gt,
    "less_than": operator.lt,
    "equals": operator.eq,
}


class Constraint:
    def __init__(self, monitor: str, field: str):
        self.monitor = monitor
        self.field = field
        self.checks: List[tuple[str, Any]] = []

    def _add(self, op: str, value: Any) -> "Constraint":
        self.checks.append((op, value))
        return self

    def greater_than(self, value: Any) -> "Constraint":
        return self._add("greater_than", value)

    def less_than(self, value: Any) -> "Constraint":
        return self._add("less_than", value)

    def equals(self, value: Any) -> "Constraint":
        return self._add("equals", value)

    def failures(self, report: Dict[str, Any]) -> List[str]:
        section = report.get(self.monitor)
        if not isinstance(section, dict) or self.field not in section:
            return []
        actual = section[self.field]
        out = []
        for op, expected in self.checks:
            try:
                fired = _COMPARATORS[op](actual, expected)
            except TypeError:
                fired = False
            if fired:
                out.append(f"{self.monitor}.{self.field} {op} {expected} (actual {actual})")
        return out


class Vitals:
    def __init__(self):
        self.monitors: Dict[str, Monitor] = {}
        self.constraints: List[Constraint] = []

    def monitor(self, name: str, **options: Any) -> "Vitals":
        if name not in MONITORS:
            raise ValueError(f"Unknown monitor: {name}")
        self.monitors[name] = MONITORS[name](**options)
        return self

    def unhealthy_when(self, monitor: str, field: str) -> Constraint:
        c = Constraint(monitor, field)
        self.constraints.append(c)
        return c

    def apply_rules(self, rules: Optional[Dict[str, Dict[str, Dict[str, Any]]]]) -> "Vitals":
        """
        Register constraints from nested config:

            {"cpu": {"usage": {"greater_than": 80}}, "tick": {"max_ms": {"greater_than": 500}}}
        """
        for monitor, fields in (rules or {}).items():
            for field, checks in (fields or {}).items():
                constraint = self.unhealthy_when(monitor, field)
                for op, value in (checks or {}).items():
                    if op not in _COMPARATORS:
                        raise ValueError(f"Unknown constraint '{op}' for {monitor}.{field}")
                    constraint._add(op, value)
        return self

    def start(self) -> None:
        """Start background samplers (tick). Must run inside the serving event loop."""
        for mon in self.monitors.values():
            mon.start()

    async def stop(self) -> None:
        for mon in self.monitors.values():
            await mon.stop()

    async def report(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, mon in self.monitors.items():
            out[name] = await mon.sample()

        problems: List[str] = []
        for c in self.constraints:
            problems.extend(c.failures(out))
        out["healthy"] = not problems
        out["unhealthy"] = problems
        return out


def create_vitals(unhealthy_when: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None) -> Vitals:
    """Default instance: cpu, mem (MB), tick and uptime monitors."""
    vitals = Vitals().monitor("cpu").monitor("mem", units="MB").monitor("tick").monitor("uptime")
    return vitals.apply_rules(unhealthy_when)
