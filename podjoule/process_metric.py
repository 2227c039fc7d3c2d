"""Energy and resource usage metrics of a single process."""

from __future__ import annotations

import logging
from dataclasses import InitVar, dataclass, field
from enum import IntEnum
from typing import Iterable

from podjoule.stats import AGGR_PREFIX, DELTA_PREFIX, MAX_UINT64, UInt64Stat

log = logging.getLogger(__name__)

CPU_TIME = "cpu_time"
IRQ_NET_TX_LABEL = "irq_net_tx"
IRQ_NET_RX_LABEL = "irq_net_rx"
IRQ_BLOCK_LABEL = "irq_block"
GPU_SM_UTILIZATION = "gpu_sm_util"
GPU_MEM_UTILIZATION = "gpu_mem_util"

MAX_IRQ = 10
COMMAND_LENGTH_LIMIT = 10


class IRQ(IntEnum):
    """Soft IRQ vectors that are tracked, by their index in the IRQ counter list."""

    NET_TX = 2
    NET_RX = 3
    BLOCK = 4

    @property
    def label(self) -> str:
        return _IRQ_LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> IRQ | None:
        """The IRQ named by a metric label, or None."""
        return _IRQ_BY_LABEL.get(label)


_IRQ_LABELS = {
    IRQ.NET_TX: IRQ_NET_TX_LABEL,
    IRQ.NET_RX: IRQ_NET_RX_LABEL,
    IRQ.BLOCK: IRQ_BLOCK_LABEL,
}
_IRQ_BY_LABEL = {label: irq for irq, label in _IRQ_LABELS.items()}


class MetricNotFoundError(LookupError):
    """Raised when a metric name cannot be resolved to a counter."""

    def __init__(self, metric: str) -> None:
        super().__init__(f"cannot extract: {metric}")
        self.metric = metric


def _new_irq_counts() -> list[UInt64Stat]:
    return [UInt64Stat() for _ in range(MAX_IRQ)]


@dataclass(eq=False)
class ProcessMetrics:
    """Counters and attributed energy of one process.

    ``hw_counters`` names the hardware counters to create; with
    ``gpu_supported`` the GPU utilisation counters are created as well.
    """

    pid: int = 0
    command: str = ""
    hw_counters: InitVar[Iterable[str]] = ()
    gpu_supported: InitVar[bool] = False
    counter_stats: dict[str, UInt64Stat] = field(default_factory=dict)
    cpu_time: UInt64Stat = field(default_factory=UInt64Stat)
    soft_irq_count: list[UInt64Stat] = field(default_factory=_new_irq_counts)
    gpu_stats: dict[str, UInt64Stat] = field(default_factory=dict)

    dyn_energy_in_core: UInt64Stat = field(default_factory=UInt64Stat)
    dyn_energy_in_dram: UInt64Stat = field(default_factory=UInt64Stat)
    dyn_energy_in_uncore: UInt64Stat = field(default_factory=UInt64Stat)
    dyn_energy_in_pkg: UInt64Stat = field(default_factory=UInt64Stat)
    dyn_energy_in_gpu: UInt64Stat = field(default_factory=UInt64Stat)
    dyn_energy_in_other: UInt64Stat = field(default_factory=UInt64Stat)

    idle_energy_in_core: UInt64Stat = field(default_factory=UInt64Stat)
    idle_energy_in_dram: UInt64Stat = field(default_factory=UInt64Stat)
    idle_energy_in_uncore: UInt64Stat = field(default_factory=UInt64Stat)
    idle_energy_in_pkg: UInt64Stat = field(default_factory=UInt64Stat)
    idle_energy_in_gpu: UInt64Stat = field(default_factory=UInt64Stat)
    idle_energy_in_other: UInt64Stat = field(default_factory=UInt64Stat)

    def __post_init__(self, hw_counters: Iterable[str], gpu_supported: bool) -> None:
        for name in hw_counters:
            self.counter_stats.setdefault(name, UInt64Stat())
        if gpu_supported:
            self.counter_stats.setdefault(GPU_SM_UTILIZATION, UInt64Stat())
            self.counter_stats.setdefault(GPU_MEM_UTILIZATION, UInt64Stat())

    def _energy_stats(self) -> tuple[UInt64Stat, ...]:
        return (
            self.dyn_energy_in_core,
            self.dyn_energy_in_dram,
            self.dyn_energy_in_uncore,
            self.dyn_energy_in_pkg,
            self.dyn_energy_in_other,
            self.dyn_energy_in_gpu,
            self.idle_energy_in_core,
            self.idle_energy_in_dram,
            self.idle_energy_in_uncore,
            self.idle_energy_in_pkg,
            self.idle_energy_in_other,
            self.idle_energy_in_gpu,
        )

    def reset_delta(self) -> None:
        """Zero every delta, keeping the aggregates."""
        self.cpu_time.reset_delta()
        for stat in self.counter_stats.values():
            stat.reset_delta()
        for stat in self.soft_irq_count:
            stat.reset_delta()
        for stat in self._energy_stats():
            stat.reset_delta()

    def _get_float_curr_and_aggr(self, metric: str) -> tuple[float, float]:
        # No float metrics are collected yet.
        return 0.0, 0.0

    def get_int_delta_and_aggr(self, metric: str) -> tuple[int, int]:
        """Return (delta, aggregate) of the named metric."""
        stat = self.counter_stats.get(metric)
        if stat is not None:
            return stat.delta, stat.aggr
        if metric == CPU_TIME:
            return self.cpu_time.delta, self.cpu_time.aggr
        irq = IRQ.from_label(metric)
        if irq is not None:
            count = self.soft_irq_count[irq]
            return count.delta, count.aggr
        log.debug("cannot extract: %s", metric)
        raise MetricNotFoundError(metric)

    def to_estimator_values(self, feature_names: Iterable[str]) -> list[float]:
        """Deltas of the given features, 0 for features that are not known."""
        values = []
        for name in feature_names:
            try:
                delta, _ = self.get_int_delta_and_aggr(name)
            except MetricNotFoundError:
                delta = 0
            values.append(float(delta))
        return values

    def basic_values(self) -> list[str]:
        """Label values identifying the process: its truncated command."""
        return [self.command[:COMMAND_LENGTH_LIMIT]]

    def to_prometheus_value(self, metric: str) -> str:
        """Value of a ``curr_``/``total_`` prefixed metric label, as text."""
        current = DELTA_PREFIX in metric
        name = metric.replace(DELTA_PREFIX, "").replace(AGGR_PREFIX, "")
        try:
            delta, aggr = self.get_int_delta_and_aggr(name)
        except MetricNotFoundError:
            curr_f, aggr_f = self._get_float_curr_and_aggr(name)
            return f"{curr_f if current else aggr_f:f}"
        return str(delta if current else aggr)

    def sum_all_dyn_delta(self) -> int:
        """Dynamic package + GPU + other energy of the last interval."""
        return (
            self.dyn_energy_in_pkg.delta
            + self.dyn_energy_in_gpu.delta
            + self.dyn_energy_in_other.delta
        ) & MAX_UINT64

    def sum_all_dyn_aggr(self) -> int:
        """Aggregated dynamic package + GPU + other energy."""
        return (
            self.dyn_energy_in_pkg.aggr
            + self.dyn_energy_in_gpu.aggr
            + self.dyn_energy_in_other.aggr
        ) & MAX_UINT64

    def _counters_text(self) -> str:
        items = " ".join(f"{key}:{stat}" for key, stat in sorted(self.counter_stats.items()))
        return f"map[{items}]"

    def __str__(self) -> str:
        return (
            f"energy from process pid: {self.pid} comm: {self.command}\n"
            f"\tDyn ePkg (mJ): {self.dyn_energy_in_pkg} (eCore: {self.dyn_energy_in_core} "
            f"eDram: {self.dyn_energy_in_dram} eUncore: {self.dyn_energy_in_uncore}) "
            f"eGPU (mJ): {self.dyn_energy_in_gpu} eOther (mJ): {self.dyn_energy_in_other} \n"
            f"\tIdle ePkg (mJ): {self.idle_energy_in_pkg} (eCore: {self.idle_energy_in_core} "
            f"eDram: {self.idle_energy_in_dram} eUncore: {self.idle_energy_in_uncore}) "
            f"eGPU (mJ): {self.idle_energy_in_gpu} eOther (mJ): {self.idle_energy_in_other} \n"
            f"\tCPUTime:  {self.cpu_time.delta} ({self.cpu_time.aggr})\n"
            f"\tcounters: {self._counters_text()}\n"
        )