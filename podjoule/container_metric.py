"""Energy and resource usage metrics of a container."""

from __future__ import annotations

from dataclasses import InitVar, dataclass, field
from typing import Iterable

from podjoule.process_metric import (
    COMMAND_LENGTH_LIMIT,
    IRQ,
    MetricNotFoundError,
    ProcessMetrics,
)
from podjoule.stats import AGGR_PREFIX, DELTA_PREFIX, UInt64Stat, UInt64StatCollection

BYTES_READ_IO = "bytes_read"
BYTES_WRITE_IO = "bytes_writes"
BLOCK_DEVICES_IO = "block_devices_used"

CONTAINER_IO_STAT_METRIC_NAMES = (BYTES_READ_IO, BYTES_WRITE_IO)


def _map_text(items: dict) -> str:
    inner = " ".join(f"{key}:{value}" for key, value in sorted(items.items()))
    return f"map[{inner}]"


@dataclass(eq=False)
class ContainerMetrics(ProcessMetrics):
    """Counters and attributed energy of one container.

    ``cgroup_metrics`` and ``kubelet_metrics`` name the cgroup and kubelet
    counters to create, in addition to the process-level ones.
    """

    cgroup_pid: int = 0
    pids: list[int] = field(default_factory=list)
    container_name: str = ""
    pod_name: str = ""
    namespace: str = ""
    curr_processes: int = 0
    disks: int = 0
    cgroup_metrics: InitVar[Iterable[str]] = ()
    kubelet_metrics: InitVar[Iterable[str]] = ()
    cgroupfs_stats: dict[str, UInt64StatCollection] = field(default_factory=dict)
    kubelet_stats: dict[str, UInt64Stat] = field(default_factory=dict)
    bytes_read: UInt64StatCollection = field(default_factory=UInt64StatCollection)
    bytes_write: UInt64StatCollection = field(default_factory=UInt64StatCollection)

    def __post_init__(
        self,
        hw_counters: Iterable[str],
        gpu_supported: bool,
        cgroup_metrics: Iterable[str],
        kubelet_metrics: Iterable[str],
    ) -> None:
        super().__post_init__(hw_counters, gpu_supported)
        for name in cgroup_metrics:
            self.cgroupfs_stats.setdefault(name, UInt64StatCollection())
        for name in kubelet_metrics:
            self.kubelet_stats.setdefault(name, UInt64Stat())

    def reset_delta(self) -> None:
        """Zero every delta and the active process count, keeping aggregates."""
        self.curr_processes = 0
        super().reset_delta()
        for collection in self.cgroupfs_stats.values():
            collection.reset_delta()
        self.bytes_read.reset_delta()
        self.bytes_write.reset_delta()
        for stat in self.kubelet_stats.values():
            stat.reset_delta()

    def set_latest_process(self, cgroup_pid: int, pid: int, command: str) -> None:
        """Record the latest process seen in the container."""
        self.cgroup_pid = cgroup_pid
        if pid not in self.pids:
            self.pids.append(pid)
        self.command = command

    def get_int_delta_and_aggr(self, metric: str) -> tuple[int, int]:
        """Return (delta, aggregate) of the named metric."""
        stat = self.counter_stats.get(metric)
        if stat is not None:
            return stat.delta, stat.aggr
        collection = self.cgroupfs_stats.get(metric)
        if collection is not None:
            return collection.sum_all_delta_values(), collection.sum_all_aggr_values()
        stat = self.kubelet_stats.get(metric)
        if stat is not None:
            return stat.delta, stat.aggr
        if metric == BLOCK_DEVICES_IO:
            return self.disks, self.disks
        if metric == BYTES_READ_IO:
            return self.bytes_read.sum_all_delta_values(), self.bytes_read.sum_all_aggr_values()
        if metric == BYTES_WRITE_IO:
            return self.bytes_write.sum_all_delta_values(), self.bytes_write.sum_all_aggr_values()
        return super().get_int_delta_and_aggr(metric)

    def to_estimator_values(self, feature_names: Iterable[str]) -> list[float]:
        """Deltas of the given features followed by the number of disks."""
        return [*super().to_estimator_values(feature_names), float(self.disks)]

    def basic_values(self) -> list[str]:
        """Label values identifying the container: pod, namespace, truncated command."""
        return [self.pod_name, self.namespace, self.command[:COMMAND_LENGTH_LIMIT]]

    def to_prometheus_value(self, metric: str) -> str:
        """Value of a ``curr_``/``total_`` prefixed metric label, as text."""
        name = metric.replace(DELTA_PREFIX, "").replace(AGGR_PREFIX, "")
        if name == BLOCK_DEVICES_IO:
            return str(self.disks)
        try:
            return super().to_prometheus_value(metric)
        except MetricNotFoundError:
            return ""

    def __str__(self) -> str:
        pids = "[" + " ".join(str(pid) for pid in self.pids) + "]"
        net_tx = self.soft_irq_count[IRQ.NET_TX]
        net_rx = self.soft_irq_count[IRQ.NET_RX]
        block = self.soft_irq_count[IRQ.BLOCK]
        return (
            f"energy from pod/container ({self.curr_processes} active processes): "
            f"name: {self.pod_name}/{self.container_name} namespace: {self.namespace} \n"
            f"\tcgrouppid: {self.cgroup_pid} pid: {pids} comm: {self.command}\n"
            f"\tDyn ePkg (mJ): {self.dyn_energy_in_pkg} (eCore: {self.dyn_energy_in_core} "
            f"eDram: {self.dyn_energy_in_dram} eUncore: {self.dyn_energy_in_uncore}) "
            f"eGPU (mJ): {self.dyn_energy_in_gpu} eOther (mJ): {self.dyn_energy_in_other} \n"
            f"\tIdle ePkg (mJ): {self.idle_energy_in_pkg} (eCore: {self.idle_energy_in_core} "
            f"eDram: {self.idle_energy_in_dram} eUncore: {self.idle_energy_in_uncore}) "
            f"eGPU (mJ): {self.idle_energy_in_gpu} eOther (mJ): {self.idle_energy_in_other} \n"
            f"\tCPUTime:  {self.cpu_time.delta} ({self.cpu_time.aggr})\n"
            f"\tNetTX IRQ: {net_tx.delta} ({net_tx.aggr})\n"
            f"\tNetRX IRQ: {net_rx.delta} ({net_rx.aggr})\n"
            f"\tBlock IRQ: {block.delta} ({block.aggr})\n"
            f"\tcounters: {_map_text(self.counter_stats)}\n"
            f"\tcgroupfs: {_map_text(self.cgroupfs_stats)}\n"
            f"\tkubelets: {_map_text(self.kubelet_stats)}\n"
        )