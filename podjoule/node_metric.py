"""Node-wide energy and resource usage, split into total, idle and dynamic parts."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from podjoule.container_metric import ContainerMetrics
from podjoule.features import CPU_INSTRUCTION
from podjoule.process_metric import MetricNotFoundError
from podjoule.stats import MAX_UINT64, UInt64StatCollection

log = logging.getLogger(__name__)

FREQUENCY = "frequency"


class Component(str, Enum):
    """Node components whose energy is tracked."""

    CORE = "core"
    DRAM = "dram"
    UNCORE = "uncore"
    PKG = "pkg"
    GPU = "gpu"
    OTHER = "other"
    PLATFORM = "platform"


@dataclass(frozen=True)
class NodeComponentsEnergy:
    """Aggregated energy (mJ) of the components of one CPU package."""

    core: int = 0
    dram: int = 0
    uncore: int = 0
    pkg: int = 0


def _collections() -> dict[Component, UInt64StatCollection]:
    return {component: UInt64StatCollection() for component in Component}


def calc_dyn_energy(total: int, idle: int) -> int:
    """Dynamic energy: total minus idle, or 0 when either is 0 or idle exceeds total."""
    if total == 0 or idle == 0 or total < idle:
        return 0
    return total - idle


_RESET_COMPONENTS = (
    Component.CORE,
    Component.DRAM,
    Component.UNCORE,
    Component.PKG,
    Component.GPU,
    Component.PLATFORM,
)

_IDLE_COMPONENTS = (
    Component.CORE,
    Component.DRAM,
    Component.UNCORE,
    Component.PKG,
    Component.GPU,
    Component.PLATFORM,
)


@dataclass(eq=False)
class NodeMetrics:
    """Energy per component and resource usage of the whole node."""

    resource_usage: dict[str, float] = field(default_factory=dict)
    total_energy: dict[Component, UInt64StatCollection] = field(default_factory=_collections)
    dyn_energy: dict[Component, UInt64StatCollection] = field(default_factory=_collections)
    idle_energy: dict[Component, UInt64StatCollection] = field(default_factory=_collections)
    cpu_frequency: dict[int, int] = field(default_factory=dict)
    idle_cpu_utilization: int = 0
    found_new_idle_state: bool = False

    def total(self, component: Component | str) -> UInt64StatCollection:
        """Total energy collection of a component; ValueError if unknown."""
        return self.total_energy[Component(component)]

    def dynamic(self, component: Component | str) -> UInt64StatCollection:
        """Dynamic energy collection of a component; ValueError if unknown."""
        return self.dyn_energy[Component(component)]

    def idle(self, component: Component | str) -> UInt64StatCollection:
        """Idle energy collection of a component; ValueError if unknown."""
        return self.idle_energy[Component(component)]

    def reset_delta(self) -> None:
        """Clear resource usage and zero the total and dynamic deltas."""
        self.resource_usage = {}
        for component in _RESET_COMPONENTS:
            self.total_energy[component].reset_delta()
        for component in _RESET_COMPONENTS:
            self.dyn_energy[component].reset_delta()

    def add_resource_usage_from_containers(
        self,
        containers: Mapping[str, ContainerMetrics],
        metric_names: Iterable[str],
    ) -> None:
        """Set node resource usage to the sum of the containers' deltas."""
        cpu_instructions = 0
        usage: dict[str, float] = {}
        for name in metric_names:
            usage[name] = 0.0
            for container in containers.values():
                try:
                    delta, _ = container.get_int_delta_and_aggr(name)
                except MetricNotFoundError:
                    delta = 0
                usage[name] += float(delta)
                if name == CPU_INSTRUCTION:
                    cpu_instructions = (cpu_instructions + delta) & MAX_UINT64
        self.resource_usage = usage
        if self.idle_cpu_utilization > cpu_instructions or self.idle_cpu_utilization == 0:
            self.found_new_idle_state = True
            self.idle_cpu_utilization = cpu_instructions

    def set_latest_platform_energy(self, platform_energy: Mapping[str, float]) -> None:
        """Store the latest platform energy delta of each sensor, rounded up."""
        platform = self.total_energy[Component.PLATFORM]
        for sensor_id, energy in platform_energy.items():
            platform.set_delta_stat(sensor_id, math.ceil(energy))

    def set_components_energy(
        self, components_energy: Mapping[int, NodeComponentsEnergy]
    ) -> None:
        """Store the latest aggregated energy of each package's components."""
        for pkg_id, energy in components_energy.items():
            key = str(pkg_id)
            self.total_energy[Component.CORE].set_aggr_stat(key, energy.core)
            self.total_energy[Component.DRAM].set_aggr_stat(key, energy.dram)
            self.total_energy[Component.UNCORE].set_aggr_stat(key, energy.uncore)
            self.total_energy[Component.PKG].set_aggr_stat(key, energy.pkg)

    def add_gpu_energy(self, gpu_energy: Iterable[int]) -> None:
        """Add the latest energy delta of each GPU, keyed by its index."""
        gpu = self.total_energy[Component.GPU]
        for gpu_id, energy in enumerate(gpu_energy):
            gpu.add_delta_stat(str(gpu_id), energy)

    def update_idle_energy(self) -> None:
        """Recompute the idle energy of every measured component."""
        for component in _IDLE_COMPONENTS:
            self.calc_idle_energy(component)
        self.found_new_idle_state = False

    def calc_idle_energy(self, component: Component | str) -> None:
        """Track the lowest energy delta seen while the node was idle."""
        total = self.total(component)
        idle = self.idle(component)
        for key, stat in total.stats.items():
            delta = stat.delta
            existing = idle.stats.get(key)
            if existing is None:
                idle.set_delta_stat(key, delta)
                continue
            idle_delta = existing.delta
            lower = idle_delta == 0 or idle_delta > delta
            idle_now = self.found_new_idle_state or self.idle_cpu_utilization == 0
            idle.set_delta_stat(key, delta if lower and idle_now else idle_delta)

    def update_dyn_energy(self) -> None:
        """Recompute dynamic energy of every package and platform sensor."""
        for pkg_id in list(self.total_energy[Component.PKG].stats):
            for component in (Component.PKG, Component.CORE, Component.UNCORE, Component.DRAM):
                self.calc_dyn_energy(component, pkg_id)
        for sensor_id in list(self.total_energy[Component.PLATFORM].stats):
            self.calc_dyn_energy(Component.PLATFORM, sensor_id)

    def calc_dyn_energy(self, component: Component | str, key: str) -> None:
        """Set the dynamic energy of one source from its total and idle deltas.

        Raises KeyError if the source has no total or idle counter.
        """
        total = self.total(component).stats[key].delta
        idle = self.idle(component).stats[key].delta
        self.dynamic(component).set_delta_stat(key, calc_dyn_energy(total, idle))

    def set_other_components_energy(self) -> None:
        """Attribute platform energy not covered by package, DRAM and GPU to other."""
        dyn_cpu = (
            self.dyn_energy[Component.PKG].sum_all_delta_values()
            + self.dyn_energy[Component.DRAM].sum_all_delta_values()
            + self.dyn_energy[Component.GPU].sum_all_delta_values()
        ) & MAX_UINT64
        dyn_platform = self.dyn_energy[Component.PLATFORM].sum_all_delta_values()
        if dyn_platform > dyn_cpu:
            self.dyn_energy[Component.OTHER].set_delta_stat(
                Component.OTHER.value, dyn_platform - dyn_cpu
            )

        idle_cpu = (
            self.idle_energy[Component.PKG].sum_all_delta_values()
            + self.idle_energy[Component.DRAM].sum_all_delta_values()
            + self.idle_energy[Component.GPU].sum_all_delta_values()
        ) & MAX_UINT64
        idle_platform = self.idle_energy[Component.PLATFORM].sum_all_delta_values()
        if idle_platform > idle_cpu:
            self.idle_energy[Component.OTHER].set_delta_stat(
                Component.OTHER.value, idle_platform - idle_cpu
            )

    def resource_usage_of(self, resource: str) -> float:
        """Node usage of a resource, 0 if unknown."""
        return self.resource_usage.get(resource, 0.0)

    def aggr_dyn_energy(self, component: Component | str, key: str) -> int:
        """Aggregated dynamic energy of one source, 0 if absent."""
        stat = self.dynamic(component).stats.get(key)
        return stat.aggr if stat is not None else 0

    def delta_dyn_energy(self, component: Component | str, key: str) -> int:
        """Dynamic energy delta of one source, 0 if absent."""
        stat = self.dynamic(component).stats.get(key)
        return stat.delta if stat is not None else 0

    def sum_aggr_dyn_energy(self, component: Component | str) -> int:
        """Aggregated dynamic energy summed over all sources."""
        return self.dynamic(component).sum_all_aggr_values()

    def sum_delta_dyn_energy(self, component: Component | str) -> int:
        """Dynamic energy delta summed over all sources."""
        return self.dynamic(component).sum_all_delta_values()

    def aggr_idle_energy(self, component: Component | str, key: str) -> int:
        """Aggregated idle energy of one source, 0 if absent."""
        stat = self.idle(component).stats.get(key)
        return stat.aggr if stat is not None else 0

    def delta_idle_energy(self, component: Component | str, key: str) -> int:
        """Idle energy delta of one source, 0 if absent."""
        stat = self.idle(component).stats.get(key)
        return stat.delta if stat is not None else 0

    def sum_delta_idle_energy(self, component: Component | str) -> int:
        """Idle energy delta summed over all sources."""
        return self.idle(component).sum_all_delta_values()

    def sum_aggr_idle_energy(self, component: Component | str) -> int:
        """Aggregated idle energy summed over all sources."""
        return self.idle(component).sum_all_aggr_values()

    def __str__(self) -> str:
        total = self.total_energy
        return (
            "node delta energy (mJ): \n"
            f"\tePkg: {total[Component.PKG].sum_all_delta_values()} "
            f"(eCore: {total[Component.CORE].sum_all_delta_values()} "
            f"eDram: {total[Component.DRAM].sum_all_delta_values()} "
            f"eUncore: {total[Component.UNCORE].sum_all_delta_values()}) "
            f"eGPU: {total[Component.GPU].sum_all_delta_values()} "
            f"eOther: {total[Component.OTHER].sum_all_delta_values()} \n"
        )