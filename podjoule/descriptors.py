"""Prometheus metric descriptors and the text form of individual samples."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Iterable

from podjoule.features import FeatureSet, get_node_name
from podjoule.process_metric import COMMAND_LENGTH_LIMIT

NAMESPACE = "kepler"
MILLIJOULE_PER_JOULE = 1000

CGROUPFS_MEMORY = "cgroupfs_memory_usage_bytes"
CGROUPFS_KERNEL_MEMORY = "cgroupfs_kernel_memory_usage_bytes"
CGROUPFS_TCP_MEMORY = "cgroupfs_tcp_memory_usage_bytes"
CGROUPFS_CPU = "cgroupfs_cpu_usage_us"
CGROUPFS_SYSTEM_CPU = "cgroupfs_system_cpu_usage_us"
CGROUPFS_USER_CPU = "cgroupfs_user_cpu_usage_us"
KUBELET_CONTAINER_CPU = "container_cpu_usage_seconds_total"
KUBELET_CONTAINER_MEMORY = "container_memory_working_set_bytes"

# cgroup metrics that must all be available for the cgroup counters to be exported
CGROUP_EXPORT_METRICS = (CGROUPFS_CPU, CGROUPFS_MEMORY, CGROUPFS_SYSTEM_CPU, CGROUPFS_USER_CPU)

NODE_METRICS_STAT_LABELS = (
    "node_name",
    "cpu_architecture",
    "node_curr_cpu_time",
    "node_curr_cpu_cycles",
    "node_curr_cpu_instr",
    "node_curr_cache_miss",
    "node_curr_container_cpu_usage_seconds_total",
    "node_curr_container_memory_working_set_bytes",
    "node_curr_bytes_read",
    "node_curr_bytes_writes",
    "node_block_devices_used",
    "node_curr_energy_in_core_joule",
    "node_curr_energy_in_dram_joule",
    "node_curr_energy_in_gpu_joule",
    "node_curr_energy_in_other_joule",
    "node_curr_energy_in_pkg_joule",
    "node_curr_energy_in_uncore_joule",
)

POD_ENERGY_STAT_LABELS = (
    "pod_name",
    "container_name",
    "pod_namespace",
    "command",
    "curr_cpu_time",
    "total_cpu_time",
    "curr_cpu_cycles",
    "total_cpu_cycles",
    "curr_cpu_instr",
    "total_cpu_instr",
    "curr_cache_miss",
    "total_cache_miss",
    "curr_container_cpu_usage_seconds_total",
    "total_container_cpu_usage_seconds_total",
    "curr_container_memory_working_set_bytes",
    "total_container_memory_working_set_bytes",
    "curr_bytes_read",
    "total_bytes_read",
    "curr_bytes_writes",
    "total_bytes_writes",
    "block_devices_used",
    "curr_irq_net_rx",
    "total_irq_net_rx",
    "curr_irq_net_tx",
    "total_irq_net_tx",
    "curr_irq_block",
    "total_irq_block",
)


class MetricType(Enum):
    """How a sample value behaves over time."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDesc:
    """Name, help text and variable label names of a metric."""

    fq_name: str
    help: str
    label_names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "label_names", tuple(self.label_names))


@dataclass(frozen=True)
class Sample:
    """One value of a metric with its label values.

    Raises ValueError if the number of label values does not match the
    descriptor's label names.
    """

    desc: MetricDesc
    value_type: MetricType
    value: float
    label_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        values = tuple(self.label_values)
        if len(values) != len(self.desc.label_names):
            raise ValueError(
                f"{self.desc.fq_name}: expected {len(self.desc.label_names)} label values, "
                f"got {len(values)}"
            )
        object.__setattr__(self, "label_values", values)
        object.__setattr__(self, "value", float(self.value))


@dataclass
class ExportSettings:
    """Switches that decide which metrics are exported, and node identity."""

    node_name: str = field(default_factory=get_node_name)
    cpu_architecture: str = "unknown"
    enabled_gpu: bool = False
    expose_hardware_counter_metrics: bool = True
    expose_cgroup_metrics: bool = True
    expose_kubelet_metrics: bool = True
    expose_irq_counter_metrics: bool = True
    cpu_hardware_counter_enabled: bool = False
    have_cgroup_metric: bool = False
    have_kubelet_metric: bool = False


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with underscores; empty if name is empty."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def truncate_command(command: str) -> str:
    """The command cut to the length used in labels."""
    return command[:COMMAND_LENGTH_LIMIT]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    dec = Decimal(repr(value)).normalize()
    sign, digits, exponent = dec.as_tuple()
    exp = len(digits) + exponent - 1
    if exp < -4 or exp >= 6:
        text = "".join(str(d) for d in digits)
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        exp_sign = "+" if exp >= 0 else "-"
        return f"{'-' if sign else ''}{mantissa}e{exp_sign}{abs(exp):02d}"
    return format(dec, "f")


def format_sample(sample: Sample) -> str:
    """The sample as a line of the Prometheus text exposition format."""
    pairs = sorted(zip(sample.desc.label_names, sample.label_values))
    labels = ",".join(f'{name}="{_escape(value)}"' for name, value in pairs)
    head = f"{sample.desc.fq_name}{{{labels}}}" if pairs else sample.desc.fq_name
    return f"{head} {_format_value(sample.value)}"


def _descs(subsystem: str, specs: Iterable[tuple[str, str, tuple[str, ...]]]) -> dict[str, MetricDesc]:
    return {
        name: MetricDesc(build_fq_name(NAMESPACE, subsystem, name), help_text, labels)
        for name, help_text, labels in specs
    }


_NODE_ENERGY_LABELS = ("package", "instance", "source", "mode")
_CONTAINER_ENERGY_LABELS = ("pod_name", "container_name", "container_namespace", "command", "mode")
_CONTAINER_LABELS = ("pod_name", "container_name", "container_namespace", "command")
_CONTAINER_BPF_LABELS = ("pod_name", "container_name", "container_namespace")
_PROCESS_ENERGY_LABELS = ("pid", "command", "mode")
_PROCESS_LABELS = ("pid", "command")


@lru_cache(maxsize=None)
def _node_descs() -> dict[str, MetricDesc]:
    return _descs("node", [
        ("nodeInfo", "Labeled node information", ("cpu_architecture",)),
        ("core_joules_total", "Aggregated RAPL value in core in joules", _NODE_ENERGY_LABELS),
        ("uncore_joules_total", "Aggregated RAPL value in uncore in joules", _NODE_ENERGY_LABELS),
        ("dram_joules_total", "Aggregated RAPL value in dram in joules", _NODE_ENERGY_LABELS),
        ("package_joules_total", "Aggregated RAPL value in package (socket) in joules",
         _NODE_ENERGY_LABELS),
        ("platform_joules_total", "Aggregated RAPL value in platform (entire node) in joules",
         ("instance", "source", "mode")),
        ("other_host_components_joules_total",
         "Aggregated RAPL value in other components (platform - package - dram) in joules",
         ("instance", "mode")),
        ("gpu_joules_total", "Current GPU value in joules", ("index", "instance", "source", "mode")),
        ("cpu_scaling_frequency_hertz", "Current average cpu frequency in hertz", ("cpu", "instance")),
        ("package_energy_millijoule",
         "Aggregated RAPL value in package (socket) in milijoules (deprecated)",
         ("instance", "pkg_id", "core", "dram", "uncore")),
        ("energy_stat", "Several labeled node metrics", NODE_METRICS_STAT_LABELS),
    ])


@lru_cache(maxsize=None)
def _container_descs() -> dict[str, MetricDesc]:
    return _descs("container", [
        ("core_joules_total", "Aggregated RAPL value in core in joules", _CONTAINER_ENERGY_LABELS),
        ("uncore_joules_total", "Aggregated RAPL value in uncore in joules", _CONTAINER_ENERGY_LABELS),
        ("dram_joules_total", "Aggregated RAPL value in dram in joules", _CONTAINER_ENERGY_LABELS),
        ("package_joules_total", "Aggregated RAPL value in package (socket) in joules",
         _CONTAINER_ENERGY_LABELS),
        ("other_host_components_joules_total",
         "Aggregated value in other host components (platform - package - dram) in joules",
         _CONTAINER_ENERGY_LABELS),
        ("gpu_joules_total", "Aggregated GPU value in joules", _CONTAINER_ENERGY_LABELS),
        ("joules_total",
         "Aggregated RAPL Package + Uncore + DRAM + GPU + other host components "
         "(platform - package - dram) in joules",
         _CONTAINER_ENERGY_LABELS),
        ("cpu_cycles_total", "Aggregated CPU cycle value", _CONTAINER_LABELS),
        ("cpu_instructions_total", "Aggregated CPU instruction value", _CONTAINER_LABELS),
        ("cache_miss_total", "Aggregated cache miss value", _CONTAINER_LABELS),
        ("cgroupfs_cpu_usage_us_total", "Aggregated cpu usage obtained from cGroups", _CONTAINER_LABELS),
        ("cgroupfs_memory_usage_bytes_total", "Aggregated memory bytes obtained from cGroups",
         _CONTAINER_LABELS),
        ("cgroupfs_system_cpu_usage_us_total", "Aggregated system cpu usage obtained from cGroups",
         _CONTAINER_LABELS),
        ("cgroupfs_user_cpu_usage_us_total", "Aggregated user cpu usage obtained from cGroups",
         _CONTAINER_LABELS),
        ("kubelet_cpu_usage_total", "Aggregated cpu usage obtained from kubelet", _CONTAINER_LABELS),
        ("kubelet_memory_bytes_total", "Aggregated memory bytes obtained from kubelet",
         _CONTAINER_LABELS),
        ("bpf_cpu_time_us_total", "Aggregated CPU time obtained from BPF", _CONTAINER_BPF_LABELS),
        ("bpf_net_tx_irq_total", "Aggregated network tx irq value obtained from BPF",
         _CONTAINER_BPF_LABELS),
        ("bpf_net_rx_irq_total", "Aggregated network rx irq value obtained from BPF",
         _CONTAINER_BPF_LABELS),
        ("bpf_block_irq_total", "Aggregated block irq value obtained from BPF", _CONTAINER_BPF_LABELS),
    ])


@lru_cache(maxsize=None)
def _pod_descs() -> dict[str, MetricDesc]:
    return _descs("pod", [
        ("energy_stat", "Several labeled pod metrics", POD_ENERGY_STAT_LABELS),
        ("cpu_instructions", "Aggregated CPU instruction value (deprecated)", _CONTAINER_LABELS),
    ])


@lru_cache(maxsize=None)
def _process_descs() -> dict[str, MetricDesc]:
    return _descs("process", [
        ("core_joules_total", "Aggregated RAPL value in core in joules", _PROCESS_ENERGY_LABELS),
        ("uncore_joules_total", "Aggregated RAPL value in uncore in joules", _PROCESS_ENERGY_LABELS),
        ("dram_joules_total", "Aggregated RAPL value in dram in joules", _PROCESS_ENERGY_LABELS),
        ("package_joules_total", "Aggregated RAPL value in package (socket) in joules",
         _PROCESS_ENERGY_LABELS),
        ("other_host_components_joules_total",
         "Aggregated value in other host components (platform - package - dram) in joules",
         _PROCESS_ENERGY_LABELS),
        ("gpu_joules_total", "Aggregated GPU value in joules", _PROCESS_ENERGY_LABELS),
        ("joules_total",
         "Aggregated RAPL Package + Uncore + DRAM + GPU + other host components "
         "(platform - package - dram) in joules",
         _PROCESS_ENERGY_LABELS),
        ("cpu_cycles_total", "Aggregated CPU cycle value", _PROCESS_LABELS),
        ("cpu_instructions_total", "Aggregated CPU instruction value", _PROCESS_LABELS),
        ("cache_miss_total", "Aggregated cache miss value", _PROCESS_LABELS),
        ("cpu_cpu_time_us", "Aggregated CPU time", _PROCESS_LABELS),
        ("bpf_net_tx_irq_total", "Aggregated network tx irq value obtained from BPF", _PROCESS_LABELS),
        ("bpf_net_rx_irq_total", "Aggregated network rx irq value obtained from BPF", _PROCESS_LABELS),
        ("bpf_block_irq_total", "Aggregated block irq value obtained from BPF", _PROCESS_LABELS),
    ])


def node_descs() -> dict[str, MetricDesc]:
    """Node metric descriptors keyed by their short name."""
    return dict(_node_descs())


def container_descs() -> dict[str, MetricDesc]:
    """Container metric descriptors keyed by their short name."""
    return dict(_container_descs())


def pod_descs() -> dict[str, MetricDesc]:
    """Pod metric descriptors keyed by their short name."""
    return dict(_pod_descs())


def process_descs() -> dict[str, MetricDesc]:
    """Process metric descriptors keyed by their short name."""
    return dict(_process_descs())


def describe(settings: ExportSettings, features: FeatureSet) -> list[MetricDesc]:
    """Descriptors of every metric exported with these settings and features."""
    node, container, pod, process = _node_descs(), _container_descs(), _pod_descs(), _process_descs()
    energy = [
        "core_joules_total",
        "uncore_joules_total",
        "dram_joules_total",
        "package_joules_total",
    ]

    descs = [node["nodeInfo"]]
    descs += [node[name] for name in energy]
    descs += [node["platform_joules_total"], node["other_host_components_joules_total"]]
    if settings.enabled_gpu:
        descs.append(node["gpu_joules_total"])
    descs.append(node["cpu_scaling_frequency_hertz"])
    descs += [node["package_energy_millijoule"], node["energy_stat"]]

    descs += [container[name] for name in energy]
    descs.append(container["other_host_components_joules_total"])
    if settings.enabled_gpu:
        descs.append(container["gpu_joules_total"])
    descs.append(container["joules_total"])

    hw_enabled = features.cpu_hardware_counter_enabled()
    if settings.expose_hardware_counter_metrics and hw_enabled:
        descs += [container[n] for n in ("cpu_cycles_total", "cpu_instructions_total", "cache_miss_total")]

    if settings.expose_cgroup_metrics and all(
        name in features.cgroup_metrics for name in CGROUP_EXPORT_METRICS
    ):
        descs += [
            container["cgroupfs_cpu_usage_us_total"],
            container["cgroupfs_memory_usage_bytes_total"],
            container["cgroupfs_system_cpu_usage_us_total"],
            container["cgroupfs_user_cpu_usage_us_total"],
        ]

    if settings.expose_kubelet_metrics and features.kubelet_metrics:
        descs += [container["kubelet_cpu_usage_total"], container["kubelet_memory_bytes_total"]]

    descs += [container["bpf_cpu_time_us_total"], pod["energy_stat"]]

    if settings.expose_irq_counter_metrics:
        descs += [
            container["bpf_net_tx_irq_total"],
            container["bpf_net_rx_irq_total"],
            container["bpf_block_irq_total"],
        ]

    descs += [process[name] for name in energy]
    descs.append(process["other_host_components_joules_total"])
    if settings.enabled_gpu:
        descs.append(process["gpu_joules_total"])
    descs.append(process["joules_total"])
    if hw_enabled:
        descs += [process[n] for n in ("cpu_cycles_total", "cpu_instructions_total", "cache_miss_total")]
    if settings.expose_irq_counter_metrics:
        descs += [
            process["bpf_net_tx_irq_total"],
            process["bpf_net_rx_irq_total"],
            process["bpf_block_irq_total"],
        ]
    return descs