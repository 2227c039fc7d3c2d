"""Names of the features that are collected, and host identification helpers."""

from __future__ import annotations

import csv
import logging
import platform
import socket
import subprocess
from dataclasses import dataclass, field

from podjoule.container_metric import (
    BLOCK_DEVICES_IO,
    CONTAINER_IO_STAT_METRIC_NAMES,
)
from podjoule.process_metric import GPU_MEM_UTILIZATION, GPU_SM_UTILIZATION
from podjoule.stats import AGGR_PREFIX, DELTA_PREFIX

log = logging.getLogger(__name__)

CPU_CYCLE = "cpu_cycles"
CPU_INSTRUCTION = "cpu_instr"
CACHE_MISS = "cache_miss"

DEFAULT_CPU_MODEL_DATA_PATH = "/var/lib/podjoule/data/normalized_cpu_arch.csv"
UNKNOWN_ARCHITECTURE = "unknown"


@dataclass
class FeatureSet:
    """The metrics available on this host, grouped by where they come from."""

    ebpf_counters: list[str] = field(default_factory=list)
    hw_counters: list[str] = field(default_factory=list)
    cgroup_metrics: list[str] = field(default_factory=list)
    kubelet_metrics: list[str] = field(default_factory=list)
    gpu_enabled: bool = False
    float_feature_names: list[str] = field(default_factory=list)
    io_stat_metric_names: list[str] = field(
        default_factory=lambda: list(CONTAINER_IO_STAT_METRIC_NAMES)
    )

    def uint_feature_names(self) -> list[str]:
        """Integer features in collection order: eBPF, hardware, cgroup, kubelet, I/O, GPU."""
        names = [
            *self.ebpf_counters,
            *self.hw_counters,
            *self.cgroup_metrics,
            *self.kubelet_metrics,
            *self.io_stat_metric_names,
        ]
        if self.gpu_enabled:
            names += [GPU_SM_UTILIZATION, GPU_MEM_UTILIZATION]
        log.debug("available ebpf metrics: %s", self.ebpf_counters)
        log.debug("available counter metrics: %s", self.hw_counters)
        log.debug("available cgroup metrics from cgroup: %s", self.cgroup_metrics)
        log.debug("available cgroup metrics from kubelet: %s", self.kubelet_metrics)
        log.debug("available I/O metrics: %s", self.io_stat_metric_names)
        return names

    def feature_names(self) -> list[str]:
        """Float features followed by integer features."""
        return [*self.float_feature_names, *self.uint_feature_names()]

    def prometheus_metrics(self) -> list[str]:
        """Delta and aggregate label of every feature, then the block device label."""
        labels = [
            label
            for feature in self.feature_names()
            for label in (DELTA_PREFIX + feature, AGGR_PREFIX + feature)
        ]
        labels.append(BLOCK_DEVICES_IO)
        return labels

    def estimator_metrics(self) -> list[str]:
        """Feature names used by power estimators, then the block device label."""
        return [*self.feature_names(), BLOCK_DEVICES_IO]

    def is_counter_stat_enabled(self, label: str) -> bool:
        """Whether the hardware counter named label is available."""
        return label in self.hw_counters

    def cpu_hardware_counter_enabled(self) -> bool:
        """Whether CPU hardware counters should be accounted and exported."""
        return self.is_counter_stat_enabled(CPU_INSTRUCTION)


def get_node_name() -> str:
    """The host name of this node."""
    return socket.gethostname()


def _run(args: list[str]) -> str:
    return subprocess.run(args, check=True, capture_output=True, text=True).stdout


def _grep(text: str, pattern: str) -> str:
    lines = [line for line in text.splitlines(keepends=True) if pattern in line]
    if not lines:
        raise LookupError(f"no line matching {pattern!r}")
    return "".join(lines)


def _x86_architecture() -> str:
    matched = _grep(_run(["cpuid", "-1"]), "uarch")
    parts = matched.split("=")
    if len(parts) != 2:
        raise ValueError("could not get the CPU Architecture")
    return parts[1].split("{")[0]


def _arm64_architecture() -> str:
    return _run(["archspec", "cpu"]).removesuffix("\n")


def _s390x_architecture() -> str:
    matched = _grep(_run(["lscpu"]), "Machine type:")
    parts = matched.split(":")
    if len(parts) != 2:
        raise ValueError("could not get the CPU Architecture")
    return f"zSystems model {parts[1].strip()}"


def match_cpu_model(cpu_model: str, model_data_path: str = DEFAULT_CPU_MODEL_DATA_PATH) -> str:
    """First architecture in the CSV file that occurs within cpu_model.

    Raises OSError if the file cannot be read, ValueError if it has no
    Architecture column and LookupError if nothing matches.
    """
    with open(model_data_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None or "Architecture" not in reader.fieldnames:
            raise ValueError(f"{model_data_path} has no Architecture column")
        for row in reader:
            architecture = row["Architecture"] or ""
            if architecture in cpu_model:
                return architecture
    raise LookupError(f"no CPU power model found for architecture {cpu_model}")


def get_cpu_architecture(
    override: str | None = None, model_data_path: str = DEFAULT_CPU_MODEL_DATA_PATH
) -> str:
    """Detect the CPU micro-architecture, honouring an explicit override."""
    if override:
        log.info("cpu arch override: %s", override)
        return override
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        cpu_model = _x86_architecture()
    elif machine == "s390x":
        return _s390x_architecture()
    else:
        cpu_model = _arm64_architecture()
    return match_cpu_model(cpu_model, model_data_path)


def get_cpu_arch(
    override: str | None = None, model_data_path: str = DEFAULT_CPU_MODEL_DATA_PATH
) -> str:
    """Like get_cpu_architecture, but returns "unknown" when detection fails."""
    try:
        return get_cpu_architecture(override, model_data_path)
    except (OSError, subprocess.SubprocessError, LookupError, ValueError) as err:
        log.debug("cannot detect cpu architecture: %s", err)
        return UNKNOWN_ARCHITECTURE