# podjoule

podjoule is a library for energy accounting. It records energy readings for a
machine, keeps the running totals and the per-interval changes, and divides the
node's energy into idle and dynamic parts. It also holds the counters for
containers and processes, and defines the Prometheus metrics that describe all
of this.

## Modules

- **`podjoule.stats`**: `UInt64Stat` holds a running total (`aggr`) and the
  change over the last interval (`delta`), both treated as unsigned 64-bit
  integers. `add_new_delta`, `set_new_delta` and `set_new_aggr` update it.
  Zero readings are ignored. When a total reaches the 64-bit limit it is set
  back to 0 and `StatOverflowError` is raised.
  `UInt64StatCollection` keeps one counter per key (package, sensor, device).
  It has sum and reset helpers, and it logs overflows instead of raising them.
- **`podjoule.process_metric`**: `ProcessMetrics` holds a process's CPU time,
  hardware counters, soft-IRQ counts (indexed by `IRQ`) and its dynamic and
  idle energy per component. `get_int_delta_and_aggr` looks up a metric by
  name and raises `MetricNotFoundError` if the name is unknown.
  `to_prometheus_value` reads labels with the prefix `curr_` or `total_`.
- **`podjoule.container_metric`**: `ContainerMetrics` adds the following to
  the process metrics:
  - cgroup statistics and kubelet statistics
  - bytes read and bytes written
  - the block-device count
  - the list of PIDs seen, kept up to date by `set_latest_process`
- **`podjoule.node_metric`**: `NodeMetrics` keeps a total, an idle and a
  dynamic collection for each `Component`: core, dram, uncore, pkg, gpu,
  other and platform.
  - Inputs: `set_latest_platform_energy` takes sensor deltas and rounds them
    up. `set_components_energy` takes aggregated `NodeComponentsEnergy` per
    package. `add_gpu_energy` takes one delta per GPU.
    `add_resource_usage_from_containers` sums container deltas into
    `resource_usage`.
  - Idle energy: `update_idle_energy` tracks the lowest delta seen while the
    node is idle.
  - Dynamic energy: `update_dyn_energy` computes total minus idle, using
    `calc_dyn_energy`.
  - Other components: `set_other_components_energy` books any platform energy
    above package + DRAM + GPU as `other`.
- **`podjoule.features`**: `FeatureSet` lists the eBPF, hardware, cgroup,
  kubelet and I/O metrics available on a host. It returns:
  - the feature names used by estimators (`estimator_metrics`)
  - the `curr_`/`total_` label names (`prometheus_metrics`)
  - whether CPU hardware counters are enabled

  `get_node_name` returns the host name. `get_cpu_arch` detects the CPU
  micro-architecture, or returns an override you pass in. To detect it, it
  runs `cpuid`, `archspec` or `lscpu`, then matches the result against a CSV
  file of known architectures. It returns `"unknown"` if detection fails.
  `get_cpu_architecture` does the same but raises the error instead.
- **`podjoule.descriptors`**: the `kepler_*` metric descriptors
  (`MetricDesc`) for nodes, containers, pods and processes, and `Sample`, a
  single value with its labels. `describe` lists the descriptors that a given
  `ExportSettings` and `FeatureSet` expose. `format_sample` writes one sample
  as a line of the Prometheus text exposition format.

## Example

```python
from podjoule.container_metric import ContainerMetrics
from podjoule.descriptors import MetricType, Sample, format_sample, node_descs
from podjoule.node_metric import Component, NodeComponentsEnergy, NodeMetrics

node = NodeMetrics()
node.set_latest_platform_energy({"sensor0": 5})
node.update_idle_energy()
node.set_latest_platform_energy({"sensor0": 10})  # 5 mJ idle, 5 mJ dynamic
node.update_idle_energy()
node.update_dyn_energy()
print(node.delta_dyn_energy(Component.PLATFORM, "sensor0"))  # 5

node.set_components_energy({0: NodeComponentsEnergy(pkg=5, core=5, dram=5, uncore=5)})
node.set_components_energy({0: NodeComponentsEnergy(pkg=10, core=10, dram=10, uncore=10)})

container = ContainerMetrics(container_name="containerA", pod_name="podA", namespace="test")
container.cpu_time.add_new_delta(10)
print(container.to_prometheus_value("curr_cpu_time"))  # "10"

desc = node_descs()["package_joules_total"]
sample = Sample(desc, MetricType.COUNTER, 0.005, ("0", "node1", "rapl", "dynamic"))
print(format_sample(sample))
# kepler_node_package_joules_total{instance="node1",mode="dynamic",package="0",source="rapl"} 0.005
```

Energy is stored in millijoules. The exported metrics are named in joules, so
divide by `descriptors.MILLIJOULE_PER_JOULE` when you build a sample.

## What it does not do

podjoule does not read energy or usage from the machine. It does not read
RAPL, ACPI, GPU or BPF counters, and it does not scan cgroups or the kubelet.
You supply the readings.

It does not split node energy among containers and processes; the dynamic and
idle energy fields of `ProcessMetrics` and `ContainerMetrics` are filled in by
the caller.

It defines metric descriptors and formats single samples. It does not build
the full set of samples for a scrape page and does not serve metrics over
HTTP.

## Running the tests

```
pip install -e .[test]
pytest
```