import pytest

from podjoule.container_metric import ContainerMetrics
from podjoule.process_metric import IRQ, MetricNotFoundError
from podjoule.stats import UInt64Stat, UInt64StatCollection

CGROUP_METRICS = ["cgroupfs_memory_usage_bytes", "cgroupfs_cpu_usage_us"]
KUBELET_METRICS = ["container_cpu_usage_seconds_total", "container_memory_working_set_bytes"]


@pytest.fixture
def fixed_container():
    def coll(delta, aggr):
        return UInt64StatCollection(stats={"usage": UInt64Stat(delta=delta, aggr=aggr)})

    return ContainerMetrics(
        dyn_energy_in_core=UInt64Stat(delta=1, aggr=2),
        dyn_energy_in_dram=UInt64Stat(delta=3, aggr=4),
        dyn_energy_in_uncore=UInt64Stat(delta=5, aggr=6),
        dyn_energy_in_pkg=UInt64Stat(delta=7, aggr=8),
        dyn_energy_in_gpu=UInt64Stat(delta=9, aggr=10),
        dyn_energy_in_other=UInt64Stat(delta=11, aggr=12),
        cgroupfs_stats={
            "core": coll(13, 14),
            "dram": coll(15, 16),
            "uncore": coll(17, 18),
            "pkg": coll(19, 20),
            "gpu": coll(21, 22),
            "other": coll(23, 24),
        },
    )


@pytest.fixture
def container():
    return ContainerMetrics(
        container_name="containerA",
        pod_name="podA",
        namespace="test",
        hw_counters=["cpu_cycles", "cpu_instr"],
        cgroup_metrics=CGROUP_METRICS,
        kubelet_metrics=KUBELET_METRICS,
    )


@pytest.mark.parametrize(
    "metric, expected",
    [
        ("core", (13, 14)),
        ("dram", (15, 16)),
        ("uncore", (17, 18)),
        ("pkg", (19, 20)),
        ("gpu", (21, 22)),
        ("other", (23, 24)),
    ],
)
def test_get_int_delta_and_aggr_from_cgroupfs(fixed_container, metric, expected):
    assert fixed_container.get_int_delta_and_aggr(metric) == expected


def test_sum_all_dyn_values(fixed_container):
    assert fixed_container.sum_all_dyn_delta() == 7 + 9 + 11
    assert fixed_container.sum_all_dyn_aggr() == 8 + 10 + 12


def test_constructor_creates_requested_stats(container):
    assert set(container.cgroupfs_stats) == set(CGROUP_METRICS)
    assert set(container.kubelet_stats) == set(KUBELET_METRICS)
    assert set(container.counter_stats) == {"cpu_cycles", "cpu_instr"}


def test_gpu_counters_created_when_supported():
    gpu_container = ContainerMetrics(gpu_supported=True)
    assert set(gpu_container.counter_stats) == {"gpu_sm_util", "gpu_mem_util"}


def test_cgroup_delta_from_two_aggregates(container):
    container.cgroupfs_stats["cgroupfs_memory_usage_bytes"].set_aggr_stat("containerA", 10)
    container.cgroupfs_stats["cgroupfs_memory_usage_bytes"].set_aggr_stat("containerA", 20)
    assert container.get_int_delta_and_aggr("cgroupfs_memory_usage_bytes") == (10, 20)


def test_kubelet_and_io_metrics(container):
    container.kubelet_stats["container_cpu_usage_seconds_total"].set_new_aggr(10)
    container.kubelet_stats["container_cpu_usage_seconds_total"].set_new_aggr(20)
    container.bytes_read.set_aggr_stat("sda", 10)
    container.bytes_read.set_aggr_stat("sda", 25)
    container.bytes_write.set_aggr_stat("sda", 5)
    container.disks = 3
    assert container.get_int_delta_and_aggr("container_cpu_usage_seconds_total") == (10, 20)
    assert container.get_int_delta_and_aggr("bytes_read") == (15, 25)
    assert container.get_int_delta_and_aggr("bytes_writes") == (0, 5)
    assert container.get_int_delta_and_aggr("block_devices_used") == (3, 3)


def test_cpu_time_and_irq(container):
    container.cpu_time.add_new_delta(10)
    container.soft_irq_count[IRQ.NET_RX].add_new_delta(4)
    assert container.get_int_delta_and_aggr("cpu_time") == (10, 10)
    assert container.get_int_delta_and_aggr("irq_net_rx") == (4, 4)


def test_unknown_metric_raises(container):
    with pytest.raises(MetricNotFoundError):
        container.get_int_delta_and_aggr("no_such_metric")


def test_reset_delta_keeps_aggregates(container):
    container.curr_processes = 5
    container.cpu_time.add_new_delta(10)
    container.cgroupfs_stats["cgroupfs_cpu_usage_us"].set_aggr_stat("c", 10)
    container.cgroupfs_stats["cgroupfs_cpu_usage_us"].set_aggr_stat("c", 30)
    container.kubelet_stats["container_memory_working_set_bytes"].set_new_aggr(1)
    container.kubelet_stats["container_memory_working_set_bytes"].set_new_aggr(3)
    container.reset_delta()
    assert container.curr_processes == 0
    assert container.get_int_delta_and_aggr("cpu_time") == (0, 10)
    assert container.get_int_delta_and_aggr("cgroupfs_cpu_usage_us") == (0, 30)
    assert container.get_int_delta_and_aggr("container_memory_working_set_bytes") == (0, 3)


def test_set_latest_process_deduplicates_pids(container):
    container.set_latest_process(7, 100, "nginx")
    container.set_latest_process(8, 100, "nginx-worker")
    container.set_latest_process(8, 101, "nginx-worker")
    assert container.pids == [100, 101]
    assert container.cgroup_pid == 8
    assert container.command == "nginx-worker"


def test_to_prometheus_value(container):
    container.cpu_time.add_new_delta(10)
    container.cpu_time.add_new_delta(5)
    container.reset_delta()
    container.cpu_time.add_new_delta(2)
    container.disks = 2
    assert container.to_prometheus_value("curr_cpu_time") == "2"
    assert container.to_prometheus_value("total_cpu_time") == "17"
    assert container.to_prometheus_value("block_devices_used") == "2"
    assert container.to_prometheus_value("curr_unknown") == "0.000000"


def test_to_estimator_values_appends_disks(container):
    container.cpu_time.add_new_delta(10)
    container.disks = 4
    assert container.to_estimator_values(["cpu_time", "unknown"]) == [10.0, 0.0, 4.0]


def test_basic_values_truncates_command(container):
    container.command = "averyverylongcommand"
    assert container.basic_values() == ["podA", "test", "averyveryl"]


def test_str_mentions_names(container):
    text = str(container)
    assert "name: podA/containerA namespace: test" in text
    assert "CPUTime:  0 (0)" in text