import pytest

from podjoule.process_metric import (
    CPU_TIME,
    GPU_MEM_UTILIZATION,
    GPU_SM_UTILIZATION,
    IRQ,
    MAX_IRQ,
    MetricNotFoundError,
    ProcessMetrics,
)


def make_process():
    process = ProcessMetrics(pid=42, command="python3", hw_counters=["cpu_cycles", "cache_miss"])
    process.counter_stats["cpu_cycles"].add_new_delta(10)
    process.cpu_time.add_new_delta(10)
    process.soft_irq_count[IRQ.NET_RX].add_new_delta(3)
    return process


def test_constructor_creates_counters():
    process = ProcessMetrics(hw_counters=["cpu_cycles"], gpu_supported=True)
    assert set(process.counter_stats) == {"cpu_cycles", GPU_SM_UTILIZATION, GPU_MEM_UTILIZATION}
    assert len(process.soft_irq_count) == MAX_IRQ


def test_constructor_without_gpu():
    process = ProcessMetrics(hw_counters=["cpu_cycles"])
    assert list(process.counter_stats) == ["cpu_cycles"]


def test_irq_labels_round_trip():
    for irq in IRQ:
        assert IRQ.from_label(irq.label) is irq
    assert IRQ.from_label("nope") is None


def test_get_int_delta_and_aggr_known_metrics():
    process = make_process()
    assert process.get_int_delta_and_aggr("cpu_cycles") == (10, 10)
    assert process.get_int_delta_and_aggr(CPU_TIME) == (10, 10)
    assert process.get_int_delta_and_aggr(IRQ.NET_RX.label) == (3, 3)
    assert process.get_int_delta_and_aggr(IRQ.BLOCK.label) == (0, 0)


def test_get_int_delta_and_aggr_unknown_raises():
    with pytest.raises(MetricNotFoundError, match="cannot extract: bogus"):
        make_process().get_int_delta_and_aggr("bogus")


def test_to_prometheus_value_prefixes():
    process = make_process()
    process.cpu_time.set_new_delta(5)
    assert process.to_prometheus_value("curr_cpu_time") == "5"
    assert process.to_prometheus_value("total_cpu_time") == str(10 + 5)


def test_to_prometheus_value_unknown_falls_back_to_float():
    assert make_process().to_prometheus_value("curr_unknown") == "0.000000"


def test_to_estimator_values():
    process = make_process()
    values = process.to_estimator_values(["cpu_cycles", "unknown", CPU_TIME])
    assert values == [10.0, 0.0, 10.0]


def test_basic_values_truncates_command():
    process = ProcessMetrics(command="abcdefghijklmno")
    assert process.basic_values() == ["abcdefghij"]
    assert ProcessMetrics(command="short").basic_values() == ["short"]


def test_sum_all_dyn_values():
    process = ProcessMetrics()
    process.dyn_energy_in_pkg.add_new_delta(7)
    process.dyn_energy_in_gpu.add_new_delta(9)
    process.dyn_energy_in_other.add_new_delta(11)
    process.dyn_energy_in_core.add_new_delta(100)
    assert process.sum_all_dyn_delta() == 7 + 9 + 11
    assert process.sum_all_dyn_aggr() == 7 + 9 + 11


def test_reset_delta_keeps_aggregates():
    process = make_process()
    process.idle_energy_in_dram.add_new_delta(4)
    process.reset_delta()
    assert process.cpu_time.delta == 0
    assert process.cpu_time.aggr == 10
    assert process.counter_stats["cpu_cycles"].delta == 0
    assert process.soft_irq_count[IRQ.NET_RX].delta == 0
    assert process.idle_energy_in_dram.delta == 0
    assert process.idle_energy_in_dram.aggr == 4


def test_str_mentions_pid_and_command():
    text = str(make_process())
    assert text.startswith("energy from process pid: 42 comm: python3\n")
    assert "CPUTime:  10 (10)" in text