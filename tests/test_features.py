import socket
import subprocess
from unittest import mock

import pytest

from podjoule.features import (
    CPU_INSTRUCTION,
    FeatureSet,
    get_cpu_arch,
    get_cpu_architecture,
    get_node_name,
    match_cpu_model,
)


@pytest.fixture
def model_csv(tmp_path):
    path = tmp_path / "normalized_cpu_arch.csv"
    path.write_text("Architecture\nSkylake\nSapphire Rapids\nneoverse_n1\n", encoding="utf-8")
    return str(path)


def _completed(stdout):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


def test_uint_feature_names_without_platform_metrics():
    assert FeatureSet().uint_feature_names() == ["bytes_read", "bytes_writes"]


def test_prometheus_metrics_without_platform_metrics():
    assert FeatureSet().prometheus_metrics() == [
        "curr_bytes_read",
        "total_bytes_read",
        "curr_bytes_writes",
        "total_bytes_writes",
        "block_devices_used",
    ]


def test_estimator_metrics_without_platform_metrics():
    assert FeatureSet().estimator_metrics() == ["bytes_read", "bytes_writes", "block_devices_used"]


def test_is_counter_stat_enabled_false_for_missing_label():
    features = FeatureSet(hw_counters=["bytes_read", "bytes_writes", "block_devices_used"])
    assert features.is_counter_stat_enabled("cpu_time") is False


def test_is_counter_stat_enabled_false_for_empty_label():
    features = FeatureSet(hw_counters=["bytes_read", "bytes_writes", "block_devices_used"])
    assert features.is_counter_stat_enabled("") is False


def test_is_counter_stat_enabled_true():
    features = FeatureSet(hw_counters=["cpu_cycles", CPU_INSTRUCTION])
    assert features.is_counter_stat_enabled("cpu_cycles") is True


def test_cpu_hardware_counter_enabled_follows_instruction_counter():
    assert FeatureSet(hw_counters=[CPU_INSTRUCTION]).cpu_hardware_counter_enabled() is True
    assert FeatureSet(hw_counters=["cpu_cycles"]).cpu_hardware_counter_enabled() is False


def test_uint_feature_names_order_with_all_sources():
    features = FeatureSet(
        ebpf_counters=["cpu_time"],
        hw_counters=["cpu_cycles"],
        cgroup_metrics=["cgroupfs_cpu_usage_us"],
        kubelet_metrics=["container_cpu_usage_seconds_total"],
        gpu_enabled=True,
    )
    assert features.uint_feature_names() == [
        "cpu_time",
        "cpu_cycles",
        "cgroupfs_cpu_usage_us",
        "container_cpu_usage_seconds_total",
        "bytes_read",
        "bytes_writes",
        "gpu_sm_util",
        "gpu_mem_util",
    ]


def test_feature_names_puts_float_features_first():
    features = FeatureSet(float_feature_names=["freq"])
    assert features.feature_names() == ["freq", "bytes_read", "bytes_writes"]


def test_get_node_name_is_hostname():
    assert get_node_name() == socket.gethostname()


def test_match_cpu_model_finds_substring(model_csv):
    assert match_cpu_model(" Intel Sapphire Rapids ", model_csv) == "Sapphire Rapids"


def test_match_cpu_model_no_match(model_csv):
    with pytest.raises(LookupError):
        match_cpu_model("Zen 4", model_csv)


def test_match_cpu_model_missing_column(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Name\nSkylake\n", encoding="utf-8")
    with pytest.raises(ValueError):
        match_cpu_model("Skylake", str(path))


def test_override_wins(model_csv):
    assert get_cpu_architecture("Custom", model_csv) == "Custom"


def test_x86_detection(model_csv):
    output = "CPU:\n   (uarch synth) = Intel Sapphire Rapids {Golden Cove}, Intel 7\n"
    with mock.patch("podjoule.features.platform.machine", return_value="x86_64"), mock.patch(
        "podjoule.features.subprocess.run", return_value=_completed(output)
    ):
        assert get_cpu_architecture(None, model_csv) == "Sapphire Rapids"


def test_s390x_detection(model_csv):
    output = "Architecture: s390x\nMachine type: 8561\n"
    with mock.patch("podjoule.features.platform.machine", return_value="s390x"), mock.patch(
        "podjoule.features.subprocess.run", return_value=_completed(output)
    ):
        assert get_cpu_architecture(None, model_csv) == "zSystems model 8561"


def test_arm_detection(model_csv):
    with mock.patch("podjoule.features.platform.machine", return_value="aarch64"), mock.patch(
        "podjoule.features.subprocess.run", return_value=_completed("neoverse_n1\n")
    ):
        assert get_cpu_architecture(None, model_csv) == "neoverse_n1"


def test_get_cpu_arch_unknown_when_tool_missing(model_csv):
    with mock.patch("podjoule.features.platform.machine", return_value="aarch64"), mock.patch(
        "podjoule.features.subprocess.run", side_effect=FileNotFoundError("archspec")
    ):
        assert get_cpu_arch(None, model_csv) == "unknown"


def test_get_cpu_arch_unknown_when_data_missing(tmp_path):
    with mock.patch("podjoule.features.platform.machine", return_value="aarch64"), mock.patch(
        "podjoule.features.subprocess.run", return_value=_completed("neoverse_n1\n")
    ):
        assert get_cpu_arch(None, str(tmp_path / "missing.csv")) == "unknown"