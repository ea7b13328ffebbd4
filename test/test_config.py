# test/test_config.py
import pytest
from loguru import logger

from tracemath.core.config import DEFAULT_LOGLEVEL, MIN_MATH_UPDATE_INTERVAL, EngineConfig
from tracemath.core.exceptions import InvalidConfig
from tracemath.log import clear_log, log_default_path, start_log


def test_defaults():
    cfg = EngineConfig()
    assert cfg.min_update_interval == MIN_MATH_UPDATE_INTERVAL
    assert cfg.velocity_factor == 0.66
    assert cfg.reference_impedance == 50.0
    assert cfg.log_level == DEFAULT_LOGLEVEL


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_update_interval": -1.0},
        {"velocity_factor": 0.0},
        {"velocity_factor": 1.2},
        {"reference_impedance": 0.0},
        {"log_level": ""},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(InvalidConfig):
        EngineConfig(**kwargs)


def test_from_mapping():
    cfg = EngineConfig.from_mapping({"min_update_interval": 0.5, "log_level": "DEBUG"})
    assert cfg.min_update_interval == 0.5
    assert cfg.log_level == "DEBUG"


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(InvalidConfig, match="debounce"):
        EngineConfig.from_mapping({"debounce": 1.0})


def test_config_is_frozen():
    cfg = EngineConfig()
    with pytest.raises(AttributeError):
        cfg.velocity_factor = 0.5


def test_start_log_writes_to_file(tmp_path):
    path = tmp_path / "trace.log"
    try:
        returned = start_log(log_to_file=True, log_path=str(path), log_level="DEBUG")
        logger.debug("hello from the test")
        logger.complete()
    finally:
        logger.remove()
    assert returned == str(path)
    assert "hello from the test" in path.read_text()


def test_clear_log(tmp_path):
    path = tmp_path / "old.log"
    path.write_text("stale")
    clear_log(str(path))
    assert not path.exists()
    # missing file is fine
    clear_log(str(path))


def test_default_log_path():
    assert log_default_path().endswith("tracemath.log")
