import json
import logging

import numpy as np
import pytest

from utils import as_vector3, load_config, setup_logging


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"run_control": {"max_steps": 3}}))
    assert load_config(str(path)) == {"run_control": {"max_steps": 3}}


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.json"))


def test_load_config_bad_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        load_config(str(path))


def test_setup_logging_creates_log_directory(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging({"logging": {"level": "debug", "log_file": str(log_file)}})
        setup_logging({"logging": {"level": "debug", "log_file": str(log_file)}})
        assert log_file.parent.is_dir()
        assert root.level == logging.DEBUG
        # Re-running setup replaces handlers instead of stacking them
        assert len(root.handlers) == 2
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_as_vector3():
    assert as_vector3([1, 2, 3], "v").tolist() == [1.0, 2.0, 3.0]
    assert as_vector3(np.zeros(3), "v").dtype == np.float64
    with pytest.raises(ValueError):
        as_vector3([1, 2], "v")
    with pytest.raises(ValueError):
        as_vector3(["a", "b", "c"], "v")
