import logging

from boxoil.__main__ import main
from boxoil.stores import HDF5Store


def test_reference_run_succeeds(tmp_path, caplog):
    config = tmp_path / "run.yaml"
    config.write_text("end_time: 4.0e8\n")
    output = tmp_path / "run.h5"
    with caplog.at_level(logging.INFO):
        assert main([str(config), str(output)]) == 0
    assert "Simulation completed successfully" in caplog.text
    steps = [state.step for state in HDF5Store(output).load()]
    assert steps[0] == 0
    assert steps[-1] == 9


def test_default_run_succeeds():
    assert main([]) == 0


def test_invalid_configuration_is_reported(tmp_path, caplog):
    config = tmp_path / "run.yaml"
    config.write_text("cfl_factor: 1.5\n")
    assert main([str(config)]) == 1
    assert "boxoil reported error" in caplog.text


def test_unknown_failure_is_reported(tmp_path, caplog):
    assert main([str(tmp_path / "missing.yaml")]) == 1
    assert "Unknown exception thrown!" in caplog.text


def test_too_many_arguments(caplog):
    assert main(["a.yaml", "b.h5", "c"]) == 1
    assert "boxoil reported error" in caplog.text
