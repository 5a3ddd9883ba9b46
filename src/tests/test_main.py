"""
===============================================================================
LUNAR TRANSFER SIM - Command Line Test Suite
===============================================================================
Exit codes of the headless entry point for setup and run failures.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from lunarsim.main import main


class TestExitCodes:

    def test_missing_config(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.yaml")]) == 2

    def test_invalid_scenario(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("spacecraft:\n  isp: 0.0\n")
        assert main(["--config", str(path)]) == 2

    def test_paused_time_scale(self):
        assert main(["--time-scale", "0", "--max-days", "0.01"]) == 2
