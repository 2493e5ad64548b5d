"""Tests for the command line entry point."""

from unittest.mock import Mock, patch

import pytest

import main
from tradeloop.exceptions import OracleTimeoutError


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """setup_logging writes into ./logs, keep it inside the test directory."""
    monkeypatch.chdir(tmp_path)
    with patch("main.setup_logging"):
        yield


class TestParseArguments:
    def test_defaults(self):
        args = main.parse_arguments([])

        assert args.env == ".env"
        assert not args.once
        assert args.capital is None
        assert not args.api

    def test_once_with_capital(self):
        args = main.parse_arguments(["--once", "--capital", "1000", "--verbose"])

        assert args.once
        assert args.capital == 1000.0
        assert args.verbose


class TestMain:
    def test_configuration_error_exits_nonzero(self):
        with patch("main.Config.from_env", side_effect=ValueError("Missing required environment variables")):
            assert main.main(["--once"]) == 1

    def test_missing_env_file(self):
        assert main.main(["--once", "--env", "does-not-exist.env"]) == 1

    def test_single_cycle(self):
        controller = Mock()
        controller.run_once.return_value = Mock(tradings=[])
        with patch("main.Config.from_env"), patch("main.RiskConfig.from_env"), \
                patch("main.LoopController", return_value=controller):
            assert main.main(["--once", "--capital", "500"]) == 0

        controller.register_signal_handlers.assert_called_once()
        controller.run_once.assert_called_once_with(500.0)
        controller.run.assert_not_called()

    def test_failed_cycle_exits_nonzero(self):
        controller = Mock()
        controller.run_once.side_effect = OracleTimeoutError("AI call timeout after 120s")
        with patch("main.Config.from_env"), patch("main.RiskConfig.from_env"), \
                patch("main.LoopController", return_value=controller):
            assert main.main(["--once"]) == 1

    def test_invalid_risk_limits_during_cycle_exit_nonzero(self):
        controller = Mock()
        controller.run_once.side_effect = ValueError("MAX_LEVERAGE must be between 1 and 30")
        with patch("main.Config.from_env"), patch("main.RiskConfig.from_env"), \
                patch("main.LoopController", return_value=controller):
            assert main.main(["--once"]) == 1

    def test_loop_mode(self):
        controller = Mock()
        with patch("main.Config.from_env"), patch("main.RiskConfig.from_env"), \
                patch("main.LoopController", return_value=controller):
            assert main.main([]) == 0

        controller.run.assert_called_once()
