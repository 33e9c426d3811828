"""Tests for the command line interface."""

import io
import json
import logging
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from devcompose import cli
from devcompose.dependencies import check_and_install_dependencies, find_missing_packages
from devcompose.errors import InvalidInputError
from devcompose.logging_utils import setup_logging
from devcompose.main import EXIT_FAILURE, build_parser, main


def run_cli(argv: list[str]) -> tuple[int, str]:
    """Run the compose command with captured rich output."""
    output = io.StringIO()
    console = Console(file=output, width=200, color_system=None)
    code = cli.run(build_parser().parse_args(argv), console=console)
    return code, output.getvalue()


class TestBuildParser:
    """Test argument parsing."""

    def test_defaults(self):
        """Test optional arguments default to unset."""
        args = build_parser().parse_args(["docker"])

        assert args.features == ["docker"]
        assert args.account is None
        assert args.timeout is None
        assert args.offline is False

    def test_repeatable_account(self):
        """Test --account can be given several times."""
        args = build_parser().parse_args(["--account", "a", "--account", "b", "--list"])

        assert args.account == ["a", "b"]
        assert args.list is True


class TestRun:
    """Test the compose command against a local catalog."""

    def test_resolve_offline(self, feature_source_dir: Path):
        """Test resolving from a local catalog reports implicit additions."""
        code, output = run_cli(["--catalog", str(feature_source_dir), "--account", "acme", "--offline", "aws-cli"])

        assert code == 0
        assert "ghcr.io/acme/features/aws-cli:1.2.0" in output
        assert "ghcr.io/acme/features/docker:latest" in output
        assert "automatically added" in output

    def test_write_output(self, feature_source_dir: Path, temp_dir: Path):
        """Test --output writes the devcontainer.json with option defaults."""
        project = temp_dir / "project"

        code, _ = run_cli(
            [
                "--catalog",
                str(feature_source_dir),
                "--account",
                "acme",
                "--offline",
                "--image",
                "mcr.microsoft.com/devcontainers/base:debian",
                "--output",
                str(project),
                "aws-cli",
            ]
        )

        document = json.loads((project / ".devcontainer" / "devcontainer.json").read_text())
        assert code == 0
        assert document["image"] == "mcr.microsoft.com/devcontainers/base:debian"
        assert document["features"] == {
            "ghcr.io/acme/features/aws-cli:1.2.0": {"version": "latest", "installSam": False},
            "ghcr.io/acme/features/docker:latest": {},
        }

    def test_offline_missing_dependency_warns(self, feature_source_dir: Path):
        """Test unresolvable dependencies are reported as warnings."""
        code, output = run_cli(["--catalog", str(feature_source_dir), "--account", "acme", "--offline", "terraform"])

        assert code == 0
        assert "ghcr.io/devcontainers/features/common-utils:2" in output
        assert "could not be fully resolved" in output

    def test_list(self, feature_source_dir: Path):
        """Test --list prints the catalog."""
        code, output = run_cli(["--catalog", str(feature_source_dir), "--account", "acme", "--list"])

        assert code == 0
        assert "acme:terraform" in output
        assert "Installs Terraform" in output

    def test_catalog_key_without_discovery(self):
        """Test <account>:<id> selections are qualified when the catalog is empty."""
        code, output = run_cli(["--account", "acme", "--account", "blackwd-bwh", "--offline", "blackwd-bwh:docker"])

        assert code == 0
        assert "ghcr.io/blackwd-bwh/features/docker:latest" in output
        assert "features/blackwd-bwh:docker" not in output

    def test_invalid_feature(self, feature_source_dir: Path):
        """Test a malformed feature identifier is an input error."""
        with pytest.raises(InvalidInputError):
            run_cli(["--catalog", str(feature_source_dir), "--offline", "not valid"])

    @patch("devcompose.cli.FeatureCatalog.discover")
    def test_discovery_uses_configured_accounts(self, mock_discover, feature_source_dir: Path):
        """Test repositories are cloned for the requested accounts."""
        mock_discover.return_value = cli.FeatureCatalog.from_directory(feature_source_dir, "acme")

        code, _ = run_cli(["--account", "acme", "--list"])

        assert code == 0
        assert mock_discover.call_args[0][0] == ["acme"]


class TestMain:
    """Test the main entry point."""

    @patch("devcompose.logging_utils.setup_logging")
    @patch("devcompose.main.check_and_install_dependencies")
    def test_success(self, mock_deps, mock_logging, feature_source_dir: Path, temp_dir: Path):
        """Test a successful run returns 0 and writes the output."""
        project = temp_dir / "project"

        argv = ["--catalog", str(feature_source_dir), "--account", "acme", "--offline", "--output", str(project)]

        code = main([*argv, "acme:docker"])

        assert code == 0
        mock_deps.assert_called_once()
        assert (project / ".devcontainer" / "devcontainer.json").exists()

    @patch("devcompose.logging_utils.setup_logging")
    @patch("devcompose.main.check_and_install_dependencies")
    def test_error_exit_code(self, mock_deps, mock_logging, temp_dir: Path):
        """Test configuration errors exit with a failure code."""
        code = main(["--config", str(temp_dir / "missing.toml"), "--offline", "docker"])

        assert code == EXIT_FAILURE

    @patch("devcompose.logging_utils.setup_logging")
    @patch("devcompose.main.check_and_install_dependencies")
    @patch("devcompose.cli.run", side_effect=KeyboardInterrupt)
    def test_keyboard_interrupt(self, mock_run, mock_deps, mock_logging):
        """Test Ctrl+C exits with 130."""
        assert main(["--offline", "docker"]) == 130

    @patch("devcompose.logging_utils.setup_logging")
    @patch("devcompose.main.check_and_install_dependencies")
    def test_unwritable_output(self, mock_deps, mock_logging, feature_source_dir: Path, temp_dir: Path):
        """Test an output directory that cannot be created exits with a failure code."""
        blocked = temp_dir / "blocked"
        blocked.write_text("not a directory")

        code = main(["--catalog", str(feature_source_dir), "--offline", "--output", str(blocked), "docker"])

        assert code == EXIT_FAILURE
        assert blocked.read_text() == "not a directory"

    def test_features_required(self):
        """Test running without features or --list is a usage error."""
        with pytest.raises(SystemExit):
            main([])


class TestDependencies:
    """Test the runtime dependency check."""

    @patch("importlib.util.find_spec", return_value=object())
    @patch("subprocess.run")
    def test_nothing_missing(self, mock_run, mock_find_spec):
        """Test nothing is installed when all packages are present."""
        check_and_install_dependencies()

        mock_run.assert_not_called()

    @patch("importlib.util.find_spec", side_effect=lambda name: None if name == "toml" else object())
    @patch("subprocess.run")
    def test_missing_package_installed(self, mock_run, mock_find_spec):
        """Test missing packages are installed with pip."""
        assert find_missing_packages() == ["toml>=0.10.0"]

        check_and_install_dependencies()

        cmd = mock_run.call_args[0][0]
        assert cmd[1:4] == ["-m", "pip", "install"]
        assert cmd[-1] == "toml>=0.10.0"

    @patch("importlib.util.find_spec", return_value=None)
    @patch("subprocess.run", side_effect=subprocess.CalledProcessError(1, "pip"))
    def test_install_failure_exits(self, mock_run, mock_find_spec):
        """Test a failed installation exits the process."""
        with pytest.raises(SystemExit):
            check_and_install_dependencies()


class TestSetupLogging:
    """Test logging configuration."""

    def setup_method(self) -> None:
        """Remember the root logger configuration."""
        root = logging.getLogger()
        self.saved_handlers = root.handlers[:]
        self.saved_level = root.level

    def teardown_method(self) -> None:
        """Restore the root logger configuration."""
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            root.addHandler(handler)
        root.setLevel(self.saved_level)

    def test_normal_mode_logs_warnings_to_file(self, temp_dir: Path):
        """Test only warnings reach the log file in normal mode."""
        log_file = temp_dir / "debug.log"
        setup_logging(False, console=Console(file=io.StringIO()), log_file=log_file)

        logging.getLogger("devcompose.test").info("hidden message")
        logging.getLogger("devcompose.test").warning("visible message")

        content = log_file.read_text()
        assert "visible message" in content
        assert "hidden message" not in content

    def test_debug_mode_logs_everything(self, temp_dir: Path):
        """Test debug messages reach the log file in debug mode."""
        log_file = temp_dir / "debug.log"
        setup_logging(True, console=Console(file=io.StringIO()), log_file=log_file)

        logging.getLogger("devcompose.test").debug("debug message")

        assert "debug message" in log_file.read_text()
        assert len(logging.getLogger().handlers) == 2
