"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_package_importable(self):
        """Package can be imported without PYTHONPATH."""
        import snipr
        assert snipr is not None

    def test_version_defined(self):
        """Package has a non-empty __version__."""
        import snipr
        assert isinstance(snipr.__version__, str)
        assert snipr.__version__

    def test_core_modules_importable(self):
        """Every layer imports."""
        from snipr.api import routes, schemas
        from snipr.core import config, errors, logging, metrics
        from snipr.pipeline import artifacts, extractor, feed, segmenter, summarizer, synthesis
        from snipr.services import auth, job_service, orchestrator, worker
        from snipr.store import documents, jobs, objects

        for module in (
            routes, schemas, config, errors, logging, metrics, artifacts, extractor, feed,
            segmenter, summarizer, synthesis, auth, job_service, orchestrator, worker,
            documents, jobs, objects,
        ):
            assert module is not None


class TestCLIEntryPoint:

    def test_cli_help_exits_zero(self):
        """CLI --help exits with code 0."""
        result = subprocess.run(
            [sys.executable, "-m", "snipr.cli", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "snipr CLI" in result.stdout


class TestPyprojectToml:
    """Test pyproject.toml configuration."""

    def _data(self):
        import tomllib

        return tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    def test_name(self):
        assert self._data()["project"]["name"] == "snipr"

    def test_has_dependencies(self):
        deps = self._data()["project"]["dependencies"]
        names = [d.split(">=")[0].split("[")[0] for d in deps]
        for required in (
            "fastapi", "uvicorn", "python-multipart", "pydantic", "pyyaml", "httpx",
            "beautifulsoup4", "ebooklib", "boto3",
        ):
            assert required in names

    def test_script_entry(self):
        assert self._data()["project"]["scripts"]["snipr"] == "snipr.cli:main"

    def test_version_matches_package(self):
        import snipr
        assert self._data()["project"]["version"] == snipr.__version__
