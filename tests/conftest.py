"""Shared test fixtures."""

import importlib.util
import shutil
from pathlib import Path

import pytest

from bookcheck.config import ScanConfig
from bookcheck.ffutil import FFmpegTools, ToolResult

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


def tool_result(stderr: str = "", returncode: int = 0, stdout: str = "") -> ToolResult:
    return ToolResult(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def tools() -> FFmpegTools:
    return FFmpegTools()


@pytest.fixture
def config() -> ScanConfig:
    return ScanConfig()


@pytest.fixture
def sample_config_path() -> Path:
    return FIXTURES_DIR / "sample_config.json"


@pytest.fixture(scope="session")
def audio_generator():
    spec = importlib.util.spec_from_file_location(
        "generate_test_audio", SCRIPTS_DIR / "generate_test_audio.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module
