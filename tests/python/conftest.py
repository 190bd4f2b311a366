import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-calibration-tests",
        action="store_true",
        default=False,
        help="run tests that pin the tuned steering and collision defaults",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "calibration: pins default tuning constants; run when retuning the simulation",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-calibration-tests"):
        return

    skip_marker = pytest.mark.skip(
        reason="Run only when retuning defaults (use --run-calibration-tests)",
    )

    for item in items:
        if "calibration" in item.keywords:
            item.add_marker(skip_marker)
