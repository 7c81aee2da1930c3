"""Pytest configuration, Hypothesis settings and shared fixtures"""

import asyncio
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest
from hypothesis import Verbosity, settings

from mtr.fetch.sources import SourceBackend, SourceReadError, SourceUnavailableError
from mtr.models.glue import InterfaceCategory
from mtr.registry.interfaces import InterfaceRegistry
from mtr.scaffold.scaffolder import Scaffolder

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=50, deadline=None, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=500, deadline=None, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, deadline=None, verbosity=Verbosity.verbose)

# Load default profile
settings.load_profile("default")


DEMO_HAL_FILES: Dict[str, str] = {
    "Cargo.toml": '[package]\nname = "demo-hal"\nversion = "0.3.1"\nkeywords = ["stm32f4"]\n',
    "src/lib.rs": (
        "//! Demo HAL\n"
        "pub mod digital;\n"
        "\n"
        "pub use digital::OutputPin as Out;\n"
        "\n"
        "/// Not in any registry\n"
        "pub trait CustomTrait {\n"
        "    fn go(&mut self);\n"
        "}\n"
    ),
    "src/digital.rs": (
        "pub trait OutputPin {\n"
        "    fn set_high(&mut self);\n"
        "}\n"
        "\n"
        "pub trait InputPin {\n"
        "    fn is_high(&self) -> bool;\n"
        "}\n"
        "\n"
        "pub struct Pin;\n"
        "\n"
        "impl OutputPin for Pin {\n"
        "    fn set_high(&mut self) {}\n"
        "}\n"
    ),
}


class FakeSource(SourceBackend):
    """In-memory source backend with injectable delays and failures"""

    def __init__(
        self,
        files: Dict[str, str],
        failing: Iterable[str] = (),
        delays: Optional[Dict[str, float]] = None,
        unavailable_times: int = 0,
    ):
        self.files = {path: content.encode("utf-8") if isinstance(content, str) else content
                      for path, content in files.items()}
        self.failing = set(failing)
        self.delays = delays or {}
        self.unavailable_times = unavailable_times
        self.list_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_files(self, repository_url: str, ref: str):
        self.list_calls += 1
        if self.list_calls <= self.unavailable_times:
            raise SourceUnavailableError(f"cannot list {repository_url}@{ref}")
        return list(self.files)

    async def read_file(self, repository_url: str, ref: str, path: str) -> bytes:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(path, 0))
            if path in self.failing:
                raise SourceReadError("HTTP 500")
            return self.files[path]
        finally:
            self.in_flight -= 1


async def no_sleep(delay: float):
    return None


@pytest.fixture
def demo_source():
    """Source backend serving the demo HAL package"""
    return FakeSource(DEMO_HAL_FILES)


@pytest.fixture
def pin_registry():
    """Registry marking OutputPin and InputPin mockable"""
    return InterfaceRegistry.from_names({
        "OutputPin": InterfaceCategory.DIGITAL_IO,
        "InputPin": InterfaceCategory.DIGITAL_IO,
    })


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Freshly scaffolded workspace with core units and empty glue.yaml"""
    return Scaffolder(tmp_path).init_project("proj")


@pytest.fixture
def demo_hal_dir(tmp_path) -> Path:
    """Demo HAL package checked out on disk"""
    root = tmp_path / "vendor" / "demo-hal"
    for path, content in DEMO_HAL_FILES.items():
        (root / path).parent.mkdir(parents=True, exist_ok=True)
        (root / path).write_text(content)
    return root
