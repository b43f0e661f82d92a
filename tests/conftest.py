"""Pytest configuration and fixtures for SolGraph CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List, Optional

import pytest

from solgraph_cli.layout import LayoutConfig
from solgraph_cli.models import ParseEdge, ParseFunction, ParseResult
from solgraph_cli.store import Workspace

FIXTURES = Path(__file__).parent / "fixtures" / "contracts"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def solgraph_home(temp_dir: Path, monkeypatch) -> Path:
    """Point every storage path at a temporary home directory."""
    home = temp_dir / "home"
    workspace_file = home / "workspace.json"
    config_file = home / "config.toml"

    # Patch both config AND the modules that import paths at load time
    monkeypatch.setattr("solgraph_cli.config.BASE_DIR", home)
    monkeypatch.setattr("solgraph_cli.config.WORKSPACE_FILE", workspace_file)
    monkeypatch.setattr("solgraph_cli.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("solgraph_cli.persistence.WORKSPACE_FILE", workspace_file)
    monkeypatch.setattr("solgraph_cli.config_manager.CONFIG_FILE", config_file)
    return home


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def token_source() -> str:
    return (FIXTURES / "token.sol").read_text(encoding="utf-8")


@pytest.fixture
def overloads_source() -> str:
    return (FIXTURES / "overloads.sol").read_text(encoding="utf-8")


@pytest.fixture
def fast_layout() -> LayoutConfig:
    """Short simulation for tests that only care about sync bookkeeping."""
    return LayoutConfig(iterations=40)


@pytest.fixture
def workspace(fast_layout: LayoutConfig) -> Workspace:
    return Workspace(layout_config=fast_layout)


def make_result(functions: List[str], edges: Optional[List[tuple]] = None, visibility: str = "public") -> ParseResult:
    """Build a ParseResult from ``Contract.fn`` ids and ``(source, target)`` pairs."""
    parsed = []
    for fn_id in functions:
        contract, _, rest = fn_id.partition(".")
        parsed.append(ParseFunction(
            id=fn_id,
            contract_name=contract,
            function_name=rest.split("#")[0],
            visibility=visibility,
        ))
    return ParseResult(
        functions=parsed,
        edges=[ParseEdge(source=s, target=t) for s, t in (edges or [])],
    )


@pytest.fixture
def result_factory():
    return make_result
