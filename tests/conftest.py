"""Root test configuration: shared markdown corpus"""

from pathlib import Path

import pytest


FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(name="sample_md", scope="session")
def sample_md_fixture() -> str:
    """Conformance document exercising every supported construct."""
    return (FIXTURES / "sample.md").read_text(encoding="utf-8")
