import os
import tempfile
from datetime import datetime, timezone

# Settings are read at import time; required values must exist before any
# application module is imported.
os.environ.setdefault("GITHUB_TOKEN", "test-token")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="repoforge-logs-"))
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="repoforge-data-"))

import pytest

from fakes import SCAFFOLD_FILES, FakeObjectStore, FakeWorkspace, make_spec_data
from builders.policy import ProvisioningReport
from specs.models import RepoSpec
from specs.scaffolds import ScaffoldRegistry


@pytest.fixture
def now():
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def spec_data():
    return make_spec_data()


@pytest.fixture
def repo_spec(spec_data):
    return RepoSpec.model_validate(spec_data)


@pytest.fixture
def registry():
    return ScaffoldRegistry()


@pytest.fixture
def store():
    return FakeObjectStore("skillvee/simulation-test", files=SCAFFOLD_FILES)


@pytest.fixture
def report():
    return ProvisioningReport(run_id="test", kind="scenario")


@pytest.fixture
def workspace():
    """Organization with the nextjs scaffold template."""
    workspace = FakeWorkspace()
    workspace.add(FakeObjectStore("skillvee/scaffold-nextjs-ts", files=SCAFFOLD_FILES))
    return workspace
