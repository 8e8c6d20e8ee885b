"""Shared fixtures for all test modules."""

from textwrap import dedent

import pytest

from pyrewrite.config import Config
from pyrewrite.logging.logger import RewriteLogger
from pyrewrite.refactor.engine import Refactor


@pytest.fixture
def tmp_config(tmp_path):
    """Config pointing to a temp directory."""
    config = Config(base_dir=tmp_path / ".pyrewrite")
    config.ensure_dirs()
    return config


@pytest.fixture
def journal(tmp_config):
    """RewriteLogger writing to temp dir."""
    return RewriteLogger(tmp_config.log_dir)


# -----------------------------------------------------------------------
# Source fixtures
# -----------------------------------------------------------------------

LEGACY_VERSION_SOURCE = dedent("""\
    from pkg_resources import get_distribution, DistributionNotFound

    try:
        __version__ = get_distribution(__name__).version
    except DistributionNotFound:
        __version__ = "unknown"
""")

MODERN_VERSION_SOURCE = dedent("""\
    from importlib.metadata import version

    __version__ = version(__name__)
""")

SAMPLE_MODULE_SOURCE = dedent("""\
    import os
    import json, csv
    from a.b import c as d, e


    class Service(Base):
        def f(self):
            pass

        def run(self, payload):
            return self.client.fetch(payload)


    def f():
        pass


    def helper(x, y=1):
        try:
            value = json.loads(x)
        except (ValueError, KeyError) as err:
            value = None
        finally:
            os.sync()
        return value


    x = get_distribution(__name__).version
""")


@pytest.fixture
def legacy_version_source():
    return LEGACY_VERSION_SOURCE


@pytest.fixture
def modern_version_source():
    return MODERN_VERSION_SOURCE


@pytest.fixture
def sample_source():
    return SAMPLE_MODULE_SOURCE


@pytest.fixture
def sample_refactor():
    """Refactor session over the sample module."""
    return Refactor.from_source(SAMPLE_MODULE_SOURCE, "sample.py")


@pytest.fixture
def legacy_project(tmp_path):
    """Small directory tree with legacy code, a broken file and an excluded dir."""
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "__init__.py").write_text(LEGACY_VERSION_SOURCE)
    (root / "pkg" / "compat.py").write_text("import StringIO\nimport urllib2\n")
    (root / "pkg" / "clean.py").write_text("import os\n\nprint(os.sep)\n")
    (root / "pkg" / "broken.py").write_text("def broken(:\n    pass\n")
    (root / ".venv" / "lib").mkdir(parents=True)
    (root / ".venv" / "lib" / "vendored.py").write_text("import urllib2\n")
    return root
