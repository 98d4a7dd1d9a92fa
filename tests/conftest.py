import shutil

import pytest

from tests.utils import git


@pytest.fixture
def bare_remote(tmp_path):
    """A bare repository with one commit on its default branch."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    seed = tmp_path / "seed"
    seed.mkdir()
    git("init", "--quiet", cwd=seed)
    (seed / "README.md").write_text("hello\n", encoding="utf-8")
    git("add", "README.md", cwd=seed)
    git("commit", "--quiet", "-m", "initial", cwd=seed)
    bare = tmp_path / "remote.git"
    git("clone", "--quiet", "--bare", str(seed), str(bare))
    return bare
