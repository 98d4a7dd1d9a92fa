import re

from .errors import ParseError
from .models import GithubRepo, RepositoryReference

GITHUB_URL_RE = re.compile(
    r"(?:https://|git@)github\.com[/:](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?"
)

RESERVED_NAMES = {".", ".."}


def parse_github_url(url: str) -> GithubRepo:
    """Split an HTTPS or SSH GitHub remote into owner and repository name."""
    match = GITHUB_URL_RE.fullmatch(url)
    if not match:
        raise ParseError(f"Invalid GitHub URL: {url}")
    owner = match.group("owner")
    repo = match.group("repo")
    if not owner or not repo or owner in RESERVED_NAMES or repo in RESERVED_NAMES:
        raise ParseError(f"Invalid GitHub URL: {url}")
    return GithubRepo(owner=owner, repo=repo)


def repo_name(ref: RepositoryReference) -> str:
    if ref.name:
        return ref.name
    return parse_github_url(ref.url).repo
