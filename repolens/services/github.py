"""GitHub API service for fetching repository trees and content."""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from repolens.schemas.analysis import DirectoryItem, FileItem, RepoItem

logger = logging.getLogger(__name__)

# Maximum file size to fetch content for (in bytes)
MAX_FILE_SIZE = 1_000_000

CODE_EXTENSIONS = (
    ".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".c", ".cpp", ".cs", ".go",
    ".rb", ".php", ".swift", ".kt", ".rs", ".dart", ".html", ".css", ".scss",
    ".json", ".yml", ".yaml", ".md", ".sql",
)

GITHUB_URL_PATTERN = re.compile(r"github\.com/([^/\s]+)/([^/\s?#]+)")


class InvalidRepositoryReference(ValueError):
    """Raised when a repository reference is not a GitHub repository URL."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Invalid GitHub repository URL: {reference!r}")


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class GitHubRateLimitError(GitHubAPIError):
    """Exception raised when GitHub API rate limit is exceeded."""

    def __init__(self, reset_at: datetime | None = None, message: str | None = None):
        self.reset_at = reset_at
        if message is None:
            if reset_at:
                now = datetime.now(UTC)
                diff = reset_at - now
                minutes = max(1, int(diff.total_seconds() / 60))
                message = f"GitHub API rate limit exceeded. Please try again in {minutes} minute{'s' if minutes != 1 else ''}."
            else:
                message = "GitHub API rate limit exceeded. Please try again later."
        super().__init__(message, status_code=403)


class GitHubPermissionError(GitHubAPIError):
    """Exception raised when the token lacks permission to access a resource."""

    def __init__(self, message: str = "You don't have permission to access this resource."):
        super().__init__(message, status_code=403)


class GitHubAuthenticationError(GitHubAPIError):
    """Exception raised when GitHub authentication fails."""

    def __init__(self, message: str = "GitHub authentication failed. Check GITHUB_API_TOKEN."):
        super().__init__(message, status_code=401)


class GitHubNotFoundError(GitHubAPIError):
    """Exception raised when a repository or path does not exist."""

    def __init__(self, message: str = "Repository not found or access denied."):
        super().__init__(message, status_code=404)


class GitHubTimeoutError(GitHubAPIError):
    """Exception raised when GitHub API request times out."""

    def __init__(self, message: str = "GitHub API request timed out. Please try again."):
        super().__init__(message, status_code=504)


class TreeLimitExceededError(Exception):
    """Raised when a traversal exceeds its depth or node budget."""

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message)


@dataclass(frozen=True)
class RepositoryRef:
    """Owner/name pair extracted from a repository URL."""
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class RepositorySnapshot:
    """Repository metadata plus its fetched tree."""
    metadata: dict[str, Any]
    structure: list[RepoItem] = field(default_factory=list)


@dataclass
class _TraversalBudget:
    max_depth: int
    max_nodes: int
    nodes: int = 0

    def enter(self, path: str, depth: int) -> None:
        if depth > self.max_depth:
            raise TreeLimitExceededError(
                f"Directory depth limit ({self.max_depth}) exceeded at '{path}'", path
            )

    def visit(self, path: str) -> None:
        self.nodes += 1
        if self.nodes > self.max_nodes:
            raise TreeLimitExceededError(
                f"Tree node limit ({self.max_nodes}) exceeded at '{path}'", path
            )


def parse_repo_reference(url: str) -> RepositoryRef:
    """Extract owner and repository name from a GitHub URL.

    Accepts any reference containing ``github.com/<owner>/<repo>``; a
    trailing ``.git`` suffix is stripped from the name.

    Raises:
        InvalidRepositoryReference: If the reference does not match.
    """
    match = GITHUB_URL_PATTERN.search(url or "")
    if not match:
        raise InvalidRepositoryReference(url)

    owner = match.group(1)
    repo = match.group(2).removesuffix(".git")
    if not repo:
        raise InvalidRepositoryReference(url)

    return RepositoryRef(owner=owner, repo=repo)


def is_code_file(filename: str) -> bool:
    """Check whether a file's extension is in the recognized source set."""
    return filename.lower().endswith(CODE_EXTENSIONS)


def _join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class GitHubService:
    """Service for reading repository trees from the GitHub contents API.

    Traversal is sequential: one request per directory and one per file whose
    content qualifies for download. Nothing is retried here; transport errors
    surface as ``GitHubAPIError`` subclasses.
    """

    BASE_URL = "https://api.github.com"
    # Timeout configuration: 30s connect, 60s read
    DEFAULT_TIMEOUT = httpx.Timeout(connect=30.0, read=60.0, write=30.0, pool=30.0)

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        max_file_size: int = MAX_FILE_SIZE,
        max_depth: int = 32,
        max_nodes: int = 10_000,
    ):
        """Initialize GitHub service.

        Args:
            access_token: Optional GitHub token. Requests are unauthenticated
                when it is empty.
            base_url: API root, defaults to the public GitHub API.
            max_file_size: Files at or above this size are listed without content.
            max_depth: Maximum directory nesting followed during traversal.
            max_nodes: Maximum number of tree entries collected per traversal.
        """
        self.access_token = access_token or None
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.max_file_size = max_file_size
        self.max_depth = max_depth
        self.max_nodes = max_nodes

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _contents_url(self, ref: RepositoryRef, path: str = "") -> str:
        url = f"{self.base_url}/repos/{ref.owner}/{ref.repo}/contents"
        if path:
            url = f"{url}/{quote(path.strip('/'), safe='/')}"
        return url

    def _handle_response_error(self, response: httpx.Response) -> None:
        """Handle GitHub API error responses.

        Args:
            response: The HTTP response from GitHub API.

        Raises:
            GitHubRateLimitError: When rate limit is exceeded (403/429 with rate limit headers).
            GitHubAuthenticationError: When authentication fails (401).
            GitHubPermissionError: When access is forbidden (403 without rate limit).
            GitHubNotFoundError: When the repository or path does not exist (404).
            GitHubAPIError: For other API errors.
        """
        if response.is_success:
            return

        status_code = response.status_code

        if status_code in (403, 429):
            remaining = response.headers.get("x-ratelimit-remaining")
            reset_timestamp = response.headers.get("x-ratelimit-reset")

            if status_code == 429 or remaining == "0" or "rate limit" in response.text.lower():
                reset_at = None
                if reset_timestamp:
                    try:
                        reset_at = datetime.fromtimestamp(int(reset_timestamp), tz=UTC)
                    except (ValueError, TypeError):
                        pass
                raise GitHubRateLimitError(reset_at=reset_at)

            raise GitHubPermissionError()

        if status_code == 401:
            raise GitHubAuthenticationError()

        if status_code == 404:
            raise GitHubNotFoundError()

        try:
            error_data = response.json()
            message = error_data.get("message", response.text)
        except Exception:
            message = response.text or f"GitHub API error: {status_code}"

        raise GitHubAPIError(message, status_code=status_code)

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        try:
            response = await client.get(url, headers=self._get_headers())
        except httpx.TimeoutException:
            raise GitHubTimeoutError()
        self._handle_response_error(response)
        return response

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> Any:
        response = await self._get(client, url)
        return response.json()

    async def _download(self, client: httpx.AsyncClient, download_url: str) -> str:
        response = await self._get(client, download_url)
        return response.text

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        """Get repository metadata.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            Repository data dict.
        """
        async with httpx.AsyncClient(timeout=self.DEFAULT_TIMEOUT) as client:
            return await self._get_json(client, f"{self.base_url}/repos/{owner}/{repo}")

    async def fetch_repository(self, repo_url: str) -> RepositorySnapshot:
        """Fetch repository metadata and its full tree."""
        ref = parse_repo_reference(repo_url)
        metadata = await self.get_repository(ref.owner, ref.repo)
        structure = await self.fetch_tree(repo_url)
        return RepositorySnapshot(metadata=metadata, structure=structure)

    async def fetch_tree(self, repo_url: str) -> list[RepoItem]:
        """Recursively fetch the file/directory tree of a repository.

        Content is downloaded only for recognized source files below
        ``max_file_size``; other files keep their size and path.

        Raises:
            InvalidRepositoryReference: If ``repo_url`` is malformed.
            TreeLimitExceededError: If the depth or node budget is exhausted.
            GitHubAPIError: On transport failures.
        """
        ref = parse_repo_reference(repo_url)
        budget = _TraversalBudget(max_depth=self.max_depth, max_nodes=self.max_nodes)

        async with httpx.AsyncClient(timeout=self.DEFAULT_TIMEOUT) as client:
            tree = await self._fetch_directory(client, ref, "", budget, depth=0)

        logger.info(f"Fetched {budget.nodes} tree entries for {ref.full_name}")
        return tree

    async def _fetch_directory(
        self,
        client: httpx.AsyncClient,
        ref: RepositoryRef,
        path: str,
        budget: _TraversalBudget,
        depth: int,
    ) -> list[RepoItem]:
        budget.enter(path, depth)
        entries = await self._get_json(client, self._contents_url(ref, path))
        if not isinstance(entries, list):
            raise GitHubAPIError(f"Path '{path}' is not a directory", status_code=400)

        result: list[RepoItem] = []
        for entry in entries:
            entry_type = entry.get("type")
            name = entry.get("name", "")
            item_path = _join_path(path, name)

            if entry_type == "dir":
                budget.visit(item_path)
                children = await self._fetch_directory(client, ref, item_path, budget, depth + 1)
                result.append(DirectoryItem(name=name, path=item_path, children=children))
            elif entry_type == "file":
                budget.visit(item_path)
                size = entry.get("size") or 0
                content = None
                download_url = entry.get("download_url")
                if download_url and is_code_file(name) and size < self.max_file_size:
                    content = await self._download(client, download_url)
                result.append(FileItem(name=name, path=item_path, size=size, content=content))
            # symlinks and submodules are skipped

        return result

    async def fetch_one(self, repo_url: str, path: str) -> str | list[dict[str, Any]] | None:
        """Fetch a single path: file text or an immediate directory listing.

        Returns ``None`` for files at or above ``max_file_size``.

        Raises:
            GitHubAPIError: 400 for a symlink or submodule, 422 for a file
                without a download URL, or the mapped transport error.
        """
        ref = parse_repo_reference(repo_url)

        async with httpx.AsyncClient(timeout=self.DEFAULT_TIMEOUT) as client:
            data = await self._get_json(client, self._contents_url(ref, path))

            if isinstance(data, list):
                return [self._listing_entry(entry) for entry in data]

            if data.get("type") != "file":
                raise GitHubAPIError(f"Path '{path}' is not a file or directory", status_code=400)

            size = data.get("size") or 0
            if size >= self.max_file_size:
                logger.warning(
                    f"File {path} exceeds maximum size limit of {self.max_file_size} bytes"
                )
                return None

            download_url = data.get("download_url")
            if not download_url:
                raise GitHubAPIError(f"File '{path}' has no downloadable content", status_code=422)
            return await self._download(client, download_url)

    async def fetch_file_content(self, repo_url: str, path: str) -> str | None:
        """Fetch the text of one file, or ``None`` when it is too large."""
        result = await self.fetch_one(repo_url, path)
        if isinstance(result, list):
            raise GitHubAPIError(f"Path '{path}' is a directory, not a file", status_code=400)
        return result

    async def fetch_directory_listing(self, repo_url: str, path: str) -> list[dict[str, Any]]:
        """Fetch the immediate entries of one directory."""
        result = await self.fetch_one(repo_url, path)
        if not isinstance(result, list):
            raise GitHubAPIError(f"Path '{path}' is a file, not a directory", status_code=400)
        return result

    @staticmethod
    def _listing_entry(entry: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": entry.get("name", ""),
            "path": entry.get("path", ""),
            "type": "directory" if entry.get("type") == "dir" else entry.get("type", "file"),
            "size": entry.get("size") or 0,
        }
