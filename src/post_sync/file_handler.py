"""File handler module: document discovery and encoding-aware reads.

Markdown documents are discovered in a deterministic (sorted) order and
read with automatic encoding detection, so files saved as GBK or UTF-8
with BOM are handled the same way as plain UTF-8.
"""

from pathlib import Path

from charset_normalizer import from_bytes

MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown"})


def is_markdown_file(path: Path) -> bool:
    return path.suffix.lower() in MARKDOWN_EXTENSIONS


def list_markdown_files(path_str: str | Path) -> list[Path]:
    """Expand a file or directory argument into Markdown documents.

    Symlinks are resolved first.  A directory yields its direct Markdown
    children (not recursive) sorted by path; a Markdown file yields
    itself; anything else yields nothing.

    Args:
        path_str: File or directory path, absolute or relative to CWD.

    Returns:
        Sorted list of resolved absolute paths.

    Raises:
        FileNotFoundError: If *path_str* does not exist.
    """
    path = Path(path_str).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Path not found: {path_str}")
    resolved = path.resolve()

    if resolved.is_dir():
        return sorted(
            child
            for child in resolved.iterdir()
            if child.is_file() and is_markdown_file(child)
        )
    if resolved.is_file() and is_markdown_file(resolved):
        return [resolved]
    return []


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content.lstrip("\ufeff"), encoding)
