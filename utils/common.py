# utils/common.py
"""Common utilities: chunk identity and path management"""
import hashlib
import os
from pathlib import Path

# ⚠️ DO NOT import config here - config.py imports this module


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Returns the default log file path (the directory is created by setup_logging)."""
    return os.path.join(get_project_root(), 'log', 'rag_system.log')


def ensure_parent_dir(file_path: str) -> Path:
    """Creates the parent directory of file_path if needed and returns the path."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


# ============= Hashing =============

def generate_chunk_id(content: str, source_id: str, chunk_index: int) -> str:
    """
    Deterministic content address for a chunk.

    SHA256 over "<source_id>-<chunk_index>-<content>". The same triple always
    yields the same 64-char hex digest on any machine, so re-ingesting a source
    reproduces the same ids and upserts replace instead of duplicating.
    """
    payload = f"{source_id}-{chunk_index}-{content}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def get_file_extension(filename: str) -> str:
    """Extracts and normalizes the file extension from a filename."""
    return Path(filename).suffix[1:].lower()
