"""Asset storage for rule-sets, schemas, profiles and generated audit output."""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Convert any asset path to canonical forward slash format."""
    if not path:
        return path
    return path.replace("\\", "/").lstrip("/")


def with_leading_comment(content: bytes, comment: str) -> bytes:
    """Insert an XML comment right after the XML declaration (or at the very start)."""
    block = f"<!-- {comment.replace('--', '-')} -->\n".encode()
    if content.startswith(b"<?xml"):
        end = content.find(b"?>")
        if end != -1:
            end += 2
            return content[:end] + b"\n" + block + content[end:].lstrip(b"\r\n")
    return block + content


class Storage(ABC):
    """Storage contract consumed by the compilers and the profile registry."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether an asset exists."""

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """Read an asset's content."""

    @abstractmethod
    def resolve_on_disk(self, path: str) -> Path:
        """Absolute on-disk location of an asset, used as base for relative references."""

    @abstractmethod
    def write_bytes(self, path: str, content: bytes) -> None:
        """Write an asset, creating parent directories."""

    @abstractmethod
    def write_generated(self, subdir: str, name: str, content: bytes) -> Path:
        """Write a generated (audit) file under the generated output directory."""

    @abstractmethod
    def clear_generated(self, subdir: str) -> None:
        """Remove every generated file of a subdirectory."""


class FileSystemStorage(Storage):
    """Storage rooted at a local asset directory.

    Layout:
        {root}/
            validation-profiles.yml
            validator/...                (rule-sets and schemas)
            {generated_dir}/{subdir}/... (compiled output kept for audit)
    """

    def __init__(self, root: str | Path, generated_dir: str = "auto-generated"):
        self.root = Path(root).expanduser().resolve()
        self.generated_dir = generated_dir

    def _resolve(self, path: str) -> Path:
        candidate = (self.root / normalize_path(path)).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValueError(f"Asset path escapes storage root: {path}")
        return candidate

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def read_bytes(self, path: str) -> bytes:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Asset not found: {path} -> {file_path}")
        return file_path.read_bytes()

    def resolve_on_disk(self, path: str) -> Path:
        file_path = self._resolve(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Asset not found: {path} -> {file_path}")
        return file_path

    def write_bytes(self, path: str, content: bytes) -> None:
        file_path = self._resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_name(file_path.name + ".tmp")
        tmp_path.write_bytes(content)
        tmp_path.replace(file_path)
        logger.debug(f"Asset written: {file_path}")

    def generated_path(self, subdir: str) -> Path:
        return self._resolve(f"{self.generated_dir}/{subdir}")

    def write_generated(self, subdir: str, name: str, content: bytes) -> Path:
        target_dir = self.generated_path(subdir)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / Path(name).name
        target.write_bytes(content)
        return target

    def clear_generated(self, subdir: str) -> None:
        target_dir = self.generated_path(subdir)
        if target_dir.exists():
            shutil.rmtree(target_dir)
            logger.debug(f"Generated output cleared: {target_dir}")
