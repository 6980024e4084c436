"""Invoice file storage on local disk.

Learn: Files are stored flat under settings.upload_dir with a generated
name (<epoch millis>-<random 9 digits><original extension>). The original
filename is only kept in the database — it never touches the filesystem,
so user input can't traverse out of the upload directory.
"""

import os
import random
import time
from pathlib import Path

import aiofiles
import aiofiles.os


class FileStorage:
    """Saves, locates, and removes stored invoice files."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_name(original_filename: str) -> str:
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}"
        ext = Path(original_filename).suffix.lower()
        return f"{suffix}{ext}"

    def path_for(self, saved_filename: str) -> Path:
        """Resolve a stored name to a path, refusing anything outside the root."""
        candidate = (self.root / saved_filename).resolve()
        if candidate.parent != self.root.resolve():
            raise FileNotFoundError(saved_filename)
        return candidate

    async def save(self, original_filename: str, content: bytes) -> str:
        """Write content to a fresh file. Returns the generated name."""
        self.ensure_root()
        saved_filename = self.generate_name(original_filename)
        async with aiofiles.open(self.root / saved_filename, "wb") as f:
            await f.write(content)
        return saved_filename

    async def delete(self, saved_filename: str) -> None:
        """Remove a stored file. Raises OSError if it can't be removed."""
        await aiofiles.os.remove(self.path_for(saved_filename))
