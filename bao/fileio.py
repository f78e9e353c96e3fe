from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os


async def read_bytes(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def file_size(path: Path) -> int:
    st = await aiofiles.os.stat(path)
    return st.st_size


async def write_atomic(path: Path, data: bytes) -> None:
    """
    Replace the contents of path with data.

    The bytes go to a temp file next to the target first, then the temp file
    replaces the target, so a failed write leaves the old content in place.
    The target's permission bits carry over to the new file. A symlink is
    followed, so the file it points at is rewritten and the link stays.
    """
    path = Path(os.path.realpath(path))
    fd, tmp_name = tempfile.mkstemp(prefix=".bao_", suffix=path.suffix, dir=str(path.parent))
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(data)
        try:
            mode = stat.S_IMODE((await aiofiles.os.stat(path)).st_mode)
        except FileNotFoundError:
            mode = None
        if mode is not None:
            os.chmod(tmp_path, mode)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
