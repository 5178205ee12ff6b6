import os
from pathlib import Path
from typing import Iterable, List


def resolve_path(path_str: str) -> Path:
    return Path(path_str).expanduser().resolve()


def normalize_extension(ext: str) -> str:
    """'TXT', '.Txt' and ' .txt ' all become '.txt'."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def normalize_extensions(exts: Iterable[str]) -> List[str]:
    if isinstance(exts, str):
        exts = [exts]
    seen = []
    for e in exts or []:
        n = normalize_extension(str(e))
        if n and n not in seen:
            seen.append(n)
    return seen


def creation_time(path: Path) -> float:
    """
    Best available creation timestamp for a file.

    st_birthtime where the platform reports it, st_ctime on Windows
    (creation time there), st_mtime otherwise since POSIX st_ctime is the
    inode change time.
    """
    st = path.stat()
    birth = getattr(st, "st_birthtime", None)
    if birth is not None:
        return birth
    if os.name == "nt":
        return st.st_ctime
    return st.st_mtime
