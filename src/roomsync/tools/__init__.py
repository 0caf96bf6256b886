"""Bundled resources for RoomSync."""

import importlib.resources
import pathlib
import shutil
from contextlib import contextmanager

from roomsync.constants import SAMPLE_CONFIG_FILENAME


@contextmanager
def open_sample_config():
    """
    Yield a real filesystem Path to the bundled sample config for the duration
    of the context.
    """
    res = importlib.resources.files(__package__) / SAMPLE_CONFIG_FILENAME
    with importlib.resources.as_file(res) as p:
        yield pathlib.Path(p)


def read_sample_config() -> str:
    res = importlib.resources.files(__package__) / SAMPLE_CONFIG_FILENAME
    return res.read_text(encoding="utf-8")


def copy_sample_config_to(dst_path: str) -> str:
    """
    Copy the bundled sample configuration to dst_path and return the actual file path.

    An existing directory, or a path without a suffix, is treated as a directory.
    """
    dst = pathlib.Path(dst_path)
    if (dst.exists() and dst.is_dir()) or dst.suffix == "":
        dst = dst / SAMPLE_CONFIG_FILENAME
    with open_sample_config() as p:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(p, dst)
    return str(dst)
