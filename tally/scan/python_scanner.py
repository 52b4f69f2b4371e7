from __future__ import annotations

from typing import override

from tally.scan._base import DirListing, ThreadedScannerBase, make_entry
from tally.services.fs import DEFAULT_FS, FileSystem


class PythonScanner(ThreadedScannerBase):
    def __init__(self, workers: int = 8, fs: FileSystem = DEFAULT_FS) -> None:
        super().__init__(workers=workers, fs=fs)

    @override
    def _read_dir(self, path: str) -> DirListing:
        listing = DirListing(children=0, files=[], subdirs=[])
        for entry in self._fs.scandir(path):
            listing.children += 1
            st = entry.stat
            if st is None:
                listing.errors += 1
                continue
            if st.is_dir:
                listing.subdirs.append((entry.path, st))
            else:
                listing.files.append(make_entry(entry.path, st))
        return listing
