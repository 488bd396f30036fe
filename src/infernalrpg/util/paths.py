from __future__ import annotations
from pathlib import Path
from typing import Optional
import sys

def frozen_base_dir() -> Path:
    # When packaged with PyInstaller --onefile, data is unpacked to sys._MEIPASS
    if hasattr(sys, "_MEIPASS"):
        return Path(sys._MEIPASS) / "infernalrpg"  # type: ignore[attr-defined]
    # dev / installed: src/infernalrpg
    return Path(__file__).resolve().parent.parent

def content_dir(pack: Optional[str] = None) -> Path:
    # A configured content pack overrides the bundled catalog
    if pack:
        return Path(pack).expanduser()
    return frozen_base_dir() / "content"
