"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。

    ``status`` 取值: running | done | cancelled。
    """

    total: int
    completed: int
    failed: int = 0
    message: Optional[str] = None
    source_path: Optional[Path] = None
    status: str = "running"
