"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, slots=True)
class ImageFile:
    """扫描阶段得到的源图片信息。"""

    source_path: Path
    root: Path
    relative_path: Path


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    source_path: Path
    status: str
    output_path: Optional[Path] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "processed"

    @property
    def skipped(self) -> bool:
        return self.status == "skip-existing"

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"


@dataclass(slots=True)
class BatchResult:
    """一次批处理运行的汇总结果。"""

    discovered: int = 0
    succeeded: list[FileOutcome] = field(default_factory=list)
    skipped: list[FileOutcome] = field(default_factory=list)
    failed: list[FileOutcome] = field(default_factory=list)
    cancelled: list[FileOutcome] = field(default_factory=list)

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.succeeded, *self.skipped, *self.failed, *self.cancelled]

    def record(self, outcome: FileOutcome) -> None:
        """按状态归档单个文件的结果。"""

        if outcome.succeeded:
            self.succeeded.append(outcome)
        elif outcome.skipped:
            self.skipped.append(outcome)
        elif outcome.cancelled:
            self.cancelled.append(outcome)
        else:
            self.failed.append(outcome)

    @property
    def completed(self) -> int:
        return len(self.succeeded) + len(self.skipped) + len(self.failed)

    @property
    def is_empty(self) -> bool:
        """没有发现任何图片：视为成功的空操作。"""

        return self.discovered == 0

    @property
    def is_failure(self) -> bool:
        """仅当所有文件均失败时整体视为失败；部分失败仍算成功。"""

        return bool(self.failed) and not self.succeeded and not self.skipped

    def summary(self) -> dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }
