"""单个文件的处理单元，可在工作进程中执行。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image

from image_processor.core.exceptions import ImageLoadingError, ImageWriteError, TransformError
from image_processor.core.models import FileOutcome, ImageFile
from image_processor.core.output_manager import OutputMapping, ensure_parent_dir, save_image
from image_processor.processing.image_loader import load_image
from image_processor.processing.operations import Format, Operation

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessingTask:
    """描述单个图片处理任务。操作序列在所有任务间共享，只读。"""

    source: ImageFile
    operations: Sequence[Operation]
    mapping: OutputMapping
    skip_existing: bool = False


def run_task(task: ProcessingTask) -> FileOutcome:
    """执行单个文件：映射路径、检查已存在、解码、依次应用操作、编码写出。

    单文件的解码/变换/写入失败转换为失败记录返回；路径映射错误（PathError）
    属于整体配置问题，直接抛出。
    """

    source_path = task.source.source_path
    destination = task.mapping.destination_for(source_path)

    if task.skip_existing and destination.exists():
        LOGGER.info("跳过（已存在）：%s", destination)
        return FileOutcome(
            source_path=source_path,
            status="skip-existing",
            output_path=destination,
            message=f"目标已存在: {destination.name}",
        )

    terminal = task.operations[-1] if task.operations else None
    if not isinstance(terminal, Format):
        error = TransformError("操作序列必须以 format 步骤结束", source_path)
        return _failure(source_path, "error-transform", error)

    try:
        ensure_parent_dir(destination)
    except ImageWriteError as exc:
        return _failure(source_path, "error-write", exc)

    try:
        image = load_image(source_path)
    except ImageLoadingError as exc:
        return _failure(source_path, "error-load", exc)

    stages: list[Image.Image] = [image]
    try:
        try:
            for operation in task.operations:
                stages.append(operation.apply(stages[-1]))
        except (OSError, ValueError, TypeError, MemoryError) as exc:
            error = TransformError(f"变换失败: {source_path} ({operation.describe()}: {exc})", source_path)
            return _failure(source_path, "error-transform", error)

        try:
            save_image(stages[-1], destination, terminal.codec, terminal.save_params())
        except ImageWriteError as exc:
            return _failure(source_path, "error-write", exc)
    finally:
        _close_if_needed(*stages)

    LOGGER.info("已处理：%s -> %s", source_path, destination)
    return FileOutcome(
        source_path=source_path,
        status="processed",
        output_path=destination,
        message=", ".join(op.describe() for op in task.operations),
    )


def _failure(source_path: Path, status: str, exc: Exception) -> FileOutcome:
    LOGGER.warning("处理失败 %s: %s", source_path, exc)
    return FileOutcome(source_path=source_path, status=status, message=str(exc))


def _close_if_needed(*images: Optional[Image.Image]) -> None:
    seen: set[int] = set()
    for img in images:
        if img is not None and id(img) not in seen:
            seen.add(id(img))
            img.close()
