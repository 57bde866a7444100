"""输出路径映射与图像写入模块。"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from PIL import Image

from image_processor.core.exceptions import ImageWriteError, PathError

LOGGER = logging.getLogger(__name__)

# 扩展名 -> Pillow 编码器名称
OUTPUT_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "jfif": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}


def map_output_path(input_root: Path, output_root: Path, file_path: Path, extension: str) -> Path:
    """计算目标路径：保留相对目录结构，并把最后一个扩展名替换为目标扩展名。

    ``file_path`` 不在 ``input_root`` 之下，或结果会逃出 ``output_root`` 时抛出
    PathError。该函数不访问文件系统。
    """

    try:
        relative = file_path.relative_to(input_root)
    except ValueError as exc:
        raise PathError(f"文件不在输入目录内: {file_path} (输入目录: {input_root})") from exc

    if not relative.name or ".." in relative.parts:
        raise PathError(f"无法映射的相对路径: {relative}")

    suffix = "." + extension.lstrip(".")
    if relative.suffix:
        relative = relative.with_suffix(suffix)
    else:
        relative = relative.with_name(relative.name + suffix)

    destination = output_root / relative
    if not _is_within(destination, output_root):
        raise PathError(f"目标路径逃出输出目录: {destination}")
    return destination


def _is_within(path: Path, root: Path) -> bool:
    normalized = Path(os.path.normpath(path))
    normalized_root = Path(os.path.normpath(root))
    return normalized != normalized_root and normalized.is_relative_to(normalized_root)


@dataclass(frozen=True, slots=True)
class OutputMapping:
    """一次运行中固定的映射参数：输入根、输出根与目标扩展名。"""

    input_root: Path
    output_root: Path
    extension: str

    def destination_for(self, file_path: Path) -> Path:
        return map_output_path(self.input_root, self.output_root, file_path, self.extension)


def ensure_parent_dir(destination: Path) -> None:
    """确保目标目录存在；并发创建同一目录时不报错。"""

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ImageWriteError(f"无法创建输出目录: {destination.parent}", destination) from exc


def save_image(
    image: Image.Image,
    destination: Path,
    image_format: str,
    save_params: Mapping[str, Any],
) -> None:
    """先写入同目录下的临时文件，再重命名为目标文件，避免留下半截输出。"""

    tmp = destination.with_name(f".{destination.stem}.tmp-{uuid.uuid4().hex[:8]}{destination.suffix}")
    try:
        image.save(tmp, format=image_format, **save_params)
        tmp.replace(destination)
    except (OSError, ValueError, KeyError) as exc:
        tmp.unlink(missing_ok=True)
        raise ImageWriteError(f"写入文件失败: {destination} ({exc})", destination) from exc

    LOGGER.debug("已写入 %s (%s)", destination, image_format)
