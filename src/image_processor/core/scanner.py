"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from image_processor.core.exceptions import DiscoveryError
from image_processor.core.models import ImageFile

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".jfif"}


def is_image_file(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def _sorted_entries(directory: Path) -> Optional[Iterator[Path]]:
    """列出目录内容；无法读取时记录警告并返回 None。"""

    try:
        return iter(sorted(directory.iterdir(), key=lambda p: p.name))
    except OSError as exc:
        LOGGER.warning("无法读取目录，已跳过 %s: %s", directory, exc)
        return None


def discover_images(root: Path, exclude: Iterable[Path] = ()) -> list[Path]:
    """深度优先遍历 ``root``，返回扩展名匹配的图片文件路径。

    使用显式栈代替递归，目录项按名称排序以保证结果稳定。无法读取的子目录与
    符号链接循环只记录警告，不会中断整次扫描。``exclude`` 中的目录整体跳过。
    """

    if not root.exists():
        raise DiscoveryError(f"输入目录不存在: {root}")
    if not root.is_dir():
        raise DiscoveryError(f"输入路径不是目录: {root}")

    root = root.resolve()
    excluded = {path.resolve() for path in exclude}
    visited = {root}

    entries = _sorted_entries(root)
    if entries is None:
        raise DiscoveryError(f"无法读取输入目录: {root}")

    found: list[Path] = []
    stack = [entries]
    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue

        try:
            is_dir = entry.is_dir()
            is_file = not is_dir and entry.is_file()
            real = entry.resolve() if is_dir else None
        except OSError as exc:
            LOGGER.warning("无法访问，已跳过 %s: %s", entry, exc)
            continue

        if is_dir:
            if real in excluded:
                LOGGER.debug("跳过排除目录 %s", entry)
                continue
            if real in visited:
                LOGGER.warning("检测到重复或循环的目录链接，已跳过 %s", entry)
                continue
            visited.add(real)
            children = _sorted_entries(entry)
            if children is not None:
                stack.append(children)
        elif is_file and is_image_file(entry):
            found.append(entry)

    return found


def collect_source_images(input_dir: Path, exclude: Iterable[Path] = ()) -> list[ImageFile]:
    """扫描输入目录，返回带相对路径信息的图片列表。"""

    root = input_dir.resolve()
    return [
        ImageFile(source_path=path, root=root, relative_path=path.relative_to(root))
        for path in discover_images(input_dir, exclude)
    ]
