"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ImageProcessorError(Exception):
    """基础异常类型。"""


class ConfigError(ImageProcessorError):
    """配置或效果参数不合法时抛出，发生在任何文件读写之前。"""


class DiscoveryError(ImageProcessorError):
    """输入根目录不存在或不可访问。"""


class PathError(ImageProcessorError):
    """源路径不在输入根目录下，或目标路径会逃出输出根目录。"""


class FileProcessingError(ImageProcessorError):
    """单个文件的解码、变换或编码失败，只影响该文件。"""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class ImageLoadingError(FileProcessingError):
    """图片解码失败。"""


class TransformError(FileProcessingError):
    """变换步骤执行失败。"""


class ImageWriteError(FileProcessingError):
    """输出编码或写入失败。"""
