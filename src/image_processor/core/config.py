"""单次批处理运行的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from image_processor.core.exceptions import ConfigError
from image_processor.core.output_manager import OUTPUT_FORMATS

ConcurrencyMode = str  # parallel | sequential

VALID_CONCURRENCY = {"parallel", "sequential"}


@dataclass(frozen=True, slots=True)
class EffectsConfig:
    """用户请求的效果集合，由 composer 转换为有序的操作序列。"""

    width: Optional[int] = None
    height: Optional[int] = None
    fit: str = "cover"  # cover | contain | fill | inside | outside
    rotate: Optional[float] = None
    flip: bool = False
    flop: bool = False
    grayscale: bool = False
    normalize: bool = False
    tint: Optional[str] = None
    blur: Optional[float] = None
    sharpen: bool = False
    gamma: Optional[float] = None
    quality: Optional[int] = None


@dataclass(frozen=True, slots=True)
class RunConfig:
    """一次运行的完整配置，创建后不可修改。"""

    input_dir: Path
    output_dir: Path
    extension: str = "webp"
    effects: EffectsConfig = field(default_factory=EffectsConfig)
    skip_existing: bool = False
    concurrency: ConcurrencyMode = "parallel"
    max_workers: int = 4
    report_filename: Optional[str] = None


def normalize_extension(extension: str) -> str:
    """去掉前导点并转为小写，例如 ``.WEBP`` -> ``webp``。"""

    return extension.strip().lstrip(".").lower()


def validate_run_config(config: RunConfig) -> None:
    """校验与文件系统无关的运行参数，失败时抛出 ConfigError。"""

    extension = normalize_extension(config.extension)
    if extension not in OUTPUT_FORMATS:
        supported = ", ".join(sorted(OUTPUT_FORMATS))
        raise ConfigError(f"不支持的输出格式: {config.extension}（支持: {supported}）")

    if config.concurrency not in VALID_CONCURRENCY:
        raise ConfigError(f"未知的并发模式: {config.concurrency}")

    if config.max_workers < 1:
        raise ConfigError("max_workers 必须大于等于 1")
