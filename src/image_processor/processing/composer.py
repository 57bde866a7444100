"""把请求的效果组合为有序的操作序列。"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from image_processor.core.config import EffectsConfig, normalize_extension
from image_processor.core.exceptions import ConfigError
from image_processor.core.output_manager import OUTPUT_FORMATS
from image_processor.processing.operations import (
    FIT_MODES,
    Blur,
    Flip,
    Flop,
    Format,
    Gamma,
    Grayscale,
    Normalize,
    Operation,
    Resize,
    Rotate,
    Sharpen,
    Tint,
)
from image_processor.utils.colors import parse_color

LOGGER = logging.getLogger(__name__)

OperationSequence = tuple[Operation, ...]

QUALITY_RANGE = (0, 100)
GAMMA_RANGE = (1.0, 3.0)
BLUR_RANGE = (0.3, 1000.0)


def compose(effects: EffectsConfig, extension: str) -> OperationSequence:
    """校验效果参数并生成操作序列，末尾总是一个 Format 编码步骤。

    顺序固定为：resize → flip/flop/rotate → normalize/grayscale/tint →
    blur/sharpen/gamma → format。参数越界直接抛出 ConfigError，不做截断。
    """

    _validate_effects(effects)

    operations: list[Operation] = []
    if effects.width is not None or effects.height is not None:
        operations.append(Resize(width=effects.width, height=effects.height, fit=effects.fit))
    if effects.flip:
        operations.append(Flip())
    if effects.flop:
        operations.append(Flop())
    if effects.rotate is not None and effects.rotate % 360 != 0:
        operations.append(Rotate(angle=effects.rotate))
    if effects.normalize:
        operations.append(Normalize())
    if effects.grayscale:
        operations.append(Grayscale())
    if effects.tint is not None:
        operations.append(Tint(rgb=parse_color(effects.tint)))
    if effects.blur is not None:
        operations.append(Blur(sigma=effects.blur))
    if effects.sharpen:
        operations.append(Sharpen())
    if effects.gamma is not None:
        operations.append(Gamma(value=effects.gamma))

    sequence = order_operations(operations, extension, quality=effects.quality)
    LOGGER.debug("操作序列: %s", " -> ".join(op.describe() for op in sequence))
    return sequence


def order_operations(
    operations: Iterable[Operation],
    extension: str,
    quality: Optional[int] = None,
) -> OperationSequence:
    """按阶段稳定排序，并保证序列以唯一的 Format 结束。

    未显式给出 Format 时，按目标扩展名补上一个。
    """

    extension = normalize_extension(extension)
    if extension not in OUTPUT_FORMATS:
        raise ConfigError(f"不支持的输出格式: {extension}")

    steps: list[Operation] = []
    formats: list[Format] = []
    for operation in operations:
        if isinstance(operation, Format):
            formats.append(operation)
        else:
            steps.append(operation)

    if len(formats) > 1:
        raise ConfigError("操作序列中只能有一个 format 步骤")

    if formats:
        terminal = formats[0]
        if terminal.extension not in OUTPUT_FORMATS:
            raise ConfigError(f"不支持的输出格式: {terminal.extension}")
        if terminal.codec != OUTPUT_FORMATS[extension]:
            raise ConfigError(f"format({terminal.extension}) 与目标扩展名 {extension} 不一致")
    else:
        _check_quality(quality)
        terminal = Format(extension=extension, quality=quality)

    steps.sort(key=lambda op: op.stage)
    return (*steps, terminal)


def _validate_effects(effects: EffectsConfig) -> None:
    for label, value in (("width", effects.width), ("height", effects.height)):
        if value is not None and value <= 0:
            raise ConfigError(f"{label} 必须为正整数: {value}")

    if effects.fit not in FIT_MODES:
        raise ConfigError(f"未知的缩放模式: {effects.fit}")

    if effects.rotate is not None and not math.isfinite(effects.rotate):
        raise ConfigError(f"旋转角度无效: {effects.rotate}")

    _check_quality(effects.quality)
    _check_range("gamma", effects.gamma, GAMMA_RANGE)
    _check_range("blur", effects.blur, BLUR_RANGE)


def _check_quality(quality: Optional[int]) -> None:
    _check_range("quality", quality, QUALITY_RANGE)


def _check_range(label: str, value: Optional[float], bounds: tuple[float, float]) -> None:
    if value is None:
        return
    low, high = bounds
    if not low <= value <= high:
        raise ConfigError(f"{label} 必须在 {low}~{high} 之间，当前为 {value}")
