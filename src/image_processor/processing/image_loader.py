"""图片解码与基础预处理实现。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from image_processor.core.exceptions import ImageLoadingError

LOGGER = logging.getLogger(__name__)

_KEPT_MODES = {"RGB", "RGBA", "L", "LA"}


def load_image(path: Path) -> Image.Image:
    """解码单张图片，执行 EXIF 旋转并把像素模式归一化为 RGB/RGBA/L/LA。

    返回值为新的 Image 对象，调用者负责关闭。
    """

    try:
        with Image.open(path) as img:
            img.load()

            # EXIF Orientation 校正
            img = ImageOps.exif_transpose(img)

            if img.mode not in _KEPT_MODES:
                img = _normalize_mode(img)

            return img.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise ImageLoadingError(f"无法加载图像: {path} ({exc})", path) from exc


def _normalize_mode(img: Image.Image) -> Image.Image:
    """将调色板、CMYK、16 位等模式转换为 RGB 或 RGBA。"""

    if img.mode == "P" or img.mode == "PA":
        has_alpha = img.mode == "PA" or "transparency" in img.info
        return img.convert("RGBA" if has_alpha else "RGB")

    if img.mode.startswith("I;16"):
        img = img.convert("I")
    if img.mode in {"I", "F"}:
        # 16 位灰度缩放到 8 位
        return img.point(lambda value: value * (1 / 256)).convert("L")

    return img.convert("RGB")
