"""可组合的图像操作。

每个操作都是不可变的 dataclass，只携带自身参数，通过 ``apply`` 把一张图片变换为
新的图片。操作可以安全地在多个进程/线程之间共享与序列化。``stage`` 决定操作在
序列中的位置，``Format`` 为唯一的终止编码步骤。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional, Tuple

import numpy as np
from PIL import Image, ImageFilter, ImageOps

from image_processor.core.output_manager import OUTPUT_FORMATS

_RESAMPLING = getattr(Image, "Resampling", Image)
_TRANSPOSE = getattr(Image, "Transpose", Image)

STAGE_RESIZE = 0
STAGE_ORIENT = 1
STAGE_COLOR = 2
STAGE_FILTER = 3
STAGE_ENCODE = 4

FIT_MODES = {"cover", "contain", "fill", "inside", "outside"}
DEFAULT_QUALITY = 80


class Operation:
    """所有操作的基类。"""

    __slots__ = ()

    name: ClassVar[str] = "operation"
    stage: ClassVar[int] = STAGE_FILTER

    def apply(self, image: Image.Image) -> Image.Image:
        raise NotImplementedError

    def describe(self) -> str:
        return self.name


def _preserving_alpha(image: Image.Image, transform: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """在 RGB/L 通道上执行变换，并恢复原有的 Alpha 通道。"""

    if image.mode in {"RGBA", "LA"}:
        alpha = image.getchannel("A")
        base = image.convert("RGB" if image.mode == "RGBA" else "L")
        result = transform(base)
        result.putalpha(alpha)
        return result

    if image.mode not in {"RGB", "L"}:
        image = image.convert("RGB")
    return transform(image)


@dataclass(frozen=True, slots=True)
class Resize(Operation):
    """缩放。只给出宽或高时按比例计算另一边。"""

    name: ClassVar[str] = "resize"
    stage: ClassVar[int] = STAGE_RESIZE

    width: Optional[int] = None
    height: Optional[int] = None
    fit: str = "cover"

    def apply(self, image: Image.Image) -> Image.Image:
        src_w, src_h = image.size
        if self.width is None or self.height is None:
            return image.resize(self._proportional_size(src_w, src_h), _RESAMPLING.LANCZOS)

        target = (self.width, self.height)
        if self.fit == "cover":
            return ImageOps.fit(image, target, _RESAMPLING.LANCZOS, centering=(0.5, 0.5))
        if self.fit == "contain":
            return ImageOps.pad(image, target, _RESAMPLING.LANCZOS, centering=(0.5, 0.5))
        if self.fit == "fill":
            return image.resize(target, _RESAMPLING.LANCZOS)
        if self.fit == "inside":
            return ImageOps.contain(image, target, _RESAMPLING.LANCZOS)

        # outside: 保持比例，两边都不小于目标尺寸
        scale = max(self.width / src_w, self.height / src_h)
        size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        return image.resize(size, _RESAMPLING.LANCZOS)

    def _proportional_size(self, src_w: int, src_h: int) -> Tuple[int, int]:
        if self.height is None:
            width = self.width if self.width is not None else src_w
            return width, max(1, round(src_h * width / src_w))
        return max(1, round(src_w * self.height / src_h)), self.height

    def describe(self) -> str:
        width = self.width if self.width is not None else "auto"
        height = self.height if self.height is not None else "auto"
        return f"resize({width}x{height}, fit={self.fit})"


@dataclass(frozen=True, slots=True)
class Rotate(Operation):
    """顺时针旋转指定角度，画布随之扩展。"""

    name: ClassVar[str] = "rotate"
    stage: ClassVar[int] = STAGE_ORIENT

    angle: float

    def apply(self, image: Image.Image) -> Image.Image:
        # Pillow 的 rotate 为逆时针
        return image.rotate(-self.angle, resample=_RESAMPLING.BICUBIC, expand=True)

    def describe(self) -> str:
        return f"rotate({self.angle:g})"


@dataclass(frozen=True, slots=True)
class Flip(Operation):
    """上下镜像。"""

    name: ClassVar[str] = "flip"
    stage: ClassVar[int] = STAGE_ORIENT

    def apply(self, image: Image.Image) -> Image.Image:
        return image.transpose(_TRANSPOSE.FLIP_TOP_BOTTOM)


@dataclass(frozen=True, slots=True)
class Flop(Operation):
    """左右镜像。"""

    name: ClassVar[str] = "flop"
    stage: ClassVar[int] = STAGE_ORIENT

    def apply(self, image: Image.Image) -> Image.Image:
        return image.transpose(_TRANSPOSE.FLIP_LEFT_RIGHT)


@dataclass(frozen=True, slots=True)
class Grayscale(Operation):
    name: ClassVar[str] = "grayscale"
    stage: ClassVar[int] = STAGE_COLOR

    def apply(self, image: Image.Image) -> Image.Image:
        return _preserving_alpha(image, ImageOps.grayscale)


@dataclass(frozen=True, slots=True)
class Normalize(Operation):
    """拉伸亮度范围，忽略两端各 1% 的像素。"""

    name: ClassVar[str] = "normalize"
    stage: ClassVar[int] = STAGE_COLOR

    def apply(self, image: Image.Image) -> Image.Image:
        return _preserving_alpha(image, lambda base: ImageOps.autocontrast(base, cutoff=1))


@dataclass(frozen=True, slots=True)
class Tint(Operation):
    """保留明暗，将中间调着色为指定颜色。"""

    name: ClassVar[str] = "tint"
    stage: ClassVar[int] = STAGE_COLOR

    rgb: Tuple[int, int, int]

    def apply(self, image: Image.Image) -> Image.Image:
        def colorize(base: Image.Image) -> Image.Image:
            return ImageOps.colorize(ImageOps.grayscale(base), black=(0, 0, 0), white=(255, 255, 255), mid=self.rgb)

        return _preserving_alpha(image, colorize)

    def describe(self) -> str:
        return "tint(#%02x%02x%02x)" % self.rgb


@dataclass(frozen=True, slots=True)
class Blur(Operation):
    name: ClassVar[str] = "blur"
    stage: ClassVar[int] = STAGE_FILTER

    sigma: float

    def apply(self, image: Image.Image) -> Image.Image:
        return _preserving_alpha(image, lambda base: base.filter(ImageFilter.GaussianBlur(radius=self.sigma)))

    def describe(self) -> str:
        return f"blur({self.sigma:g})"


@dataclass(frozen=True, slots=True)
class Sharpen(Operation):
    name: ClassVar[str] = "sharpen"
    stage: ClassVar[int] = STAGE_FILTER

    radius: float = 2.0
    percent: int = 150
    threshold: int = 3

    def apply(self, image: Image.Image) -> Image.Image:
        unsharp = ImageFilter.UnsharpMask(radius=self.radius, percent=self.percent, threshold=self.threshold)
        return _preserving_alpha(image, lambda base: base.filter(unsharp))


@dataclass(frozen=True, slots=True)
class Gamma(Operation):
    """伽马校正：out = 255 * (in / 255) ** (1 / gamma)。"""

    name: ClassVar[str] = "gamma"
    stage: ClassVar[int] = STAGE_FILTER

    value: float

    def apply(self, image: Image.Image) -> Image.Image:
        levels = np.linspace(0.0, 1.0, 256)
        lut = np.clip(np.round(255.0 * levels ** (1.0 / self.value)), 0, 255).astype(np.uint8).tolist()

        return _preserving_alpha(image, lambda base: base.point(lut * len(base.getbands())))

    def describe(self) -> str:
        return f"gamma({self.value:g})"


@dataclass(frozen=True, slots=True)
class Format(Operation):
    """终止编码步骤：准备像素模式并给出编码参数。"""

    name: ClassVar[str] = "format"
    stage: ClassVar[int] = STAGE_ENCODE

    extension: str
    quality: Optional[int] = None

    @property
    def codec(self) -> str:
        return OUTPUT_FORMATS[self.extension]

    def apply(self, image: Image.Image) -> Image.Image:
        if self.codec == "JPEG":
            return _flatten_to_rgb(image) if image.mode not in {"RGB", "L"} else image
        if image.mode in {"RGB", "RGBA", "L", "LA"}:
            return image
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        return image.convert("RGBA" if has_alpha else "RGB")

    def save_params(self) -> dict[str, Any]:
        quality = DEFAULT_QUALITY if self.quality is None else self.quality
        if self.codec == "JPEG":
            return {"quality": quality, "optimize": True}
        if self.codec == "WEBP":
            return {"quality": quality, "method": 6}
        # PNG 为无损格式，quality 不生效
        return {"optimize": True}

    def describe(self) -> str:
        if self.quality is None:
            return f"format({self.extension})"
        return f"format({self.extension}, quality={self.quality})"


def _flatten_to_rgb(img: Image.Image) -> Image.Image:
    """将带透明度的图像合成到白色背景上，转换为 RGB。"""

    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in {"RGBA", "LA"}:
        background = Image.new("RGB", img.size, (255, 255, 255))
        rgba = img.convert("RGBA")
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")
