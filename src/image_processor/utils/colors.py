"""颜色工具函数。"""

from __future__ import annotations

import re
from typing import Tuple

from image_processor.core.exceptions import ConfigError

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
RGB_TRIPLE_RE = re.compile(r"^\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*$")


def parse_color(value: str) -> Tuple[int, int, int]:
    """将 ``#RRGGBB``、``#RGB`` 或 ``r,g,b`` 字符串解析为 RGB 三元组。"""

    if not value or not value.strip():
        raise ConfigError("颜色值不能为空")

    triple = RGB_TRIPLE_RE.match(value)
    if triple:
        channels = tuple(int(part) for part in triple.groups())
        if any(channel > 255 for channel in channels):
            raise ConfigError(f"颜色分量必须在 0~255 之间: {value}")
        return channels  # type: ignore[return-value]

    match = HEX_COLOR_RE.match(value.strip())
    if not match:
        raise ConfigError(f"无法解析颜色值: {value}")

    hex_value = match.group(1)
    if len(hex_value) == 3:
        hex_value = "".join(ch * 2 for ch in hex_value)

    return int(hex_value[0:2], 16), int(hex_value[2:4], 16), int(hex_value[4:6], 16)
