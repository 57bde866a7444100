"""日志配置。"""

from __future__ import annotations

import logging


def setup_logging(verbose: bool = False) -> None:
    """初始化项目日志配置；verbose 时输出 DEBUG 级别日志。"""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
    )
    # Pillow 的插件加载日志过于嘈杂
    logging.getLogger("PIL").setLevel(logging.INFO)
