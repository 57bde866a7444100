"""命令行入口。"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

import typer
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from image_processor.core.config import EffectsConfig, RunConfig
from image_processor.core.exceptions import ConfigError, DiscoveryError, PathError
from image_processor.core.models import BatchResult
from image_processor.core.progress import ProgressUpdate
from image_processor.processing.pipeline import process_batch
from image_processor.utils.logging import setup_logging

app = typer.Typer(help="批量图片格式转换与处理工具。")

FALLBACK_VERSION = "0.0.1"


def get_version() -> str:
    try:
        return version("batch-image-processor")
    except PackageNotFoundError:
        return FALLBACK_VERSION


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("处理图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.source_path is not None and update.message:
            progress.log(update.message)

    return callback


def _print_summary(result: BatchResult, output_dir: Path) -> None:
    if result.is_empty:
        typer.echo("未发现任何图片，无需处理。")
        return

    typer.echo(
        f"处理完成：共 {result.discovered} 张，成功 {len(result.succeeded)} 张，"
        f"跳过 {len(result.skipped)} 张，失败 {len(result.failed)} 张。"
    )
    if result.cancelled:
        typer.echo(f"已取消 {len(result.cancelled)} 张。")
    for outcome in result.failed:
        typer.echo(f"  失败 {outcome.source_path}: {outcome.message or outcome.status}", err=True)
    typer.echo(f"输出目录：{output_dir}")


@app.command("run")
def run_cli(  # noqa: PLR0913
    input_dir: Path = typer.Option(..., "--input", "-i", help="输入目录"),
    output_dir: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    extension: str = typer.Option("webp", "--extension", "-e", help="输出格式 (webp, jpg, jpeg, png, jfif)"),
    width: Optional[int] = typer.Option(None, "--width", "-w", help="目标宽度"),
    height: Optional[int] = typer.Option(None, "--height", "-H", help="目标高度"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", help="输出质量 (0-100)"),
    fit: str = typer.Option("cover", "--fit", "-f", help="缩放模式 (cover, contain, fill, inside, outside)"),
    skip_existing: bool = typer.Option(False, "--skip-existing", help="跳过已存在的输出文件"),
    parallel: bool = typer.Option(True, "--parallel/--no-parallel", help="是否并行处理"),
    max_workers: int = typer.Option(4, "--workers", help="并行模式下的进程数量"),
    normalize: bool = typer.Option(False, "--normalize", help="拉伸亮度范围"),
    grayscale: bool = typer.Option(False, "--grayscale", help="转换为灰度"),
    blur: Optional[float] = typer.Option(None, "--blur", help="高斯模糊 sigma (0.3-1000)"),
    sharpen: bool = typer.Option(False, "--sharpen", help="锐化"),
    gamma: Optional[float] = typer.Option(None, "--gamma", help="伽马值 (1.0-3.0)"),
    rotate: Optional[float] = typer.Option(None, "--rotate", help="顺时针旋转角度"),
    flip: bool = typer.Option(False, "--flip", help="上下镜像"),
    flop: bool = typer.Option(False, "--flop", help="左右镜像"),
    tint: Optional[str] = typer.Option(None, "--tint", help="着色颜色 (HEX 或 r,g,b)"),
    report: Optional[str] = typer.Option(None, "--report", help="在输出目录写入 CSV 报告的文件名"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量处理。"""

    setup_logging(verbose)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    input_dir = input_dir.expanduser().resolve()
    output_dir = output_dir.expanduser().resolve()

    config = RunConfig(
        input_dir=input_dir,
        output_dir=output_dir,
        extension=extension,
        effects=EffectsConfig(
            width=width,
            height=height,
            fit=fit,
            rotate=rotate,
            flip=flip,
            flop=flop,
            grayscale=grayscale,
            normalize=normalize,
            tint=tint,
            blur=blur,
            sharpen=sharpen,
            gamma=gamma,
            quality=quality,
        ),
        skip_existing=skip_existing,
        concurrency="parallel" if parallel else "sequential",
        max_workers=max_workers,
        report_filename=report,
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    try:
        with progress:
            result = process_batch(config, progress_callback=_build_progress_callback(progress))
    except ConfigError as exc:
        typer.echo(f"配置错误：{exc}", err=True)
        raise typer.Exit(code=1) from exc
    except (DiscoveryError, PathError) as exc:
        typer.echo(f"错误：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    _print_summary(result, output_dir)
    if result.is_failure:
        raise typer.Exit(code=1)


@app.command("version")
def version_cli() -> None:
    """显示版本号。"""

    typer.echo(get_version())


if __name__ == "__main__":
    app()
