"""处理流水线：扫描、组合操作序列、并发或顺序执行并汇总结果。"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol

from image_processor.core.config import RunConfig, normalize_extension, validate_run_config
from image_processor.core.exceptions import PathError
from image_processor.core.models import BatchResult, FileOutcome
from image_processor.core.output_manager import OutputMapping
from image_processor.core.progress import ProgressUpdate
from image_processor.core.report import write_csv_report
from image_processor.core.scanner import collect_source_images
from image_processor.processing.composer import compose
from image_processor.processing.worker import ProcessingTask, run_task

LOGGER = logging.getLogger(__name__)

# 每个工作进程最多排队的任务数
IN_FLIGHT_PER_WORKER = 2


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def process_batch(
    config: RunConfig,
    progress_callback: ProgressCallback = None,
    cancel_event: Optional[CancelSignal] = None,
) -> BatchResult:
    """批量处理入口：校验配置、扫描、组合操作序列并执行。

    配置错误（ConfigError）、扫描错误（DiscoveryError）与路径映射错误（PathError）
    直接抛出；单个文件的失败只记录在结果中，不影响其他文件。
    """

    validate_run_config(config)
    extension = normalize_extension(config.extension)
    operations = compose(config.effects, extension)

    input_root = config.input_dir.expanduser().resolve()
    output_root = config.output_dir.expanduser().resolve()

    LOGGER.info("开始扫描输入路径 %s", input_root)
    sources = collect_source_images(input_root, exclude=[output_root])
    total = len(sources)
    LOGGER.info("发现 %d 个候选图片文件", total)

    result = BatchResult(discovered=total)
    if total == 0:
        _emit_progress(progress_callback, result, message="没有需要处理的图片", status="done")
        return result

    mapping = OutputMapping(input_root=input_root, output_root=output_root, extension=extension)
    tasks = [
        ProcessingTask(source=source, operations=operations, mapping=mapping, skip_existing=config.skip_existing)
        for source in sources
    ]

    _emit_progress(progress_callback, result, message="开始执行处理任务")

    if config.concurrency == "sequential":
        pending = _run_sequential(tasks, result, progress_callback, cancel_event)
    else:
        pending = _run_parallel(tasks, config.max_workers, result, progress_callback, cancel_event)

    for task in pending:
        result.record(FileOutcome(source_path=task.source.source_path, status="cancelled", message="任务已取消"))

    if result.cancelled:
        LOGGER.warning("任务被取消，%d 个文件未处理", len(result.cancelled))

    LOGGER.info(
        "处理完成：成功 %d，跳过 %d，失败 %d",
        len(result.succeeded),
        len(result.skipped),
        len(result.failed),
    )

    if config.report_filename:
        _write_report(config.report_filename, output_root, result)

    _emit_progress(
        progress_callback,
        result,
        message="处理完成",
        status="cancelled" if result.cancelled else "done",
    )
    return result


def _run_sequential(
    tasks: list[ProcessingTask],
    result: BatchResult,
    progress_callback: ProgressCallback,
    cancel_event: Optional[CancelSignal],
) -> list[ProcessingTask]:
    """按扫描顺序逐个执行，返回因取消而未开始的任务。"""

    for index, task in enumerate(tasks):
        if _is_cancelled(cancel_event):
            return tasks[index:]
        outcome = _guarded_run(task)
        result.record(outcome)
        _emit_progress(progress_callback, result, outcome=outcome)
    return []


def _guarded_run(task: ProcessingTask) -> FileOutcome:
    """在当前进程执行任务；意外异常与并行模式一样记录为 error-worker。"""

    try:
        return run_task(task)
    except PathError:
        raise
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("任务执行异常：%s", exc)
        return _worker_failure(task, exc)


def _worker_failure(task: ProcessingTask, exc: Exception) -> FileOutcome:
    return FileOutcome(source_path=task.source.source_path, status="error-worker", message=str(exc))


def _run_parallel(
    tasks: list[ProcessingTask],
    max_workers: int,
    result: BatchResult,
    progress_callback: ProgressCallback,
    cancel_event: Optional[CancelSignal],
) -> list[ProcessingTask]:
    """在进程池中执行，同时在途的任务数有上限；返回因取消而未提交的任务。"""

    queue: Iterator[ProcessingTask] = iter(tasks)
    in_flight: dict[Future[FileOutcome], ProcessingTask] = {}
    limit = max_workers * IN_FLIGHT_PER_WORKER

    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        while True:
            while len(in_flight) < limit and not _is_cancelled(cancel_event):
                task = next(queue, None)
                if task is None:
                    break
                in_flight[executor.submit(run_task, task)] = task

            if not in_flight:
                break

            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                task = in_flight.pop(future)
                try:
                    outcome = future.result()
                except PathError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception("任务执行异常：%s", exc)
                    outcome = _worker_failure(task, exc)
                result.record(outcome)
                _emit_progress(progress_callback, result, outcome=outcome)

    return list(queue)


def _is_cancelled(cancel_event: Optional[CancelSignal]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _emit_progress(
    callback: ProgressCallback,
    result: BatchResult,
    message: Optional[str] = None,
    outcome: Optional[FileOutcome] = None,
    status: str = "running",
) -> None:
    if not callback:
        return
    if outcome is not None and message is None:
        message = f"{outcome.status}: {outcome.source_path.name}"
    callback(
        ProgressUpdate(
            total=result.discovered,
            completed=result.completed,
            failed=len(result.failed),
            message=message,
            source_path=outcome.source_path if outcome else None,
            status=status,
        )
    )


def _write_report(filename: str, output_root: Path, result: BatchResult) -> None:
    try:
        report_path = write_csv_report(result.all_outcomes(), output_root, filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
    else:
        LOGGER.info("报告文件：%s", report_path)
