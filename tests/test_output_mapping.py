"""测试输出路径映射。"""

from __future__ import annotations

from pathlib import Path

import pytest

from image_processor.core.exceptions import PathError
from image_processor.core.output_manager import OutputMapping, map_output_path

INPUT = Path("/data/photos")
OUTPUT = Path("/data/out")


@pytest.mark.parametrize(
    ("relative", "extension", "expected"),
    [
        ("a.jpg", "webp", "a.webp"),
        ("sub/b.png", "webp", "sub/b.webp"),
        ("sub/deeper/c.JPEG", "png", "sub/deeper/c.png"),
        ("archive.tar.jpg", "jpg", "archive.tar.jpg"),
        ("noext", "png", "noext.png"),
        ("dots.in.name.webp", ".jfif", "dots.in.name.jfif"),
    ],
)
def test_map_output_path_mirrors_tree_and_replaces_extension(relative: str, extension: str, expected: str) -> None:
    destination = map_output_path(INPUT, OUTPUT, INPUT / relative, extension)

    assert destination == OUTPUT / expected
    assert destination.is_relative_to(OUTPUT)
    assert destination.suffix == "." + extension.lstrip(".")


def test_original_extension_is_never_appended() -> None:
    destination = map_output_path(INPUT, OUTPUT, INPUT / "photo.jpg", "webp")

    assert destination.name == "photo.webp"
    assert ".jpg" not in destination.name


def test_file_outside_input_root_is_rejected() -> None:
    with pytest.raises(PathError):
        map_output_path(INPUT, OUTPUT, Path("/elsewhere/a.jpg"), "webp")


def test_parent_traversal_is_rejected() -> None:
    with pytest.raises(PathError):
        map_output_path(INPUT, OUTPUT, INPUT / "sub" / ".." / ".." / "secret.jpg", "webp")


def test_input_root_itself_is_rejected() -> None:
    with pytest.raises(PathError):
        map_output_path(INPUT, OUTPUT, INPUT, "webp")


def test_output_mapping_delegates_to_map_output_path() -> None:
    mapping = OutputMapping(input_root=INPUT, output_root=OUTPUT, extension="png")

    assert mapping.destination_for(INPUT / "x" / "y.jpg") == OUTPUT / "x" / "y.png"
