"""测试文件扫描与图片加载逻辑。"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from PIL import Image

from image_processor.core.exceptions import DiscoveryError, ImageLoadingError
from image_processor.core.scanner import collect_source_images, discover_images
from image_processor.processing.image_loader import load_image


def _touch_image(path: Path, size: tuple[int, int] = (8, 8), fmt: str = "PNG") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, "blue").save(path, format=fmt)
    return path


def test_discover_matches_extensions_case_insensitively(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    expected = {
        _touch_image(root / "a.jpg", fmt="JPEG"),
        _touch_image(root / "B.PNG"),
        _touch_image(root / "c.JPEG", fmt="JPEG"),
        _touch_image(root / "nested" / "deep" / "d.webp", fmt="PNG"),
        _touch_image(root / "nested" / "e.Jfif", fmt="JPEG"),
    }
    (root / "notes.txt").write_text("hello")
    (root / "archive.gif").write_bytes(b"GIF89a")
    (root / "folder.jpg").mkdir()

    found = discover_images(root)

    assert set(found) == {path.resolve() for path in expected}
    assert all(path.is_file() for path in found)
    assert all(path.is_absolute() for path in found)


def test_discover_order_is_depth_first_and_stable(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    for relative in ("b.png", "a/z.png", "a/b/y.png", "c.png"):
        _touch_image(root / relative)

    first = discover_images(root)
    second = discover_images(root)

    assert first == second
    assert [p.relative_to(root.resolve()).as_posix() for p in first] == [
        "a/b/y.png",
        "a/z.png",
        "b.png",
        "c.png",
    ]


def test_discover_empty_directory_is_not_an_error(tmp_path: Path) -> None:
    (tmp_path / "empty" / "sub").mkdir(parents=True)

    assert discover_images(tmp_path / "empty") == []


def test_discover_missing_root_raises(tmp_path: Path) -> None:
    missing = tmp_path / "nope"

    with pytest.raises(DiscoveryError, match="nope"):
        discover_images(missing)


def test_discover_file_root_raises(tmp_path: Path) -> None:
    image = _touch_image(tmp_path / "single.png")

    with pytest.raises(DiscoveryError):
        discover_images(image)


def test_discover_skips_excluded_directory(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    _touch_image(root / "a.png")
    _touch_image(root / "out" / "a.webp", fmt="PNG")

    found = discover_images(root, exclude=[root / "out"])

    assert [p.name for p in found] == ["a.png"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="平台不支持符号链接")
def test_discover_survives_symlink_cycle(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    root = tmp_path / "photos"
    _touch_image(root / "sub" / "a.png")
    (root / "sub" / "loop").symlink_to(root, target_is_directory=True)

    found = discover_images(root)

    assert [p.name for p in found] == ["a.png"]
    assert "循环" in caplog.text


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="需要非 root 用户验证权限错误")
def test_discover_skips_unreadable_directory(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    root = tmp_path / "photos"
    _touch_image(root / "ok.png")
    locked = root / "locked"
    _touch_image(locked / "hidden.png")
    locked.chmod(0)
    try:
        found = discover_images(root)
    finally:
        locked.chmod(0o755)

    assert [p.name for p in found] == ["ok.png"]
    assert "无法读取目录" in caplog.text


def test_collect_source_images_records_relative_paths(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    _touch_image(root / "sub" / "b.png")

    (image_file,) = collect_source_images(root)

    assert image_file.root == root.resolve()
    assert image_file.relative_path == Path("sub/b.png")


def test_load_image_rejects_corrupted_file(tmp_path: Path) -> None:
    corrupted = tmp_path / "broken.png"
    corrupted.write_text("not an image")

    with pytest.raises(ImageLoadingError) as excinfo:
        load_image(corrupted)

    assert excinfo.value.path == corrupted


def test_exif_orientation_is_corrected(tmp_path: Path) -> None:
    if not hasattr(Image, "Exif"):
        pytest.skip("当前 Pillow 版本不支持写入 EXIF 数据")

    image = Image.new("RGB", (80, 40), "red")
    exif = Image.Exif()
    exif[274] = 6  # 顺时针 90 度
    image.save(tmp_path / "rotated.jpg", exif=exif.tobytes())

    loaded = load_image(tmp_path / "rotated.jpg")

    assert loaded.size == (40, 80)


def test_cmyk_image_converts_to_rgb(tmp_path: Path) -> None:
    Image.new("CMYK", (50, 50), (0, 128, 255, 0)).save(tmp_path / "cmyk.jpg")

    assert load_image(tmp_path / "cmyk.jpg").mode == "RGB"


def test_palette_transparency_becomes_rgba(tmp_path: Path) -> None:
    palette = Image.new("P", (10, 10), 0)
    palette.save(tmp_path / "palette.png", transparency=0)

    assert load_image(tmp_path / "palette.png").mode == "RGBA"


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="需要非 root 用户验证权限错误")
def test_discover_skips_unsearchable_directory(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    root = tmp_path / "photos"
    _touch_image(root / "ok.png")
    locked = root / "locked"
    _touch_image(locked / "hidden.png")
    locked.chmod(0o444)
    try:
        found = discover_images(root)
    finally:
        locked.chmod(0o755)

    assert [p.name for p in found] == ["ok.png"]
    assert "无法访问" in caplog.text


def test_load_image_rejects_decompression_bomb(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _touch_image(tmp_path / "large.png", size=(40, 40))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 500)

    with pytest.raises(ImageLoadingError):
        load_image(tmp_path / "large.png")
