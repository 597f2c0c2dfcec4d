from pathlib import Path

from pdftool.models import clamp_quality, parse_max_dimension
from pdftool.utils import TempPool, generate_run_id, slugify, split_name, unique_names


def test_slugify_basic() -> None:
    assert slugify("Hello World!.pdf") == "Hello-World.pdf"


def test_generate_run_id_unique() -> None:
    first = generate_run_id("test")
    second = generate_run_id("test")
    assert first != second
    assert first.startswith("test-")


def test_split_name_strips_directories() -> None:
    assert split_name("../../etc/photo.JPG") == ("photo", ".JPG")
    assert split_name("C:\\scans\\page.png") == ("page", ".png")
    assert split_name("") == ("file", "")


def test_unique_names_suffixes_in_order() -> None:
    names = ["a.jpg", "b.png", "a.jpg", "a.jpg", "a-2.jpg"]
    assert unique_names(names) == ["a.jpg", "b.png", "a-2.jpg", "a-3.jpg", "a-2-2.jpg"]


def test_clamp_quality() -> None:
    assert clamp_quality(None) == 80
    assert clamp_quality("abc") == 80
    assert clamp_quality("5") == 10
    assert clamp_quality(200) == 95
    assert clamp_quality("72.6") == 72
    assert clamp_quality(" 60 ") == 60
    assert clamp_quality(float("nan")) == 80
    assert clamp_quality(float("inf")) == 80
    assert clamp_quality(float("-inf")) == 80
    assert clamp_quality("1e400") == 80


def test_parse_max_dimension_falls_back() -> None:
    assert parse_max_dimension("1200", 2480) == 1200
    assert parse_max_dimension("0", 2480) == 2480
    assert parse_max_dimension("wide", 2480) == 2480
    assert parse_max_dimension(None, 1000) == 1000


def test_temp_pool_removes_directory(tmp_path: Path) -> None:
    root = tmp_path / "pool"
    with TempPool(root) as pool:
        written = pool.write(b"data", ".bin", stem="upload")
        assert written.exists()
        assert written.parent == pool.directory
    assert not written.exists()
    assert list(root.iterdir()) == []


def test_temp_pool_cleans_up_on_error(tmp_path: Path) -> None:
    root = tmp_path / "pool"
    try:
        with TempPool(root) as pool:
            pool.write(b"data", ".bin")
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert list(root.iterdir()) == []
