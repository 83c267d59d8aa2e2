# tests/test_cli.py
from __future__ import annotations

import sys

import numpy as np
import pytest
from PIL import Image

import colorize as cli
from conftest import write_png


@pytest.fixture
def image_rgb(rng):
    return rng.integers(0, 256, size=(9, 11, 3), dtype=np.uint8)


def _run(*argv):
    return cli.main([str(a) for a in argv])


def test_single_file_default_output(tmp_path, isolated_home, image_rgb):
    src = write_png(tmp_path / "cat.png", image_rgb)
    assert _run(src, "--workers", 2, "--seed", 1) == 0

    dst = tmp_path / "cat_kanagawa.png"
    assert dst.is_file()
    with Image.open(dst) as im:
        assert im.size == (11, 9)
        assert im.mode == "RGB"


def test_explicit_output_and_blend_zero(tmp_path, isolated_home, image_rgb):
    src = write_png(tmp_path / "cat.png", image_rgb)
    dst = tmp_path / "out" / "result.png"
    dst.parent.mkdir()
    assert _run(src, "--output", dst, "-b", 0) == 0
    with Image.open(dst) as im:
        assert np.array_equal(np.array(im), image_rgb)


def test_user_colorscheme_and_config(tmp_path, isolated_home, image_rgb):
    cfg_dir = isolated_home / ".config" / "colorizer"
    cfg_dir.mkdir(parents=True)
    (cfg_dir / "mono.toml").write_text('colors = ["#000000", "#ffffff"]\n')
    (cfg_dir / "config.toml").write_text('colorscheme = "mono"\n')

    src = write_png(tmp_path / "dog.png", image_rgb)
    assert _run(src, "-d", 0) == 0
    assert (tmp_path / "dog_mono.png").is_file()


def test_folder_mode_isolates_failures(tmp_path, isolated_home, image_rgb, capsys):
    folder = tmp_path / "in"
    folder.mkdir()
    write_png(folder / "a.png", image_rgb)
    write_png(folder / "b.png", image_rgb[::-1])
    write_png(folder / "a_kanagawa.png", image_rgb)
    (folder / "broken.png").write_bytes(b"not an image")
    (folder / "notes.txt").write_text("skip me")
    outdir = tmp_path / "out"

    assert _run(folder, "--outdir", outdir, "--jobs", 2, "--workers", 1) == 1

    assert sorted(p.name for p in outdir.iterdir()) == ["a_kanagawa.png", "b_kanagawa.png"]
    captured = capsys.readouterr()
    assert "broken.png" in captured.err
    assert "=== a.png ===" in captured.out
    assert "a_kanagawa_kanagawa" not in captured.out


def test_folder_mode_sequential_success(tmp_path, isolated_home, image_rgb):
    folder = tmp_path / "in"
    folder.mkdir()
    write_png(folder / "one.png", image_rgb)
    write_png(folder / "two.png", image_rgb)
    assert _run(folder, "--jobs", 1) == 0
    assert (folder / "one_kanagawa.png").is_file()
    assert (folder / "two_kanagawa.png").is_file()


def test_missing_input(tmp_path, isolated_home):
    assert _run(tmp_path / "nothing.png") == 2


def test_bad_setting(tmp_path, isolated_home, image_rgb, capsys):
    src = write_png(tmp_path / "cat.png", image_rgb)
    assert _run(src, "-b", 2) == 2
    assert "blend_factor" in capsys.readouterr().err


def test_gpu_unavailable(tmp_path, isolated_home, image_rgb, monkeypatch, capsys):
    monkeypatch.setitem(sys.modules, "wgpu", None)
    src = write_png(tmp_path / "cat.png", image_rgb)

    assert _run(src, "--backend", "gpu") == 1
    assert not (tmp_path / "cat_kanagawa.png").exists()

    assert _run(src, "--backend", "gpu", "--fallback-cpu") == 0
    assert (tmp_path / "cat_kanagawa.png").is_file()
    assert "falling back" in capsys.readouterr().out


@pytest.mark.parametrize("jobs", [1, 2])
def test_unexpected_error_does_not_stop_the_batch(
    tmp_path, isolated_home, image_rgb, monkeypatch, capsys, jobs
):
    folder = tmp_path / "in"
    folder.mkdir()
    write_png(folder / "a_huge.png", image_rgb)
    write_png(folder / "b.png", image_rgb)
    outdir = tmp_path / "out"

    real_load = cli.load_image_rgb

    def load(path):
        if path.name == "a_huge.png":
            raise Image.DecompressionBombError("image size exceeds limit")
        return real_load(path)

    monkeypatch.setattr(cli, "load_image_rgb", load)

    assert _run(folder, "--outdir", outdir, "--jobs", jobs, "--workers", 1) == 1
    assert [p.name for p in outdir.iterdir()] == ["b_kanagawa.png"]
    captured = capsys.readouterr()
    assert "a_huge.png: DecompressionBombError" in captured.err
    assert "=== b.png ===" in captured.out
    assert "[batch] 2/2 files" in captured.out


def test_read_only_format_is_written_as_png(tmp_path, isolated_home, image_rgb):
    src = write_png(tmp_path / "cat.png", image_rgb)
    assert _run(src, "--output", tmp_path / "cat_out.psd") == 0
    assert (tmp_path / "cat_out.png").is_file()
    assert not (tmp_path / "cat_out.psd").exists()
