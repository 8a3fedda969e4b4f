"""Tests for main.py CLI functionality."""

import io
import zipfile
from unittest.mock import patch

import pytest

from image_upscaler.main import main, load_sources
from image_upscaler.testing.fakes import FakeLogger, create_test_image


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the CLI with artifacts in a temporary directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("UPSCALER_ARTIFACT_DIR", str(tmp_path / "artifacts"))
    return tmp_path


def write_image(path, width=200, height=100, format_type="JPEG"):
    path.write_bytes(create_test_image(width, height, format_type))
    return str(path)


class TestMainCLI:
    """Tests for the main CLI functionality."""

    def test_main_with_no_args_shows_help(self):
        """Test that running main without arguments shows help."""
        with patch("argparse.ArgumentParser.print_help") as mock_help:
            with pytest.raises(SystemExit) as excinfo:
                main([])
            mock_help.assert_called_once()
            assert excinfo.value.code == 1

    def test_main_version_command(self):
        """Test version command output."""
        with patch("builtins.print") as mock_print:
            with pytest.raises(SystemExit) as excinfo:
                main(["version"])
            mock_print.assert_any_call("Image Upscaler CLI")
            mock_print.assert_any_call("Version 0.1.0")
            assert excinfo.value.code == 0

    def test_process_requires_files(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["process"])
        assert excinfo.value.code == 2

    def test_process_rejects_non_positive_dimension(self, workdir):
        with pytest.raises(SystemExit) as excinfo:
            main(["process", "a.jpg", "--max-dimension", "0"])
        assert excinfo.value.code == 2

    def test_process_writes_outputs(self, workdir):
        """Test process command resizing two files into an output directory."""
        first = write_image(workdir / "first.jpg")
        second = write_image(workdir / "second.png", 50, 50, "PNG")

        with pytest.raises(SystemExit) as excinfo:
            main(
                [
                    "process", first, second,
                    "--no-upscale", "--max-dimension", "64",
                    "--prefix", "item", "--output-dir", str(workdir / "out"),
                ]
            )

        assert excinfo.value.code == 0
        assert sorted(p.name for p in (workdir / "out").iterdir()) == ["item_1.png", "item_2.png"]
        # Artifacts are discarded once copied out
        assert list((workdir / "artifacts").iterdir()) == []

    def test_process_writes_archive(self, workdir):
        source = write_image(workdir / "photo.jpg")
        archive_path = workdir / "batch.zip"

        with pytest.raises(SystemExit) as excinfo:
            main(["process", source, "--no-upscale", "--archive", str(archive_path)])

        assert excinfo.value.code == 0
        with zipfile.ZipFile(io.BytesIO(archive_path.read_bytes())) as archive:
            assert archive.namelist() == ["image_1.png"]
        assert not (workdir / "output").exists()

    def test_process_exits_with_error_when_nothing_succeeds(self, workdir):
        bogus = workdir / "notes.txt"
        bogus.write_text("not an image")

        with pytest.raises(SystemExit) as excinfo:
            main(["process", str(bogus), "--no-upscale"])

        assert excinfo.value.code == 1

    def test_process_with_only_missing_files(self, workdir):
        with pytest.raises(SystemExit) as excinfo:
            main(["process", str(workdir / "missing.jpg")])
        assert excinfo.value.code == 1


class TestLoadSources:
    def test_mime_types_are_guessed(self, tmp_path):
        paths = [
            write_image(tmp_path / "a.jpg"),
            write_image(tmp_path / "b.webp", format_type="WEBP"),
        ]
        (tmp_path / "c.unknownext").write_bytes(b"?")
        paths.append(str(tmp_path / "c.unknownext"))

        sources = load_sources(paths, FakeLogger())

        assert [s.mime_type for s in sources] == [
            "image/jpeg",
            "image/webp",
            "application/octet-stream",
        ]

    def test_unreadable_paths_are_skipped(self, tmp_path):
        logger = FakeLogger()
        sources = load_sources([str(tmp_path / "nope.png")], logger)
        assert sources == []
        assert logger.messages("ERROR")
