import threading

from PIL import Image
import pytest

from cutout_service.backends import ProcessingMode
from cutout_service.errors import FetchError, ProcessingBusyError
from cutout_service.session import RemoverSession

from .conftest import make_oversized_png


@pytest.fixture
def remover(backend_factory):
    return RemoverSession(mode="local", backend_factory=backend_factory)


def test_external_mode_without_image_does_nothing(remover, backends):
    remover.set_mode("external")
    assert remover.process() is None
    assert all(not b.calls for b in backends.values())
    assert remover.processed is None
    assert remover.selected is None
    assert not remover.is_processing


def test_process_uses_selected_mode(remover, backends, png_bytes):
    remover.select_upload(png_bytes, "cat.png")
    remover.set_mode(ProcessingMode.EXTERNAL)
    result = remover.process()
    assert isinstance(result, Image.Image)
    assert remover.processed is result
    assert len(backends[ProcessingMode.EXTERNAL].calls) == 1
    assert not backends[ProcessingMode.LOCAL].calls
    assert not remover.is_processing


def test_failure_is_logged_and_keeps_previous_result(remover, backends, png_bytes):
    remover.select_upload(png_bytes)
    first = remover.process()
    backends[ProcessingMode.LOCAL].error = FetchError("offline")
    assert remover.process() is None
    assert remover.processed is first
    assert remover.last_error == "offline"
    assert not remover.is_processing


def test_blank_url_is_ignored(remover, png_bytes):
    source = remover.select_upload(png_bytes)
    assert remover.select_url("  ") is None
    assert remover.selected is source


def test_concurrent_trigger_is_rejected_and_mode_is_snapshotted(remover, backends, png_bytes):
    local = backends[ProcessingMode.LOCAL]
    local.release = threading.Event()
    remover.select_upload(png_bytes)

    results = []
    worker = threading.Thread(target=lambda: results.append(remover.process()))
    worker.start()
    assert local.entered.wait(timeout=5)

    assert remover.is_processing
    with pytest.raises(ProcessingBusyError):
        remover.process()
    remover.set_mode("external")

    local.release.set()
    worker.join(timeout=5)

    assert results and results[0] is not None
    assert len(local.calls) == 1
    assert not backends[ProcessingMode.EXTERNAL].calls
    assert remover.mode is ProcessingMode.EXTERNAL
    assert not remover.is_processing


def test_export_writes_fixed_filename(remover, png_bytes, tmp_path):
    assert remover.export(tmp_path) is None
    remover.select_upload(png_bytes)
    remover.process()
    path = remover.export(tmp_path)
    assert path == tmp_path / "processed_image.png"
    with Image.open(path) as saved:
        assert saved.mode == "RGBA"
        assert saved.size == (4, 2)


def test_download_bytes_is_png(remover, png_bytes):
    assert remover.download_bytes() is None
    remover.select_upload(png_bytes)
    remover.process()
    assert remover.download_bytes().startswith(b"\x89PNG")


def test_undecodable_oversized_image_fails_recoverably(remover, backends):
    remover.select_upload(make_oversized_png(), "huge.png")
    assert remover.process() is None
    assert "huge.png" in remover.last_error
    assert remover.processed is None
    assert not remover.is_processing
    assert len(backends[ProcessingMode.LOCAL].calls) == 1
