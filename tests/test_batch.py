import asyncio

import pytest

from photodesk.domain.errors import InputValidationError, RemoteServiceError
from photodesk.domain.models import ItemStatus, PrintSheetSpec
from photodesk.features.units.models import CropSettings
from photodesk.kernel.image.logic import decode_image
from photodesk.orchestration.batch import BatchOptions, BatchProcessor


class EchoRemover:
    """Background remover stand-in that returns its input and counts calls."""

    def __init__(self, fail_on=()):
        self.calls = 0
        self.fail_on = set(fail_on)

    async def __call__(self, image):
        self.calls += 1
        await asyncio.sleep(0)
        if self.calls in self.fail_on:
            raise RemoteServiceError("remover returned no image", "remove_background")
        return image


def _options(**kwargs):
    defaults = {"remove_background": True, "crop": CropSettings.from_preset("35x45mm"), "crop_dpi": 300, "max_workers": 1}
    defaults.update(kwargs)
    return BatchOptions(**defaults)


def test_end_to_end_id_photo(make_encoded):
    processor = BatchProcessor(_options(), background_remover=EchoRemover())
    item = processor.add_encoded("portrait.png", make_encoded(1000, 1000))

    summary = asyncio.run(processor.run())

    assert item.status == ItemStatus.SUCCESS
    assert item.result.shape == (531, 413, 4)
    assert item.error is None
    assert summary["success"] == 1


def test_failure_is_isolated(make_encoded):
    remover = EchoRemover(fail_on={2})
    processor = BatchProcessor(_options(), background_remover=remover)
    items = [processor.add_encoded(f"{i}.png", make_encoded(200, 300)) for i in range(5)]

    asyncio.run(processor.run())

    assert [item.status for item in items] == [
        ItemStatus.SUCCESS,
        ItemStatus.ERROR,
        ItemStatus.SUCCESS,
        ItemStatus.SUCCESS,
        ItemStatus.SUCCESS,
    ]
    assert "no image" in items[1].error
    assert items[1].result is None
    assert remover.calls == 5


def test_rerun_skips_succeeded_items(make_encoded):
    remover = EchoRemover(fail_on={2})
    processor = BatchProcessor(_options(), background_remover=remover)
    items = [processor.add_encoded(f"{i}.png", make_encoded(200, 300)) for i in range(3)]
    asyncio.run(processor.run())

    kept = {item.id: item.result for item in items if item.status == ItemStatus.SUCCESS}
    asyncio.run(processor.run())

    # Only the failed item was retried
    assert remover.calls == 4
    assert all(item.status == ItemStatus.SUCCESS for item in items)
    for item_id, result in kept.items():
        assert processor.get(item_id).result is result


def test_reset_single_item_and_all(make_encoded):
    processor = BatchProcessor(_options(crop=None, remove_background=False))
    first = processor.add_encoded("a.png", make_encoded(10, 10))
    second = processor.add_encoded("b.png", make_encoded(10, 10))
    asyncio.run(processor.run())

    processor.reset(first.id)
    assert first.status == ItemStatus.PENDING
    assert first.result is None
    assert second.status == ItemStatus.SUCCESS

    processor.reset()
    assert processor.summary() == {"pending": 2, "processing": 0, "success": 0, "error": 0}

    with pytest.raises(InputValidationError):
        processor.reset("missing")


def test_run_without_items():
    with pytest.raises(InputValidationError):
        asyncio.run(BatchProcessor(_options()).run())


def test_corrupt_file_fails_at_decode(tmp_path, make_encoded):
    good = tmp_path / "good.png"
    good.write_bytes(make_encoded(50, 50).payload)
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"not an image")

    processor = BatchProcessor(_options(remove_background=False, crop=CropSettings.from_preset("2x2in"), crop_dpi=10))
    good_item, bad_item = processor.add_files([str(good), str(bad)])
    asyncio.run(processor.run())

    assert good_item.status == ItemStatus.SUCCESS
    assert good_item.result.shape == (20, 20, 4)
    assert bad_item.status == ItemStatus.ERROR
    assert bad_item.error


def test_worker_pool_bounds_concurrency(make_encoded):
    in_flight = 0
    peak = 0

    async def remover(image):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return image

    processor = BatchProcessor(_options(crop=None, max_workers=2), background_remover=remover)
    for i in range(6):
        processor.add_encoded(f"{i}.png", make_encoded(20, 20))

    summary = asyncio.run(processor.run())

    assert summary["success"] == 6
    assert peak == 2


def test_request_stop_leaves_remaining_items_pending(make_encoded):
    processor = BatchProcessor(_options(crop=None))

    async def remover(image):
        processor.request_stop()
        return image

    processor._background_remover = remover
    for i in range(3):
        processor.add_encoded(f"{i}.png", make_encoded(20, 20))

    summary = asyncio.run(processor.run())

    assert summary == {"pending": 2, "processing": 0, "success": 1, "error": 0}


def test_export_prints(make_encoded):
    processor = BatchProcessor(_options(), background_remover=EchoRemover(fail_on={1}))
    processor.add_encoded("fail.png", make_encoded(300, 300))

    with pytest.raises(InputValidationError):
        processor.export_prints()

    asyncio.run(processor.run())
    with pytest.raises(InputValidationError):
        processor.export_prints()

    processor.add_encoded("ok.png", make_encoded(300, 300))
    asyncio.run(processor.run())
    result = processor.export_prints(PrintSheetSpec(paper="4x6"))

    assert [name for name, _ in result.sheets] == ["fail.png", "ok.png"]
    assert result.failures == []
    assert decode_image(result.sheets[0][1]).shape == (1200, 1800, 4)


def test_batch_options_validation():
    with pytest.raises(InputValidationError):
        BatchOptions(crop_dpi=0)
    with pytest.raises(InputValidationError):
        BatchOptions(max_workers=0)
