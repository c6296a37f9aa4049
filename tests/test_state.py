from imgx.models import ImageFormat, ProcessedImage
from imgx.pipeline.state import PreviewState


def processed(source):
    return ProcessedImage(data=source.data, width=source.width, height=source.height, format=ImageFormat.PNG)


def test_display_copy_is_cached_per_size(png_source):
    state = PreviewState()
    assert state.get_display((100, 100)) is None

    state.update(processed(png_source))
    display = state.get_display((100, 100))
    assert display.size == (100, 75)
    assert state.get_display((100, 100)) is display
    assert state.get_display((40, 40)).size == (40, 30)


def test_update_and_clear_release(small_source):
    state = PreviewState()
    first, second = processed(small_source), processed(small_source)
    state.update(first)
    state.update(second)
    assert first.released
    assert not second.released

    state.clear()
    assert second.released
    assert state.current is None
