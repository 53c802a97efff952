import pytest

from rasterkit.context import (
    ExecutionMode,
    ExecutionPolicy,
    GpuImage,
    HostImage,
)
from rasterkit.image_utils import (
    create_host_image,
    download_from_gpu,
    upload_to_gpu,
)
from rasterkit.processor import ImageProcessor, PipelineBuilder


def make_test_image(width, height, channels):
    image = create_host_image(width, height, channels)
    image.data[:] = bytearray(i % 256 for i in range(len(image.data)))
    return image


@pytest.fixture
def processor():
    return ImageProcessor()


def test_processor_modes():
    assert ImageProcessor(ExecutionMode.SYNC).mode is ExecutionMode.SYNC
    assert ImageProcessor(ExecutionMode.ASYNC).mode is ExecutionMode.ASYNC
    assert ImageProcessor(ExecutionMode.BATCH).mode is ExecutionMode.BATCH
    assert ImageProcessor().mode is ExecutionMode.SYNC


def test_processor_with_policy():
    policy = ExecutionPolicy.asynchronous()
    stream = policy.stream
    processor = ImageProcessor(policy)
    assert processor.mode is ExecutionMode.ASYNC
    assert processor.context.stream is stream


def test_is_complete():
    sync_processor = ImageProcessor(ExecutionMode.SYNC)
    assert sync_processor.is_complete() is True

    async_processor = ImageProcessor(ExecutionMode.ASYNC)
    gpu_input = async_processor.load_from_host(make_test_image(32, 32, 3))
    async_processor.invert(gpu_input)
    assert async_processor.is_complete() is False
    async_processor.synchronize()
    assert async_processor.is_complete() is True


def test_async_results_after_synchronize():
    processor = ImageProcessor(ExecutionMode.ASYNC)
    host = make_test_image(8, 8, 1)
    output = processor.invert(processor.load_from_host(host))
    processor.synchronize()
    result = processor.download(output)
    assert result.data == bytearray(255 - v for v in host.data)


def test_set_mode(processor):
    processor.set_mode(ExecutionMode.BATCH)
    assert processor.mode is ExecutionMode.BATCH
    assert processor.context.stream is not None
    processor.set_mode("sync")
    assert processor.mode is ExecutionMode.SYNC
    assert processor.context.stream is None


def test_memory_pooling_toggle(processor):
    original = processor.memory_pooling_enabled
    try:
        processor.set_memory_pooling(True)
        assert processor.memory_pooling_enabled is True
        processor.set_memory_pooling(False)
        assert processor.memory_pooling_enabled is False
    finally:
        processor.set_memory_pooling(original)


def test_load_from_memory_round_trip(processor):
    data = bytes(range(48))
    image = processor.load_from_memory(data, 4, 4, 3)
    assert (image.width, image.height, image.channels) == (4, 4, 3)
    assert bytes(processor.download(image).data) == data


def test_load_from_memory_errors(processor):
    with pytest.raises(ValueError):
        processor.load_from_memory(None, 4, 4, 3)
    with pytest.raises(ValueError):
        processor.load_from_memory(bytes(16), 4, 4, 2)
    with pytest.raises(ValueError):
        processor.load_from_memory(bytes(10), 4, 4, 1)


def test_download_to_buffer(processor):
    host = make_test_image(4, 4, 3)
    image = processor.load_from_host(host)
    target = bytearray(64)
    written = processor.download_to_buffer(image, target)
    assert written == 48
    assert target[:48] == host.data


def test_download_to_buffer_errors(processor):
    image = processor.load_from_host(make_test_image(4, 4, 3))
    with pytest.raises(ValueError):
        processor.download_to_buffer(image, None)
    with pytest.raises(ValueError):
        processor.download_to_buffer(image, bytearray(10))


def test_invert_and_in_place(processor):
    host = make_test_image(16, 16, 3)
    image = processor.load_from_host(host)
    inverted = processor.invert(image)
    assert processor.download(inverted).data == bytearray(255 - v for v in host.data)
    processor.invert_in_place(inverted)
    assert processor.download(inverted).data == host.data


def test_brightness(processor):
    host = create_host_image(2, 2, 1)
    host.data[:] = bytes([100, 200, 50, 250])
    image = processor.load_from_host(host)
    brighter = processor.adjust_brightness(image, 30)
    assert list(processor.download(brighter).data) == [130, 230, 80, 255]
    processor.adjust_brightness_in_place(image, -60)
    assert list(processor.download(image).data) == [40, 140, 0, 190]


def test_grayscale_channels(processor):
    image = processor.load_from_host(make_test_image(8, 8, 3))
    gray = processor.to_grayscale(image)
    assert gray.channels == 1
    assert (gray.width, gray.height) == (8, 8)


def test_convolve_identity(processor):
    host = make_test_image(8, 8, 1)
    image = processor.load_from_host(host)
    result = processor.convolve(image, [0, 0, 0, 0, 1, 0, 0, 0, 0])
    assert processor.download(result).data == host.data


def test_blur_and_sobel_shapes(processor):
    image = processor.load_from_host(make_test_image(16, 16, 3))
    blurred = processor.gaussian_blur(image, 5, 1.0)
    assert blurred.channels == 3
    edges = processor.sobel_edge_detection(image)
    assert edges.channels == 1


def test_histograms(processor):
    image = processor.load_from_host(make_test_image(16, 16, 1))
    counts = processor.histogram(image)
    assert len(counts) == 256
    assert counts == [1] * 256

    rgb = processor.load_from_host(make_test_image(16, 16, 3))
    per_channel = processor.histogram_rgb(rgb)
    assert len(per_channel) == 3
    assert all(sum(c) == 256 for c in per_channel)


def test_histogram_equalize_shape(processor):
    image = processor.load_from_host(make_test_image(16, 16, 1))
    result = processor.histogram_equalize(image)
    assert (result.width, result.height, result.channels) == (16, 16, 1)


def test_resize(processor):
    image = processor.load_from_host(make_test_image(32, 32, 3))
    result = processor.resize(image, 16, 8)
    assert (result.width, result.height, result.channels) == (16, 8, 3)
    scaled = processor.resize_by_scale(image, 0.5, 0.25)
    assert (scaled.width, scaled.height) == (16, 8)


def test_pipeline_of_operations(processor):
    host = make_test_image(8, 8, 3)
    image = processor.load_from_host(host)
    result = processor.pipeline(image, [processor.invert, processor.invert])
    assert processor.download(result).data == host.data
    assert processor.download(image).data == host.data


def test_empty_pipeline_returns_input(processor):
    image = processor.load_from_host(make_test_image(4, 4, 1))
    assert processor.pipeline(image, []) is image


def test_builder_chain(processor):
    gpu_input = upload_to_gpu(make_test_image(64, 64, 3))
    result = (
        PipelineBuilder(processor).start(gpu_input).grayscale().blur(5, 1.0).sobel().execute()
    )
    assert result.is_valid
    assert result.channels == 1


def test_builder_with_download(processor):
    host = make_test_image(32, 32, 3)
    result = (
        PipelineBuilder(processor)
        .start(processor.load_from_host(host))
        .invert()
        .execute_and_download()
    )
    assert result.is_valid
    assert result.data == bytearray(255 - v for v in host.data)


def test_builder_other_steps(processor):
    gpu_input = upload_to_gpu(make_test_image(32, 32, 1))
    result = (
        PipelineBuilder(processor)
        .start(gpu_input)
        .brightness(10)
        .equalize()
        .resize(8, 4)
        .execute()
    )
    assert (result.width, result.height, result.channels) == (8, 4, 1)


def test_builder_without_start(processor):
    result = PipelineBuilder(processor).grayscale().blur().execute()
    assert result.is_valid is False
    assert PipelineBuilder(processor).has_input is False
    downloaded = PipelineBuilder(processor).invert().execute_and_download()
    assert isinstance(downloaded, HostImage)
    assert downloaded.is_valid is False


def test_builder_has_input(processor):
    gpu_input = upload_to_gpu(make_test_image(32, 32, 3))
    builder = PipelineBuilder(processor)
    assert builder.has_input is False
    builder.start(gpu_input)
    assert builder.has_input is True
    result = builder.execute()
    assert builder.has_input is False
    assert download_from_gpu(result).data == download_from_gpu(gpu_input).data


def test_builder_execute_twice_gives_empty(processor):
    builder = PipelineBuilder(processor).start(upload_to_gpu(make_test_image(4, 4, 1)))
    first = builder.execute()
    second = builder.execute()
    assert first.is_valid is True
    assert isinstance(second, GpuImage)
    assert second.is_valid is False


def test_invalid_input_raises(processor):
    with pytest.raises(ValueError):
        processor.invert(GpuImage())
    with pytest.raises(ValueError):
        processor.download(GpuImage())