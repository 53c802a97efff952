import pytest

from rasterkit.context import ExecutionContext, ExecutionPolicy, GpuImage
from rasterkit.image_utils import create_host_image, download_from_gpu, upload_to_gpu
from rasterkit.operators import (
    BrightnessOperator,
    GaussianBlurOperator,
    GrayscaleOperator,
    ImageOperator,
    InvertOperator,
    OperatorPipeline,
    OperatorRegistry,
    OperatorTraits,
    ResizeOperator,
    SobelOperator,
    make_brightness,
    make_gaussian_blur,
    make_grayscale,
    make_histogram_equalize,
    make_invert,
    make_resize,
    make_resize_by_scale,
    make_sobel,
)


def make_test_image(width, height, channels):
    image = create_host_image(width, height, channels)
    image.data[:] = bytes(i % 256 for i in range(len(image.data)))
    return image


@pytest.fixture
def ctx():
    return ExecutionContext(ExecutionPolicy.sync())


def test_pipeline_construction():
    pipeline = OperatorPipeline()
    assert len(pipeline) == 0


def test_pipeline_with_operators():
    pipeline = OperatorPipeline()
    pipeline.then(InvertOperator).then(GrayscaleOperator())
    assert len(pipeline) == 2
    assert [op.traits().name for op in pipeline] == ["invert", "grayscale"]


def test_pipeline_rejects_non_operator():
    with pytest.raises(TypeError):
        OperatorPipeline().then(42)


def test_pipeline_execution(ctx):
    host = make_test_image(32, 32, 3)
    pipeline = OperatorPipeline().then(InvertOperator)
    output = pipeline.apply(upload_to_gpu(host), ctx)
    assert output.is_valid
    assert (output.width, output.height, output.channels) == (32, 32, 3)
    result = download_from_gpu(output)
    assert bytes(result.data) == bytes(255 - b for b in host.data)


def test_pipeline_grayscale(ctx):
    gpu = upload_to_gpu(make_test_image(32, 32, 3))
    output = OperatorPipeline().then(GrayscaleOperator).apply(gpu, ctx)
    assert output.channels == 1


def test_pipeline_chaining(ctx):
    gpu = upload_to_gpu(make_test_image(32, 32, 3))
    pipeline = (
        OperatorPipeline()
        .then(GrayscaleOperator)
        .then(GaussianBlurOperator(5, 1.0))
        .then(SobelOperator)
    )
    output = pipeline.apply(gpu, ctx)
    assert output.is_valid
    assert output.channels == 1
    traits = pipeline.traits()
    assert "grayscale" in traits.name
    assert traits.changes_channels
    assert not traits.changes_dimensions


def test_pipeline_traits_name(ctx):
    pipeline = OperatorPipeline().then(InvertOperator).then(GrayscaleOperator)
    assert pipeline.traits() == OperatorTraits(
        "pipeline -> invert -> grayscale", False, False, True
    )


def test_pipeline_clone():
    original = OperatorPipeline().then(InvertOperator).then(GrayscaleOperator)
    cloned = original.clone()
    assert cloned.traits().name == original.traits().name
    cloned.clear()
    assert len(cloned) == 0
    assert len(original) == 2


def test_pipeline_with_invalid_input(ctx):
    pipeline = OperatorPipeline().then(InvertOperator)
    output = pipeline.apply(GpuImage(), ctx)
    assert not output.is_valid


def test_empty_pipeline_returns_input(ctx):
    gpu = upload_to_gpu(make_test_image(4, 4, 1))
    assert OperatorPipeline().apply(gpu, ctx) is gpu


def test_pipeline_keeps_input_intact(ctx):
    host = make_test_image(8, 8, 3)
    gpu = upload_to_gpu(host)
    OperatorPipeline().then(InvertOperator).then(InvertOperator).apply(gpu, ctx)
    assert gpu.is_valid
    assert bytes(download_from_gpu(gpu).data) == bytes(host.data)


def test_pipeline_double_invert_restores(ctx):
    host = make_test_image(8, 8, 3)
    pipeline = OperatorPipeline().then(InvertOperator).then(InvertOperator)
    output = pipeline.apply(upload_to_gpu(host), ctx)
    assert bytes(download_from_gpu(output).data) == bytes(host.data)


def test_pipeline_async_context():
    ctx = ExecutionContext(ExecutionPolicy.asynchronous())
    host = make_test_image(16, 16, 3)
    output = OperatorPipeline().then(InvertOperator).apply(upload_to_gpu(host), ctx)
    ctx.synchronize()
    assert bytes(download_from_gpu(output).data) == bytes(255 - b for b in host.data)


def test_operator_registry():
    registry = OperatorRegistry.instance()
    assert registry is OperatorRegistry.instance()
    names = registry.names()
    assert "invert" in names and "histogram_equalize" in names

    invert_op = registry.create("invert")
    assert isinstance(invert_op, InvertOperator)
    assert invert_op.traits().name == "invert"

    grayscale_op = registry.create("grayscale")
    assert grayscale_op.traits().name == "grayscale"

    assert registry.create("unknown_operator") is None


def test_registry_register_custom():
    registry = OperatorRegistry()
    registry.register("bright50", lambda: BrightnessOperator(50))
    op = registry.create("bright50")
    assert isinstance(op, BrightnessOperator)
    assert op.offset == 50
    assert "bright50" in registry.names()


def test_factory_functions():
    assert make_invert().traits().name == "invert"
    assert make_grayscale().traits().name == "grayscale"
    assert make_gaussian_blur(7, 2.0).traits().name == "gaussian_blur"
    assert make_resize(100, 100).traits().name == "resize"
    assert make_sobel().traits().name == "sobel"
    assert make_histogram_equalize().traits().name == "histogram_equalize"


def test_operator_traits():
    invert_traits = make_invert().traits()
    assert invert_traits.in_place_capable
    assert not invert_traits.changes_dimensions
    assert not invert_traits.changes_channels

    grayscale_traits = make_grayscale().traits()
    assert not grayscale_traits.in_place_capable
    assert grayscale_traits.changes_channels

    assert make_resize(100, 100).traits().changes_dimensions
    assert make_invert().can_apply_in_place()
    assert not make_sobel().can_apply_in_place()


def test_brightness_operator_params():
    brightness = make_brightness(50)
    assert brightness.offset == 50
    brightness.offset = -30
    assert brightness.offset == -30


def test_brightness_clone_is_independent():
    original = make_brightness(10)
    cloned = original.clone()
    cloned.offset = 99
    assert original.offset == 10
    assert cloned.offset == 99


def test_gaussian_blur_operator_params():
    blur = make_gaussian_blur(7, 2.5)
    assert blur.kernel_size == 7
    assert blur.sigma == pytest.approx(2.5)
    blur.kernel_size = 9
    blur.sigma = 3.0
    assert blur.kernel_size == 9
    assert blur.sigma == pytest.approx(3.0)


def test_resize_operator_named_constructors():
    by_dim = make_resize(100, 200)
    assert not by_dim.is_scale_mode
    assert (by_dim.width, by_dim.height) == (100, 200)

    by_scale = make_resize_by_scale(0.5, 0.5)
    assert by_scale.is_scale_mode
    assert by_scale.scale_x == pytest.approx(0.5)
    assert by_scale.scale_y == pytest.approx(0.5)

    by_dim.set_scale(2.0, 2.0)
    assert by_dim.is_scale_mode
    assert by_dim.scale_x == pytest.approx(2.0)

    by_scale.set_dimensions(300, 400)
    assert not by_scale.is_scale_mode
    assert (by_scale.width, by_scale.height) == (300, 400)


def test_resize_operator_apply(ctx):
    gpu = upload_to_gpu(make_test_image(32, 32, 3))
    out = make_resize(16, 8).apply(gpu, ctx)
    assert (out.width, out.height, out.channels) == (16, 8, 3)
    scaled = ResizeOperator.by_scale(0.5, 0.25).apply(gpu, ctx)
    assert (scaled.width, scaled.height) == (16, 8)


def test_brightness_apply_and_in_place(ctx):
    host = create_host_image(2, 2, 1)
    host.data[:] = bytes([100, 200, 50, 250])
    gpu = upload_to_gpu(host)
    out = BrightnessOperator(30).apply(gpu, ctx)
    assert list(download_from_gpu(out).data) == [130, 230, 80, 255]

    BrightnessOperator(-60).apply_in_place(gpu, ctx)
    assert list(download_from_gpu(gpu).data) == [40, 140, 0, 190]


def test_invert_in_place(ctx):
    host = make_test_image(4, 4, 1)
    gpu = upload_to_gpu(host)
    InvertOperator().apply_in_place(gpu, ctx)
    assert bytes(download_from_gpu(gpu).data) == bytes(255 - b for b in host.data)


def test_in_place_not_supported(ctx):
    gpu = upload_to_gpu(make_test_image(4, 4, 3))
    with pytest.raises(RuntimeError):
        GrayscaleOperator().apply_in_place(gpu, ctx)


def test_histogram_equalize_operator(ctx):
    host = create_host_image(2, 2, 1)
    host.data[:] = bytes([10, 10, 20, 20])
    out = make_histogram_equalize().apply(upload_to_gpu(host), ctx)
    assert list(download_from_gpu(out).data) == [0, 0, 255, 255]


def test_image_operator_is_abstract():
    with pytest.raises(TypeError):
        ImageOperator()