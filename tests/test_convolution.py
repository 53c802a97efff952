import numpy as np
import pytest

from rasterkit.context import ExecutionPolicy, GpuImage
from rasterkit.convolution import (
    BorderMode,
    convolve,
    gaussian_blur,
    gaussian_kernel,
    gaussian_kernel_1d,
    separable_convolve,
    sobel_edge_detection,
)
from rasterkit.image_utils import create_host_image, download_from_gpu, upload_to_gpu

IDENTITY = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]


def _pattern(width, height, channels):
    host = create_host_image(width, height, channels)
    host.data[:] = bytes((i * 37 + 11) % 256 for i in range(len(host.data)))
    return host


def _constant(width, height, channels, value):
    host = create_host_image(width, height, channels)
    host.data[:] = bytes([value]) * len(host.data)
    return host


def _pixels(image):
    return download_from_gpu(image).pixels()


@pytest.mark.parametrize("mode", list(BorderMode))
def test_identity_kernel_returns_input(mode):
    host = _pattern(9, 7, 3)
    result = convolve(upload_to_gpu(host), IDENTITY, mode)
    assert download_from_gpu(result).data == host.data


def test_flat_kernel_is_accepted():
    host = _pattern(5, 5, 1)
    flat = [v for row in IDENTITY for v in row]
    assert download_from_gpu(convolve(upload_to_gpu(host), flat)).data == host.data


def test_zero_border_darkens_corners_replicate_does_not():
    gpu = upload_to_gpu(_constant(6, 6, 1, 90))
    box = np.full((3, 3), 1 / 9)
    zero = _pixels(convolve(gpu, box, BorderMode.ZERO))
    replicate = _pixels(convolve(gpu, box, BorderMode.REPLICATE))
    mirror = _pixels(convolve(gpu, box, BorderMode.MIRROR))
    assert zero[0, 0, 0] < zero[3, 3, 0]
    assert np.all(replicate == 90)
    assert np.all(mirror == 90)


def test_blur_keeps_constant_image():
    gpu = upload_to_gpu(_constant(10, 8, 3, 77))
    result = gaussian_blur(gpu, 5, 1.5)
    assert result.width == 10 and result.height == 8 and result.channels == 3
    assert np.all(_pixels(result) == 77)


def test_blur_reduces_variation():
    host = _pattern(16, 16, 1)
    blurred = _pixels(gaussian_blur(upload_to_gpu(host), 5, 2.0)).astype(float)
    assert blurred.std() < host.pixels().astype(float).std()


def test_gaussian_kernel_properties():
    line = gaussian_kernel_1d(7, 1.3)
    assert line.sum() == pytest.approx(1.0)
    assert np.allclose(line, line[::-1])
    assert int(np.argmax(line)) == 3
    square = gaussian_kernel(5, 2.0)
    assert square.shape == (5, 5)
    assert np.allclose(square, square.T)
    assert square.sum() == pytest.approx(line.sum())


def test_sobel_is_flat_on_constant_and_single_channel():
    result = sobel_edge_detection(upload_to_gpu(_constant(8, 8, 3, 120)))
    assert result.channels == 1
    assert not _pixels(result).any()


def test_sobel_responds_to_step_edge():
    host = create_host_image(10, 10, 1)
    host.pixels()[:, 5:, 0] = 200
    edges = _pixels(sobel_edge_detection(upload_to_gpu(host)))[..., 0]
    assert edges[5, 5] > edges[5, 1]
    assert edges[5, 4] > edges[5, 8]


def test_separable_identity():
    host = _pattern(6, 4, 4)
    result = separable_convolve(upload_to_gpu(host), [0, 1, 0], [0, 1, 0])
    assert download_from_gpu(result).data == host.data


def test_invalid_arguments():
    gpu = upload_to_gpu(_pattern(4, 4, 1))
    with pytest.raises(ValueError):
        convolve(gpu, np.ones((2, 2)))
    with pytest.raises(ValueError):
        convolve(gpu, np.ones((3, 5)))
    with pytest.raises(ValueError):
        gaussian_blur(gpu, 4, 1.0)
    with pytest.raises(ValueError):
        separable_convolve(gpu, [0, 1, 0], [1])
    with pytest.raises(ValueError):
        convolve(GpuImage(), IDENTITY)
    with pytest.raises(ValueError):
        sobel_edge_detection(GpuImage())


def test_stream_execution_matches_sync():
    gpu = upload_to_gpu(_pattern(8, 8, 3))
    expected = _pixels(gaussian_blur(gpu, 3, 1.0))
    policy = ExecutionPolicy.asynchronous()
    deferred = gaussian_blur(gpu, 3, 1.0, policy.stream)
    assert not policy.stream.query()
    policy.synchronize()
    assert np.array_equal(_pixels(deferred), expected)