# rasterkit

An image processing library built on NumPy. It provides pixel operators,
convolution, histograms, geometric transforms, filters, image arithmetic,
colour-space conversions and composable operator pipelines. An execution
context modelled on device streams, together with a pooled buffer
allocator, gives explicit control over where output images come from and
when queued work runs.

All computation happens on the CPU through NumPy. A `Stream` is an
ordered queue of work that runs when the stream is synchronized.

## Installation

```
pip install rasterkit
```

To run the test suite, install the `test` extra:

```
pip install "rasterkit[test]"
pytest
```

## Images

There are two image types, both in `rasterkit.context`:

- `HostImage` holds interleaved 8-bit pixel data in a `bytearray` that you
  read and write directly. `HostImage.at(x, y, channel)` returns one
  sample, and `image[x, y, channel] = value` sets one.
- `GpuImage` is an image whose pixels live in a `DeviceBuffer`
  (`rasterkit.memory`). You get one by uploading a `HostImage` and get
  back to a `HostImage` by downloading it.

Both have a `pixels()` method giving a writable `(height, width, channels)`
NumPy view, and an `is_valid` property.

The creation functions accept one, three or four channels and positive
sizes; anything else raises `ValueError`.

```python
from rasterkit import image_utils

host = image_utils.create_host_image(64, 48, 3)
gpu = image_utils.upload_to_gpu(host)
back = image_utils.download_from_gpu(gpu)
```

`upload_to_gpu_async` and `download_from_gpu_async` resize their target
image to fit and copy into it, queueing the copy on a stream when one is
given.

## Operators

Each operator module works on `GpuImage` values and returns a new image.
The optional `stream` argument queues the work on a `Stream`; without one
the work is done at once. Invalid input raises `ValueError`.

```python
from rasterkit import pixel, convolution, histogram, geometric

gray = pixel.to_grayscale(gpu)
blurred = convolution.gaussian_blur(gray, 5, 1.0)
edges = convolution.sobel_edge_detection(blurred)
counts = histogram.calculate(gray)           # list of 256 ints
rotated = geometric.rotate90(gpu, 1)
flipped = geometric.flip(gpu, geometric.FlipDirection.HORIZONTAL)
smaller = geometric.resize(gpu, 32, 24)
```

- `rasterkit.pixel`: `invert`, `to_grayscale`, `adjust_brightness` and the
  in-place variants.
- `rasterkit.convolution`: `convolve` with a `BorderMode` (zero, mirror,
  replicate), `separable_convolve`, `gaussian_blur`,
  `sobel_edge_detection`, `gaussian_kernel` and `gaussian_kernel_1d`.
- `rasterkit.histogram`: `calculate`, `calculate_rgb`,
  `calculate_channel` and `equalize`.
- `rasterkit.geometric`: `rotate`, `rotate90`, `flip`,
  `affine_transform`, `perspective_transform`, `crop`, `pad`, `resize`
  and `resize_by_scale`.
- `rasterkit.filters`: `median_filter`, `bilateral_filter`, `box_filter`,
  `sharpen` and `laplacian`.
- `rasterkit.arithmetic`: `add`, `subtract`, `multiply`, `blend`,
  `add_weighted`, `abs_diff`, `add_scalar` and `multiply_scalar`, all
  saturating to 0..255.
- `rasterkit.color_space`: RGB to and from HSV, YUV and CIE L\*a\*b\*,
  plus `split_channels` and `merge_channels`.

## Operator pipelines

`rasterkit.operators` wraps the operations as objects that can be
chained, cloned and created by name:

```python
from rasterkit.context import ExecutionContext, ExecutionPolicy
from rasterkit.operators import (
    OperatorPipeline,
    OperatorRegistry,
    make_gaussian_blur,
    make_grayscale,
    make_sobel,
)

pipeline = (
    OperatorPipeline()
    .then(make_grayscale())
    .then(make_gaussian_blur(5, 1.0))
    .then(make_sobel())
)
ctx = ExecutionContext(ExecutionPolicy.sync())
edges = pipeline.apply(gpu, ctx)
print(pipeline.traits().name)  # pipeline -> grayscale -> gaussian_blur -> sobel

invert = OperatorRegistry.instance().create("invert")
print(OperatorRegistry.instance().names())
```

`then` also accepts an operator class, which is built with no arguments.
An empty pipeline returns its input unchanged; an invalid input gives an
empty `GpuImage`. Intermediate images are handed back to the allocator
once the next stage has produced its output. `OperatorRegistry.create`
returns `None` for an unknown name.

## The processor facade

`rasterkit.processor.ImageProcessor` keeps an execution context and
offers the common operations as methods. In `ExecutionMode.SYNC` every
call finishes before it returns. In `ASYNC` and `BATCH` modes the work is
queued on the context's stream; call `synchronize()` yourself, or check
`is_complete()`.

```python
from rasterkit.context import ExecutionMode
from rasterkit.processor import ImageProcessor, PipelineBuilder

processor = ImageProcessor(ExecutionMode.SYNC)
image = processor.load_from_host(host)

result = (
    PipelineBuilder(processor)
    .start(image)
    .grayscale()
    .blur(5, 1.0)
    .sobel()
    .execute_and_download()
)
```

Steps called on a `PipelineBuilder` before `start` do nothing, and
`execute` then returns an empty image.

## Files

`rasterkit.fileio` reads images with Pillow and writes PNG, JPEG
(quality 90), BMP and TGA, choosing the format from the file extension:

```python
from rasterkit import fileio

image = fileio.load_from_file("input.png")
ok = fileio.save_to_file(image, "output.jpg")   # False on failure
data = fileio.encode_to_memory(image, "png")
print(fileio.supported_formats())
print(fileio.is_format_supported("photo.GIF"))
```

Loading failures raise `RuntimeError`; `encode_to_memory` raises
`ValueError` for a format it cannot write.

## Memory pooling

`rasterkit.memory.MemoryManager` hands out buffers whose sizes are
rounded up to 256-byte multiples and keeps released ones for reuse, up to
a maximum pool size. Images draw from this pool only while pooling is
switched on, which it is not by default:

```python
from rasterkit import image_utils
from rasterkit.memory import MemoryManager

image_utils.set_memory_pooling_enabled(True)
print(MemoryManager.instance().stats())  # total_allocated, pool_size, peak_usage
```

## Version and device information

```python
from rasterkit import info

print(info.version_string())   # 2.1.0
print(info.device_info())      # the host CPU and thread count
```

## What is not included

The package has no morphological operations (erosion, dilation and the
like) and no thresholding. It has no command-line tool; it is used as a
library only.