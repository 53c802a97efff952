"""Image processing on NumPy: pixel operators, convolution, histograms, geometry, filters, arithmetic, colour spaces and operator pipelines."""

__version__ = "2.1.0"