"""RenderAPIs: project portfolio REST service backed by MongoDB."""

__version__ = "1.0.0"
