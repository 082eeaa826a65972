"""chartdev - local development loop for packaged container applications.

This package builds and publishes the images a chart depends on, installs a
release of the chart, and keeps rebuilding and redeploying as the image
sources change on disk.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
