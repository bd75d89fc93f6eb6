"""Smoke tests to verify the package and testing infrastructure load."""


def test_package_imports():
    """Core modules import without side effects on the network or ffmpeg."""
    import soundwave
    from soundwave import pipeline, queue, worker  # noqa: F401

    assert soundwave.__version__ == "0.1.0"


def test_python_version():
    """Verify Python version meets requirements."""
    import sys

    assert sys.version_info >= (3, 11), "Python 3.11 or higher required"
