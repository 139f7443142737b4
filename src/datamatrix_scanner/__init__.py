"""Camera Data Matrix scanner with a live preview and a decoded-text log."""

__version__ = "0.1.0"
