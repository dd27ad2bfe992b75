"""Water-quality sensor monitor (CF/EC/TDS, pH/ORP, temperature) over Modbus-RTU."""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - fallback when package metadata missing
    __version__ = version("aquamon")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]
