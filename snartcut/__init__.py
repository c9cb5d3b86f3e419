"""Device workers and wire protocols for GRBL and Ruida lasers, HPGL vinyl cutters and the Vevor Smart 1."""

__version__ = "0.1.2"

__all__ = [
    "base",
    "grbl",
    "ruida",
    "vevor",
    "vevor_detect",
    "vevor_usb_protocol",
    "vinyl",
]