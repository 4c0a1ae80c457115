"""devgate: gate an application behind remote approval of the device."""

__version__ = "0.1.0"
