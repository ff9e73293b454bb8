"""labwatch — watchdog for the unattended DSView / Power Automate logging setup."""

__version__ = "0.1.0"
