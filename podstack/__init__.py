"""podstack — rootless Podman stack installer."""

__version__ = "0.1.0"
