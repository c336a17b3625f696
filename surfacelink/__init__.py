"""SurfaceLink: remote virtual surfaces for the button grid.

Lets a network-connected control panel (e.g. the Stream Deck software
plugin) attach to the host's logical button grid, subscribe to button images
and receive pushes when they change.

Quickstart::

    python -m surfacelink --config surfacelink.json
"""

__version__ = "1.0.0"


class SurfaceLinkError(Exception):
    """Base class for SurfaceLink errors."""
