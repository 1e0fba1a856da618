"""microstat - a Micropub endpoint for statically generated sites.

Posts submitted via Micropub are written into the site's source tree,
published by a site-specific command, and announced with webmentions.

Exported Functions:
    main: Entry point for the microstat console command
"""
from .microstat import main

__all__ = ["main"]
