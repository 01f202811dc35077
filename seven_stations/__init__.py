"""Seven Stations - staged analysis of scripts and story documents."""

__version__ = "0.3.0"
