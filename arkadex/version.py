__version__ = "0.3.0"
arkadex_version = f"arkadex {__version__}"
arkadex_version_short = __version__
