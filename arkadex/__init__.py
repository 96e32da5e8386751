from arkadex.version import __version__, arkadex_version
