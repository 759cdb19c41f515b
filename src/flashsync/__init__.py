from flashsync.consts import VERSION

__version__ = VERSION
