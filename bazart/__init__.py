from bazart.version import VERSION

__version__ = VERSION
