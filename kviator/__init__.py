__version__ = "0.4.0"
APP_NAME = "kviator"
