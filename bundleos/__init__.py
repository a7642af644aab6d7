"""BundleOS - plugin and theme bundle installer for the CMS host application"""

__version__ = "0.1.0"
