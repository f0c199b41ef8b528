"""
Crawler code runner: fetch a URL and run a sandboxed Python callable against it.
"""
__version__ = "0.1.0"
