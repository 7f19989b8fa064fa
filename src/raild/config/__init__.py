"""
Daemon configuration, read from configobj files and validated against raild.schema.cfg.
"""
