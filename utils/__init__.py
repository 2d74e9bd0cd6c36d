"""
Utility Package for KumaSync

    logger.py      ← loguru setup and named loggers
    helpers.py     ← time, string and batch helpers
    validators.py  ← URL, source and request input validation
"""
