"""Application module adapters.

- loader: imports packages and extracts contracts and service classes
- provider: module registry plus contract attachments, with mock entries
"""
