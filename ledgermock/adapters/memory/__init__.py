"""In-memory storage adapters used by every mock node.

- transactions: recorded transactions keyed by id
- attachments: content-addressed attachment bytes
"""
