"""Sample application scanned by the module loader in tests.

Declares a cash contract with an ownable state, a note state without an
owner, and a few application services.
"""
