"""Realm bootstrap and identity provider federation synchronization.

To use the core services:
    from realmsync.core import RealmManager

To run the admin API:
    from realmsync.flask_app import create_app
"""
# Note: flask_app is not imported here so the core stays usable without Flask

__version__ = "0.1.0"
