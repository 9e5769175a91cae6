"""
onedata-volume - Docker volume plugin backed by the Onedata oneclient.

This package tracks named volumes, derives a mountpoint for each one and
reference-counts container attachments so that oneclient is mounted once
per volume and unmounted when the last container detaches.
"""

__version__ = "0.1.0"
