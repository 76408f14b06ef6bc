"""Merkle Store - Content-addressed blob/tree object store for directory trees."""

__version__ = "0.1.0"

# Directory and file constants
MST_DIR = ".merkle-store"
OBJECTS_DIR = "objects"
CONFIG_FILE = "config.json"
MANIFEST_FILE = "manifest.json"

# SHA-1 digest size in bytes
HASH_SIZE = 20
