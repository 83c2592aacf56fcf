"""Service helpers behind the fragcache CLI and loader."""
