"""mirrorurl.mirror: local path mapping, manifest and the mirror writer."""
