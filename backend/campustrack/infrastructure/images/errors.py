class ImageStoreError(Exception):
    """Raised when an image store cannot be configured or reached at all."""
    pass
