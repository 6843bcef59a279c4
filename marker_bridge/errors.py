class InvalidInput(ValueError):
    """Raised when a frame or intrinsics matrix cannot be used at all.

    This is the only failure that crosses the detection call boundary;
    an unreadable candidate or a failed pose solve is dropped silently.
    """
