class LoaderError(Exception):
    """The file can't be read or isn't a supported x86 executable."""
