import logging

from capstone import *

from x86ropgadget.loaders.error import LoaderError

l = logging.getLogger("x86ropgadget.loaders.raw")

class RawBinary():
    """A flat file of machine code, loaded as a single executable section."""

    def __init__(self, filename, mode=CS_MODE_64, base=0):
        try:
            with open(filename, "rb") as fd:
                self.__binary = fd.read()
        except OSError as e:
            raise LoaderError(f"can't open file {filename}: {e.strerror}")

        self.__mode = mode
        self.__base = base
        l.debug("loaded %d raw bytes at %#x", len(self.__binary), base)

    def get_arch_mode(self):
        return self.__mode

    def get_exec_sections(self):
        return [{"name": "raw", "vaddr": self.__base, "code": self.__binary}]
